import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import get_settings
from database import close_mongo_connection, create_indexes, get_database
from errors import (
    AppError, AuthenticationFailed, PermissionDenied, ProfileNotFound, RoleMismatch,
    StoreReadFailed, StoreWriteFailed, UploadFailed, ValidationFailed
)
from logging_config import setup_logging
from routers import assignment, auth, files, realtime
from services.realtime import ChangeFeed, ChangeStreamListener
from services.sessions import SessionRegistry
from services.storage import FileStorage

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    AuthenticationFailed: status.HTTP_401_UNAUTHORIZED,
    RoleMismatch: status.HTTP_403_FORBIDDEN,
    ProfileNotFound: status.HTTP_404_NOT_FOUND,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    ValidationFailed: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UploadFailed: status.HTTP_502_BAD_GATEWAY,
    StoreWriteFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
    StoreReadFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    settings = get_settings()
    logger.info("Starting classroom API...")
    db = await get_database()
    await create_indexes(db)

    feed = ChangeFeed()
    listener = None
    if settings.REALTIME_TRANSPORT == "change_stream":
        listener = ChangeStreamListener(db, feed)
        listener.start()

    app.state.registry = SessionRegistry(
        db, FileStorage(), feed,
        publish_writes=listener is None
    )
    app.state.registry.start_sweeper(settings.SESSION_SWEEP_SECONDS)
    yield
    # Shutdown
    await app.state.registry.stop_sweeper()
    app.state.registry.close_all()
    if listener is not None:
        await listener.stop()
    await close_mongo_connection()


app = FastAPI(title="Classroom Assignments", version="1.0.0", lifespan=lifespan)

# Include routers
app.include_router(auth.router)
app.include_router(assignment.router)
app.include_router(files.router)
app.include_router(realtime.router)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled Exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
