# dependencies.py
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from services.sessions import SessionRegistry
from services.sync import SyncStore

# OAuth2 scheme for token endpoint - use this consistently
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


async def get_store(
    token: str = Depends(oauth2_scheme),
    registry: SessionRegistry = Depends(get_registry)
) -> SyncStore:
    store = await registry.get_store(token)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return store


async def require_teacher(store: SyncStore = Depends(get_store)) -> SyncStore:
    if not store.user.is_teacher:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Teacher privileges required"
        )
    return store


async def require_student(store: SyncStore = Depends(get_store)) -> SyncStore:
    if not store.user.is_student:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student privileges required"
        )
    return store
