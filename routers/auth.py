# routers/auth.py
from fastapi import APIRouter, Depends, status

from dependencies import get_registry, get_store, oauth2_scheme
from schemas.user import LoginRequest, SignUpRequest, Token, UserOut
from services.sessions import SessionRegistry
from services.sync import SyncStore

router = APIRouter(prefix="/auth", tags=["authentication"])


def _user_out(user) -> UserOut:
    return UserOut.model_validate(user)


@router.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignUpRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    """Register a teacher or student account"""
    user = await registry.sign_up(request.email, request.password, request.name, request.role)
    return _user_out(user)


@router.post("/login", response_model=Token)
async def login(
    request: LoginRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    """Sign in to the teacher or student dashboard"""
    token, store = await registry.login(request.email, request.password, request.role)
    return Token(access_token=token, user=_user_out(store.user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: str = Depends(oauth2_scheme),
    registry: SessionRegistry = Depends(get_registry)
):
    await registry.logout(token)


@router.get("/me", response_model=UserOut)
async def me(store: SyncStore = Depends(get_store)):
    return _user_out(store.user)
