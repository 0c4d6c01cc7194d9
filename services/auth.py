import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from crud.user import ProfileCRUD
from errors import AuthenticationFailed, StoreReadFailed, StoreWriteFailed, ValidationFailed
from models.common import utcnow
from models.user import RoleEnum, Session, User
from services.realtime import Subscription
from utils.security import create_access_token, hash_password, verify_password, verify_token

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

AuthCallback = Callable[[str, Optional[Session]], Awaitable[None]]


class AuthClient:
    """Password authentication for one client, holding at most one session.

    Identities live in ``auth_users``; every issued token has a row in
    ``auth_sessions`` so that signing out revokes it.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users = db.auth_users
        self.sessions = db.auth_sessions
        self.profiles = ProfileCRUD(db)
        self._session: Optional[Session] = None
        self._listeners: List[AuthCallback] = []

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        self._listeners.append(callback)
        return Subscription(lambda: self._listeners.remove(callback))

    async def _emit(self, event: str, session: Optional[Session]):
        for callback in list(self._listeners):
            await callback(event, session)

    async def sign_up(self, email: str, password: str, name: str, role: RoleEnum) -> User:
        """Create an identity and its profile. Does not sign in."""
        email = email.lower()
        user_id = ObjectId()
        try:
            await self.users.insert_one({
                "_id": user_id,
                "email": email,
                "password_hash": hash_password(password),
                "created_at": utcnow(),
            })
        except DuplicateKeyError as e:
            raise ValidationFailed("Email already registered") from e
        except PyMongoError as e:
            raise StoreWriteFailed("Failed to register user") from e

        profile = await self.profiles.create_profile(str(user_id), name, email, role)
        logger.info("Registered %s as %s", email, profile.role.value)
        return profile

    async def sign_in(self, email: str, password: str) -> Session:
        try:
            identity = await self.users.find_one({"email": email.lower()})
        except PyMongoError as e:
            raise StoreReadFailed("Failed to look up user") from e

        if not identity or not verify_password(password, identity["password_hash"]):
            logger.warning("Failed sign in for %s", email)
            raise AuthenticationFailed()

        user_id = str(identity["_id"])
        token, session_id, expires_at = create_access_token(user_id)
        try:
            await self.sessions.insert_one({
                "_id": session_id,
                "user_id": user_id,
                "created_at": utcnow(),
                "expires_at": expires_at,
            })
        except PyMongoError as e:
            raise StoreWriteFailed("Failed to open session") from e

        self._session = Session(
            access_token=token, user_id=user_id,
            session_id=session_id, expires_at=expires_at
        )
        await self._emit(SIGNED_IN, self._session)
        return self._session

    async def set_session(self, access_token: str) -> Optional[Session]:
        """Adopt an existing token, if it is still valid and not revoked."""
        payload = verify_token(access_token)
        if not payload or not payload.get("sub") or not payload.get("jti"):
            return None
        try:
            record = await self.sessions.find_one({"_id": payload["jti"]})
        except PyMongoError as e:
            raise StoreReadFailed("Failed to look up session") from e
        if record is None:
            return None

        self._session = Session(
            access_token=access_token,
            user_id=payload["sub"],
            session_id=payload["jti"],
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        )
        return self._session

    async def get_current_session(self) -> Optional[Session]:
        if self._session and self._session.expires_at <= utcnow():
            self._session = None
        return self._session

    async def sign_out(self):
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await self.sessions.delete_one({"_id": session.session_id})
        except PyMongoError as e:
            # The local session is gone either way
            logger.error("Failed to revoke session %s: %s", session.session_id, e)
        await self._emit(SIGNED_OUT, None)
