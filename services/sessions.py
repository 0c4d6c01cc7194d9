import asyncio
import logging
from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from crud.assignment import AssignmentCRUD, SubmissionCRUD
from crud.user import ProfileCRUD
from errors import AuthenticationFailed
from models.user import RoleEnum, User
from services.auth import AuthClient
from services.profile import ProfileResolver
from services.realtime import ChangeFeed
from services.storage import FileStorage
from services.sync import SessionState, SyncStore

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Live SyncStores keyed by access token, one per signed-in session."""

    def __init__(self, db: AsyncIOMotorDatabase, storage: FileStorage, feed: ChangeFeed,
                 publish_writes: bool = True):
        self.db = db
        self.storage = storage
        self.feed = feed
        # With change streams the listener publishes, not the CRUD layer
        self.publish_writes = publish_writes
        self.stores: Dict[str, SyncStore] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def create_store(self) -> SyncStore:
        write_feed = self.feed if self.publish_writes else None
        auth = AuthClient(self.db)
        return SyncStore(
            auth=auth,
            resolver=ProfileResolver(auth, ProfileCRUD(self.db)),
            assignment_crud=AssignmentCRUD(self.db, write_feed),
            submission_crud=SubmissionCRUD(self.db, write_feed),
            storage=self.storage,
            feed=self.feed,
        )

    async def sign_up(self, email: str, password: str, name: str, role: RoleEnum) -> User:
        return await AuthClient(self.db).sign_up(email, password, name, role)

    async def login(self, email: str, password: str, role: RoleEnum):
        """Sign in and keep the store alive. Returns (token, store)."""
        await self.prune_expired()
        store = self.create_store()
        try:
            await store.login(email, password, role)
        except Exception:
            store.close()
            raise
        session = await store.auth.get_current_session()
        self.stores[session.access_token] = store
        return session.access_token, store

    async def get_store(self, token: str) -> Optional[SyncStore]:
        store = self.stores.get(token)
        if store is not None:
            if store.state == SessionState.READY and await store.auth.get_current_session():
                return store
            self.discard(token)
            return None

        # Unknown token, e.g. after a restart: restore it if still valid
        store = self.create_store()
        if await store.auth.set_session(token) is None:
            store.close()
            return None
        await store.start()
        if store.state != SessionState.READY:
            store.close()
            return None
        self.stores[token] = store
        return store

    async def logout(self, token: str):
        store = self.stores.pop(token, None)
        if store is None:
            store = self.create_store()
            if await store.auth.set_session(token) is None:
                store.close()
                raise AuthenticationFailed("Not signed in")
        await store.logout()
        store.close()

    def discard(self, token: str):
        store = self.stores.pop(token, None)
        if store is not None:
            store.close()

    async def prune_expired(self) -> int:
        """Close stores whose session has lapsed. Returns how many were closed."""
        expired = [
            token for token, store in list(self.stores.items())
            if await store.auth.get_current_session() is None
        ]
        for token in expired:
            self.discard(token)
        if expired:
            logger.info("Closed %d expired sessions", len(expired))
        return len(expired)

    def start_sweeper(self, interval: float):
        self._sweeper = asyncio.create_task(self._sweep(interval))

    async def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        await asyncio.gather(self._sweeper, return_exceptions=True)
        self._sweeper = None

    async def _sweep(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            await self.prune_expired()

    def close_all(self):
        for token in list(self.stores):
            self.discard(token)
        logger.info("All sessions closed")
