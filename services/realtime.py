import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

ASSIGNMENTS = "assignments"
SUBMISSIONS = "submissions"

WATCHED_COLLECTIONS = (ASSIGNMENTS, SUBMISSIONS)


class ChangeEvent(BaseModel):
    table: str
    event_type: str  # INSERT, UPDATE, DELETE
    record_id: Optional[str] = None


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


class Subscription:
    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.active = False
            self._unsubscribe()


class ChangeFeed:
    """Fan-out of collection change notifications to subscribers."""

    def __init__(self):
        self.channels: Dict[str, List[ChangeCallback]] = {}

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        if table not in self.channels:
            self.channels[table] = []
        self.channels[table].append(callback)

        def _remove():
            callbacks = self.channels.get(table, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self.channels.pop(table, None)

        return Subscription(_remove)

    def subscriber_count(self, table: str) -> int:
        return len(self.channels.get(table, []))

    async def publish(self, event: ChangeEvent):
        callbacks = list(self.channels.get(event.table, []))
        if not callbacks:
            return

        results = await asyncio.gather(
            *(callback(event) for callback in callbacks),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(
                    "Change subscriber for %s failed: %s", event.table, result,
                    exc_info=result
                )


_OPERATION_TYPES = {
    "insert": "INSERT",
    "update": "UPDATE",
    "replace": "UPDATE",
    "delete": "DELETE",
}


class ChangeStreamListener:
    """Tails MongoDB change streams and republishes them on a ChangeFeed.

    Needs a replica set; used when REALTIME_TRANSPORT is "change_stream".
    """

    def __init__(self, db, feed: ChangeFeed, collections=WATCHED_COLLECTIONS):
        self.db = db
        self.feed = feed
        self.collections = collections
        self._tasks: List[asyncio.Task] = []

    def start(self):
        for name in self.collections:
            self._tasks.append(asyncio.create_task(self._watch(name)))
        logger.info("Watching change streams for %s", ", ".join(self.collections))

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _watch(self, name: str):
        try:
            async with self.db[name].watch() as stream:
                async for change in stream:
                    event_type = _OPERATION_TYPES.get(change.get("operationType"))
                    if event_type is None:
                        continue
                    record_id = change.get("documentKey", {}).get("_id")
                    await self.feed.publish(ChangeEvent(
                        table=name,
                        event_type=event_type,
                        record_id=str(record_id) if record_id is not None else None
                    ))
        except PyMongoError as e:
            logger.error("Change stream on %s stopped: %s", name, e)
