import pytest

from errors import ValidationFailed
from services.realtime import ChangeEvent, ChangeFeed


async def test_upload_and_download(storage):
    path = await storage.upload("assignment-files", "a/b/report.pdf", b"%PDF-1.4", "application/pdf")

    url = storage.get_public_url("assignment-files", path)

    assert url == "http://test/files/assignment-files/a/b/report.pdf"
    assert storage.path_from_url("assignment-files", url) == "a/b/report.pdf"
    assert await storage.download("assignment-files", path) == b"%PDF-1.4"


async def test_paths_cannot_escape_the_bucket(storage):
    with pytest.raises(ValidationFailed):
        await storage.upload("assignment-files", "../outside.txt", b"x")


async def test_missing_object(storage):
    with pytest.raises(ValidationFailed):
        await storage.download("assignment-files", "nope.txt")


async def test_feed_delivers_per_table():
    feed = ChangeFeed()
    received = []

    async def on_change(event):
        received.append(event.table)

    subscription = feed.subscribe("assignments", on_change)
    await feed.publish(ChangeEvent(table="assignments", event_type="INSERT"))
    await feed.publish(ChangeEvent(table="submissions", event_type="INSERT"))
    subscription.unsubscribe()
    await feed.publish(ChangeEvent(table="assignments", event_type="UPDATE"))

    assert received == ["assignments"]
    assert feed.subscriber_count("assignments") == 0


async def test_failing_subscriber_does_not_block_others():
    feed = ChangeFeed()
    received = []

    async def broken(event):
        raise RuntimeError("boom")

    async def working(event):
        received.append(event.event_type)

    feed.subscribe("submissions", broken)
    feed.subscribe("submissions", working)

    await feed.publish(ChangeEvent(table="submissions", event_type="DELETE"))

    assert received == ["DELETE"]
