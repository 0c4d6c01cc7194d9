import asyncio
from datetime import timedelta

from conftest import PASSWORD, STUDENT_EMAIL, TEACHER_EMAIL
from models.common import utcnow
from models.user import RoleEnum
from services.realtime import ASSIGNMENTS, SUBMISSIONS


def expire(store):
    store.auth._session.expires_at = utcnow() - timedelta(seconds=1)


async def test_expired_session_loses_its_subscriptions(registry, feed, teacher, student):
    student_token, student_store = await registry.login(STUDENT_EMAIL, PASSWORD, RoleEnum.student)
    teacher_token, _ = await registry.login(TEACHER_EMAIL, PASSWORD, RoleEnum.teacher)
    assert feed.subscriber_count(ASSIGNMENTS) == 2

    expire(student_store)

    assert await registry.prune_expired() == 1
    assert list(registry.stores) == [teacher_token]
    assert feed.subscriber_count(ASSIGNMENTS) == 1
    assert feed.subscriber_count(SUBMISSIONS) == 1


async def test_login_closes_lapsed_sessions(registry, feed, teacher, student):
    for _ in range(3):
        _, store = await registry.login(STUDENT_EMAIL, PASSWORD, RoleEnum.student)
        expire(store)

    teacher_token, teacher_store = await registry.login(TEACHER_EMAIL, PASSWORD, RoleEnum.teacher)

    assert list(registry.stores) == [teacher_token]
    assert feed.subscriber_count(ASSIGNMENTS) == 1

    refetched = []

    async def list_assignments():
        refetched.append("teacher")
        return []

    teacher_store.assignment_crud.list_assignments = list_assignments
    await teacher_store.create_assignment({
        "title": "Essay", "description": "Describe", "due_date": utcnow() + timedelta(days=1),
    })
    assert refetched == ["teacher"]


async def test_sweeper_closes_lapsed_sessions(registry, feed, student):
    token, store = await registry.login(STUDENT_EMAIL, PASSWORD, RoleEnum.student)
    expire(store)

    registry.start_sweeper(0.01)
    try:
        for _ in range(100):
            if token not in registry.stores:
                break
            await asyncio.sleep(0.01)
    finally:
        await registry.stop_sweeper()

    assert token not in registry.stores
    assert feed.subscriber_count(ASSIGNMENTS) == 0


async def test_live_sessions_survive_pruning(registry, student):
    token, _ = await registry.login(STUDENT_EMAIL, PASSWORD, RoleEnum.student)

    assert await registry.prune_expired() == 0
    assert token in registry.stores
