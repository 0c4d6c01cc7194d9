from datetime import timedelta

import pytest
from mongomock_motor import AsyncMongoMockClient

from database import create_indexes
from models.common import utcnow
from models.user import RoleEnum
from schemas.assignment import UploadedFile
from services.realtime import ChangeFeed
from services.sessions import SessionRegistry
from services.storage import FileStorage

TEACHER_EMAIL = "teacher@example.com"
STUDENT_EMAIL = "student@example.com"
PASSWORD = "secret123"


@pytest.fixture
async def db():
    database = AsyncMongoMockClient()["classroom_test"]
    await create_indexes(database)
    return database


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def storage(tmp_path):
    return FileStorage(root_dir=str(tmp_path / "storage"), base_url="http://test")


@pytest.fixture
async def registry(db, storage, feed):
    registry = SessionRegistry(db, storage, feed)
    yield registry
    registry.close_all()


@pytest.fixture
async def teacher(registry):
    return await registry.sign_up(TEACHER_EMAIL, PASSWORD, "Ms Teacher", RoleEnum.teacher)


@pytest.fixture
async def student(registry):
    return await registry.sign_up(STUDENT_EMAIL, PASSWORD, "Sam Student", RoleEnum.student)


@pytest.fixture
async def teacher_store(registry, teacher):
    store = registry.create_store()
    await store.login(TEACHER_EMAIL, PASSWORD, RoleEnum.teacher)
    yield store
    store.close()


@pytest.fixture
async def student_store(registry, student):
    store = registry.create_store()
    await store.login(STUDENT_EMAIL, PASSWORD, RoleEnum.student)
    yield store
    store.close()


def assignment_data(**overrides):
    data = {
        "title": "Essay",
        "description": "Write about the water cycle",
        "due_date": utcnow() + timedelta(days=3),
        "max_marks": 100,
        "allow_late_submission": True,
        "penalty_percentage": 10,
    }
    data.update(overrides)
    return data


def upload(name="essay.txt", content=b"hello world", type="text/plain"):
    return UploadedFile(name=name, content=content, type=type)
