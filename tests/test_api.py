from datetime import timedelta
from urllib.parse import urlparse

import httpx
import pytest

from config import get_settings
from main import app
from models.common import utcnow

PASSWORD = "secret123"


@pytest.fixture
async def client(registry):
    app.state.registry = registry
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def signup_and_login(client, email, name, role):
    response = await client.post("/auth/signup", json={
        "name": name, "email": email, "password": PASSWORD, "role": role
    })
    assert response.status_code == 201
    response = await client.post("/auth/login", json={
        "email": email, "password": PASSWORD, "role": role
    })
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["role"] == role
    return {"Authorization": f"Bearer {body['access_token']}"}


def new_assignment(**overrides):
    data = {
        "title": "Essay",
        "description": "Write about the water cycle",
        "due_date": (utcnow() + timedelta(days=3)).isoformat(),
        "max_marks": 100,
        "allow_late_submission": True,
        "penalty_percentage": 10,
    }
    data.update(overrides)
    return data


async def test_full_assignment_flow(client):
    teacher = await signup_and_login(client, "teacher@example.com", "Ms Teacher", "teacher")
    student = await signup_and_login(client, "student@example.com", "Sam Student", "student")

    response = await client.post("/assignments/", json=new_assignment(), headers=teacher)
    assert response.status_code == 201
    assignment = response.json()
    assert assignment["due_status"] == "3 days remaining"
    assert assignment["late_policy"] == "Late allowed (10% penalty)"

    response = await client.get("/assignments/", headers=student)
    assert [a["id"] for a in response.json()] == [assignment["id"]]

    response = await client.post(
        f"/assignments/{assignment['id']}/submit",
        files=[("files", ("essay.txt", b"the water cycle", "text/plain"))],
        headers=student,
    )
    assert response.status_code == 200
    submission = response.json()
    assert submission["is_late"] is False
    assert submission["files"][0]["name"] == "essay.txt"

    response = await client.get(f"/assignments/{assignment['id']}/submissions", headers=teacher)
    assert [s["student_name"] for s in response.json()] == ["Sam Student"]

    response = await client.put(
        f"/assignments/submissions/{submission['id']}/grade",
        json={"marks": 105, "feedback": ""}, headers=teacher,
    )
    assert response.status_code == 422

    response = await client.put(
        f"/assignments/submissions/{submission['id']}/grade",
        json={"marks": 90, "feedback": "Nice"}, headers=teacher,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "graded"

    response = await client.get("/assignments/dashboard", headers=student)
    assert response.json() == {
        "total_assignments": 1, "completed": 1, "pending": 0, "overdue": 0, "average_score": 90.0
    }

    response = await client.get("/assignments/dashboard", headers=teacher)
    assert response.json()["completed_grading"] == 1

    download_path = urlparse(submission["files"][0]["url"]).path
    response = await client.get(download_path, headers=teacher)
    assert response.status_code == 200
    assert response.content == b"the water cycle"
    assert "essay.txt" in response.headers["content-disposition"]


async def test_students_cannot_create_assignments(client):
    student = await signup_and_login(client, "student@example.com", "Sam Student", "student")
    response = await client.post("/assignments/", json=new_assignment(), headers=student)
    assert response.status_code == 403


async def test_wrong_dashboard_is_refused(client):
    await client.post("/auth/signup", json={
        "name": "Sam Student", "email": "student@example.com", "password": PASSWORD, "role": "student"
    })
    response = await client.post("/auth/login", json={
        "email": "student@example.com", "password": PASSWORD, "role": "teacher"
    })
    assert response.status_code == 403
    assert response.json()["error"] == "RoleMismatch"


async def test_bad_credentials(client):
    response = await client.post("/auth/login", json={
        "email": "nobody@example.com", "password": PASSWORD, "role": "student"
    })
    assert response.status_code == 401


async def test_logout_revokes_token(client, registry):
    teacher = await signup_and_login(client, "teacher@example.com", "Ms Teacher", "teacher")
    assert (await client.get("/auth/me", headers=teacher)).status_code == 200

    response = await client.post("/auth/logout", headers=teacher)
    assert response.status_code == 204

    assert registry.stores == {}
    assert (await client.get("/auth/me", headers=teacher)).status_code == 401


async def test_late_submission_closed(client):
    teacher = await signup_and_login(client, "teacher@example.com", "Ms Teacher", "teacher")
    student = await signup_and_login(client, "student@example.com", "Sam Student", "student")
    past_due = (utcnow() - timedelta(days=1)).isoformat()

    response = await client.post(
        "/assignments/",
        json=new_assignment(due_date=past_due, allow_late_submission=False),
        headers=teacher,
    )
    assignment = response.json()
    assert assignment["penalty_percentage"] is None
    assert assignment["is_overdue"] is True

    response = await client.post(
        f"/assignments/{assignment['id']}/submit",
        files=[("files", ("late.txt", b"sorry", "text/plain"))],
        headers=student,
    )
    assert response.status_code == 422


async def test_oversized_upload_is_refused(client, monkeypatch):
    teacher = await signup_and_login(client, "teacher@example.com", "Ms Teacher", "teacher")
    student = await signup_and_login(client, "student@example.com", "Sam Student", "student")
    assignment = (await client.post("/assignments/", json=new_assignment(), headers=teacher)).json()
    monkeypatch.setattr(get_settings(), "MAX_UPLOAD_SIZE", 4)

    response = await client.post(
        f"/assignments/{assignment['id']}/submit",
        files=[("files", ("essay.txt", b"the water cycle", "text/plain"))],
        headers=student,
    )

    assert response.status_code == 422
    assert "larger than 4 bytes" in response.json()["detail"]
    response = await client.get("/assignments/submissions/mine", headers=student)
    assert response.json() == []
