import uuid

import pytest
from fastapi.testclient import TestClient

from main import app
from shared.auth import decode_token, get_password_hash
from shared.db import get_db
from services.user_management.models.users import SchoolUser


class _Result:
    def __init__(self, user):
        self._user = user

    def scalars(self):
        return self

    def first(self):
        return self._user


class FakeSession:
    """Answers the single email lookup the login route runs."""

    def __init__(self, users):
        self.users = {user.email: user for user in users}

    async def execute(self, statement):
        email = next(iter(statement.compile().params.values()))
        return _Result(self.users.get(email))


def _user(email, roles, is_active=True):
    return SchoolUser(
        id=uuid.uuid4(),
        name=email.split("@")[0].title(),
        email=email,
        hashed_password=get_password_hash("secret123"),
        roles=roles,
        school_id="school-1",
        is_active=is_active,
    )


@pytest.fixture
def users():
    return {
        "teacher": _user("jane@school.ac.ke", ["teacher", "hod"]),
        "student": _user("kim@school.ac.ke", ["student"]),
        "inactive": _user("gone@school.ac.ke", ["teacher"], is_active=False),
    }


@pytest.fixture
def client(users):
    session = FakeSession(users.values())
    app.dependency_overrides[get_db] = lambda: session
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_login_issues_token_for_user(client, users):
    teacher = users["teacher"]
    response = client.post("/school/login", json={"email": teacher.email, "password": "secret123"})
    assert response.status_code == 200
    body = response.json()
    assert body["roles"] == ["teacher", "hod"]
    assert body["token_type"] == "bearer"

    claims = decode_token(body["access_token"])
    assert claims["user_id"] == str(teacher.id)
    assert claims["school_id"] == "school-1"
    assert "student_id" not in claims


def test_student_token_carries_student_id(client, users):
    student = users["student"]
    response = client.post("/school/login", json={"email": student.email, "password": "secret123"})
    assert response.status_code == 200
    assert decode_token(response.json()["access_token"])["student_id"] == str(student.id)


def test_wrong_password_is_401(client, users):
    response = client.post("/school/login", json={"email": users["teacher"].email, "password": "nope"})
    assert response.status_code == 401


def test_unknown_or_inactive_user_is_401(client, users):
    response = client.post("/school/login", json={"email": "nobody@school.ac.ke", "password": "secret123"})
    assert response.status_code == 401
    response = client.post("/school/login", json={"email": users["inactive"].email, "password": "secret123"})
    assert response.status_code == 401
