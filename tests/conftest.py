import asyncio
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import DuplicateKeyError

from database import ensure_indexes, get_db
from main import create_app


@pytest.fixture
def db():
    database = AsyncMongoMockClient()["eduport_test"]
    asyncio.run(ensure_indexes(database))
    return database


@pytest.fixture
def client(db):
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def signup(client):
    """Create an account and return (auth headers, public user)."""

    def _signup(name, email, role=None, password="s3cret-pass"):
        payload = {"name": name, "email": email, "password": password}
        if role:
            payload["role"] = role
        response = client.post("/api/auth/signup", json=payload)
        assert response.status_code == 201, response.text
        body = response.json()
        return bearer(body["token"]), body["user"]

    return _signup


@pytest.fixture
def admin_headers(db):
    """Admins cannot sign up, so seed one directly and mint its token."""
    from security import create_access_token, get_password_hash

    async def _seed():
        result = await db["users"].insert_one({
            "name": "Ada Admin",
            "email": "ada@eduport.io",
            "passwordHash": get_password_hash("admin-pass"),
            "role": "admin",
        })
        return str(result.inserted_id)

    admin_id = asyncio.run(_seed())
    token = create_access_token({"id": admin_id, "role": "admin", "email": "ada@eduport.io", "name": "Ada Admin"})
    return bearer(token)


@pytest.fixture
def make_course(client):
    def _make_course(headers, title="Intro to Python", lessons=2, published=True, **fields):
        payload = {
            "title": title,
            "description": "Course description",
            "price": 10,
            "category": "programming",
            "published": published,
            "lessons": [
                {"title": f"Lesson {i + 1}", "content": "...", "durationMinutes": 10}
                for i in range(lessons)
            ],
            **fields,
        }
        response = client.post("/api/courses", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _make_course


class LosingCollection:
    """Collection whose next ``method`` call loses a unique-index race to ``winner``."""

    def __init__(self, collection, method, winner):
        self._collection = collection
        self._method = method
        self._winner = winner
        self._raced = False

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if name != self._method or self._raced:
            return attr

        async def lose(*args, **kwargs):
            self._raced = True
            # The competing request commits first
            await self._collection.insert_one(self._winner)
            raise DuplicateKeyError("E11000 duplicate key error")

        return lose


class RacingDatabase:
    def __init__(self, db, collection_name, collection):
        self._db = db
        self._collection_name = collection_name
        self._collection = collection

    def __getitem__(self, name):
        if name == self._collection_name:
            return self._collection
        return self._db[name]


@pytest.fixture
def racing_client(db):
    """Client whose next write to one collection loses a race to a concurrent insert."""

    def _racing_client(collection_name, method, winner):
        losing = LosingCollection(db[collection_name], method, winner)
        app = create_app()
        app.dependency_overrides[get_db] = lambda: RacingDatabase(db, collection_name, losing)
        return TestClient(app)

    return _racing_client
