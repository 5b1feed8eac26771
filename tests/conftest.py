"""
Shared fixtures.

Services are async; tests drive them with ``run`` (asyncio.run).
MongoDB is replaced by mongomock so both backends are exercised without
a server.
"""

import asyncio

import mongomock
import pytest

from finance_tracker.services.storage.json_backend import create_json_backend
from finance_tracker.services.storage.mongo_backend import create_mongo_backend, ensure_indexes


@pytest.fixture
def run():
    """Run a coroutine to completion."""
    return asyncio.run


@pytest.fixture
def mongo_client():
    client = mongomock.MongoClient(tz_aware=True)
    yield client
    client.close()


@pytest.fixture(params=["json", "mongo"])
def backend(request, tmp_path):
    """The same service bundle contract, once per backend."""
    if request.param == "json":
        return create_json_backend(tmp_path / "data")

    client = mongomock.MongoClient(tz_aware=True)
    request.addfinalizer(client.close)
    database = client["finance_tracker_test"]
    ensure_indexes(database)
    return create_mongo_backend(database)


@pytest.fixture
def make_user(backend, run):
    """Register a user on the current backend and return it."""
    def _make(username="alice", email=None, password="secret123"):
        result = run(backend.users.create_user({
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
        }))
        assert result.ok, result.message
        return result.record
    return _make
