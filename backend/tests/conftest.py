"""
Pytest configuration and shared test helpers for backend tests.
"""
import os
import sys
import copy
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

# Skip heavy server startup (MongoDB, scheduler) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from pymongo import errors as mongo_errors
from fastapi.testclient import TestClient

from auth import create_access_token


# ============================================================================
# In-memory stand-in for the Motor collections the services use
# ============================================================================
_MISSING = object()


def _get_path(doc, path):
    current = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(doc, path, value):
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _matches(doc, query):
    for path, condition in query.items():
        value = _get_path(doc, path)
        plain = None if value is _MISSING else value
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, arg in condition.items():
                if op == "$ne" and plain == arg:
                    return False
                if op == "$in" and plain not in arg:
                    return False
                if op == "$exists" and (value is not _MISSING) != arg:
                    return False
        elif value is _MISSING or value != condition:
            return False
    return True


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if included:
        return {k: doc[k] for k in included if k in doc}
    return doc


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: (_get_path(d, key) is _MISSING, str(_get_path(d, key))), reverse=direction < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    async def to_list(self, length=None):
        return self._docs if length is None else self._docs[:length]


class FakeCollection:
    def __init__(self, unique_field=None):
        self.docs = []
        self.unique_field = unique_field

    async def find_one(self, query, projection=None):
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None):
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query or {})])

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    async def insert_one(self, doc):
        if self.unique_field and any(
            d.get(self.unique_field) == doc.get(self.unique_field) for d in self.docs
        ):
            raise mongo_errors.DuplicateKeyError(f"duplicate {self.unique_field}")
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=len(self.docs))

    def _apply(self, doc, update):
        for path, value in update.get("$set", {}).items():
            _set_path(doc, path, copy.deepcopy(value))
        for path, amount in update.get("$inc", {}).items():
            current = _get_path(doc, path)
            _set_path(doc, path, (0 if current is _MISSING else current) + amount)

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                self._apply(doc, update)
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def update_many(self, query, update):
        matched = [d for d in self.docs if _matches(d, query)]
        for doc in matched:
            self._apply(doc, update)
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched))


class FakeDatabase:
    def __init__(self):
        self.plan_configs = FakeCollection("key")
        self.stores = FakeCollection("store_id")
        self.review_count_settings = FakeCollection("store_id")
        self.audit_logs = FakeCollection()


@pytest.fixture
def fake_db():
    """Fresh in-memory database patched into the global database object."""
    db = FakeDatabase()
    with patch("database.database.get_db", return_value=db):
        yield db


# ============================================================================
# HTTP helpers
# ============================================================================
def bearer(role="admin", **claims):
    token = create_access_token({"sub": f"{role}-user", "role": role, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return bearer("admin")


@pytest.fixture
def moderator_headers():
    return bearer("moderator")


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app)."""
    from server import app
    return TestClient(app)
