"""
Pytest configuration for RichStore.

Ensures the project root and this tests directory are on sys.path so
`import richstore` and `import factories` resolve during test collection
without an install, and provides ready-made index and store fixtures.
"""

import os
import sys

import mongomock
import pytest

# Compute project root (parent of this tests directory)
_TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
_PROJECT_ROOT = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir))
for _path in (_PROJECT_ROOT, _TESTS_DIR):
    if _path not in sys.path:
        sys.path.insert(0, _path)

from factories import FakeClock  # noqa: E402
from richstore.adapters.database.mongodb_index import MongoReferenceIndex  # noqa: E402
from richstore.adapters.database.sql_index import SqlReferenceIndex  # noqa: E402
from richstore.storage.memory_storage import MemoryStore  # noqa: E402


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def staging_dir(tmp_path):
    return str(tmp_path / "staging")


@pytest.fixture
def sql_index(staging_dir, fake_clock):
    index = SqlReferenceIndex("sqlite://", staging_dir, clock=fake_clock)
    yield index
    index.close()


@pytest.fixture
def mongo_index():
    client = mongomock.MongoClient()
    index = MongoReferenceIndex(client["richstore_test"], client=client)
    yield index
    index.close()


@pytest.fixture(params=["sql", "mongodb"])
def reference_index(request, staging_dir, fake_clock):
    """Both index variants, flushed on demand by the tests."""
    if request.param == "sql":
        index = SqlReferenceIndex("sqlite://", staging_dir, clock=fake_clock)
    else:
        client = mongomock.MongoClient()
        index = MongoReferenceIndex(client["richstore_test"], client=client)
    yield index
    index.close()


@pytest.fixture
def memory_store():
    return MemoryStore()
