"""
Fixtures shared by unit and integration tests.
"""

import tempfile
from pathlib import Path

import pytest

from tombstone.softdelete_server.store import SqliteRecordStore

from .support import RecordingSink, build_registry


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def store(data_dir, registry):
    """SQLite store over a fresh database file."""
    return SqliteRecordStore(str(Path(data_dir) / "app.db"), registry, wal_mode=False)


@pytest.fixture
def events():
    return RecordingSink()
