# tests/conftest.py

import pytest

from tests.helpers import create_temp_store, remove_temp_store


@pytest.fixture
def store():
    """A fresh SQLite store with the default divisions seeded."""
    store, db_path = create_temp_store()
    yield store
    remove_temp_store(store, db_path)
