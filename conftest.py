import pytest

import database
from library import Library


@pytest.fixture
def lib():
    return Library()


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    # Every test gets its own snapshot file, also used as the module default
    path = str(tmp_path / "library_test.db")
    monkeypatch.setattr(database, "DATABASE_FILE", path)
    return path
