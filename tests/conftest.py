"""Shared pytest fixtures for all tests."""

import os

import pytest

from chaindrive.store.memory import MemoryStore

CHANNEL = 4242


@pytest.fixture
def store():
    """
    Empty in-memory record store.

    Returns:
        MemoryStore with the default 10 attachment limit
    """
    return MemoryStore()


@pytest.fixture
def cache_dir(tmp_path):
    """Directory for temporary extents."""
    path = tmp_path / 'cache'
    path.mkdir()
    return path


@pytest.fixture
def make_file(tmp_path):
    """
    Factory creating a file of random bytes.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Function (name, size) -> Path
    """
    source_dir = tmp_path / 'source'
    source_dir.mkdir()

    def _make(name: str, size: int):
        path = source_dir / name
        path.write_bytes(os.urandom(size))
        return path

    return _make


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep CHAINDRIVE_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith('CHAINDRIVE_'):
            monkeypatch.delenv(key)
