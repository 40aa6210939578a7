"""Shared fixtures for the engine tests."""

from __future__ import annotations

import pytest_asyncio

from flowstate.history.store import HistoryStore


@pytest_asyncio.fixture
async def store(tmp_path):
    """An opened HistoryStore backed by a temporary sqlite file."""
    history_store = HistoryStore(db_path=str(tmp_path / "history.db"))
    await history_store.open()
    yield history_store
    await history_store.close()

