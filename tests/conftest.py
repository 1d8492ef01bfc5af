"""Shared pytest fixtures for branchchat tests."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

from branchchat.agent_client import ChatClient
from branchchat.registry import ConversationRegistry
from branchchat.storage import RegistryStore


@pytest.fixture(scope="session")
def agent_available() -> bool:
    """Check if a completion server is running on port 8080.

    Used by live tests to skip gracefully when the server is unavailable.
    """
    client = ChatClient(base_url="http://localhost:8080", timeout=5)
    return client.health_check()


@pytest.fixture
def temp_db_path() -> Path:
    """Create a temporary database file path.

    Returns:
        Path to a temporary .db file (file created but empty).
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return Path(f.name)


@pytest.fixture
def ticking_clock(monkeypatch):
    """Make message timestamps strictly increasing, one second apart."""
    start = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    ticks = {"count": 0}

    def fake_now() -> datetime:
        ticks["count"] += 1
        return start + timedelta(seconds=ticks["count"])

    monkeypatch.setattr("branchchat.registry.utcnow", fake_now)
    return fake_now


@pytest.fixture
def registry(ticking_clock) -> ConversationRegistry:
    """In-memory registry holding one empty conversation."""
    reg = ConversationRegistry()
    reg.create_conversation("Test Conversation")
    return reg


@pytest.fixture
def store(temp_db_path: Path) -> RegistryStore:
    store = RegistryStore.open(temp_db_path)
    yield store
    store.close()


@pytest.fixture
def mock_client() -> Mock:
    """Stand-in for ChatClient with canned answers."""
    client = Mock(spec=ChatClient)
    client.complete.return_value = "Here is my answer."
    client.summarize_branch_name.return_value = "Neural Networks"
    client.summarize_conversation_name.return_value = "Learning about AI"
    client.condense_outline.return_value = "[]"
    return client
