"""Runtime configuration for a chat session."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from branchchat.storage.registry_store import STORAGE_KEY


@dataclass
class ChatConfig:
    db_path: Path = Path("data/branchchat.db")
    agent_url: str = "http://localhost:8080"
    model: str | None = None
    timeout: int = 30
    max_retries: int = 3
    max_tokens: int = 1000
    name_max_tokens: int = 20
    condense_max_tokens: int = 1200
    temperature: float = 0.7
    storage_key: str = STORAGE_KEY
    default_title: str = "Chat with Claude"
    messages_per_minute: int = 30
    branches_per_minute: int = 10

    def validate(self) -> None:
        """Raise ValueError describing every invalid field."""
        problems = []
        if not self.agent_url or not self.agent_url.strip():
            problems.append("agent_url must not be blank")
        if self.timeout < 1:
            problems.append("timeout must be at least 1 second")
        if self.max_retries < 0:
            problems.append("max_retries must not be negative")
        for name in ("max_tokens", "name_max_tokens", "condense_max_tokens"):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive")
        for name in ("messages_per_minute", "branches_per_minute"):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive")
        if not self.storage_key:
            problems.append("storage_key must not be blank")
        if problems:
            raise ValueError("Invalid configuration: " + "; ".join(problems))
