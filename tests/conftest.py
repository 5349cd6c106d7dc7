"""Shared fixtures for metasync tests."""

from unittest.mock import AsyncMock

import pytest


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def upstream():
    """Upstream client mock with one record per category and no documents."""
    client = AsyncMock()
    client.get_tags.return_value = [{"id": 1, "name": "invoice"}]
    client.list_correspondents_names.return_value = [{"id": 10, "name": "ACME", "document_count": 3}]
    client.list_document_types_names.return_value = [{"id": 20, "name": "Letter"}]
    client.get_documents_optimized.return_value = []
    return client


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Unset every metasync environment variable and run from an empty directory."""
    from metasync.models.config import EnvSettings

    for name in EnvSettings.model_fields:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch
