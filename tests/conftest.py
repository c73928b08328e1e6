"""Shared pytest fixtures for tutor engine tests.

Provides:
- ``repository``: Fresh InMemoryTutorRepository per test
- ``metrics_collector``: Fresh MetricsCollector per test
- ``notifier``: AsyncMock standing in for the Telegram AdminNotifier
- ``make_orchestrator``: Factory for an initialized ChatOrchestrator
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from agents.chat_orchestrator import ChatOrchestrator
from services.metrics import MetricsCollector
from services.notifier import AdminNotifier
from services.repository import InMemoryTutorRepository
from tests.fakes import FakeBackend


@pytest.fixture
def repository() -> InMemoryTutorRepository:
    """Fresh repository — isolated per test."""
    return InMemoryTutorRepository()


@pytest.fixture
def metrics_collector() -> MetricsCollector:
    """Fresh metrics collector — isolated per test."""
    return MetricsCollector()


@pytest.fixture
def notifier() -> AsyncMock:
    mock = AsyncMock(spec=AdminNotifier)
    mock.notify_admin.return_value = True
    mock.send_message.return_value = True
    return mock


@pytest.fixture
def make_orchestrator(repository, metrics_collector, notifier):
    """Build and initialize an orchestrator around a FakeBackend."""

    async def _make(backend: FakeBackend | None = None, *, user_id: str | None = "u-test-001", **kwargs):
        orchestrator = ChatOrchestrator(
            user_id,
            backend or FakeBackend(),
            repository=kwargs.pop("repository", repository),
            notifier=kwargs.pop("notifier", notifier),
            metrics=metrics_collector,
            **kwargs,
        )
        await orchestrator.initialize()
        return orchestrator

    return _make
