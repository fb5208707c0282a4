# tests/conftest.py
"""Pytest configuration and fixtures"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Sequence

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.dispatch.errors import TransportError  # noqa: E402
from app.core.dispatch.models import DeliveryOutcome, NotificationRequest  # noqa: E402
from app.infra.metrics import get_metrics_collector  # noqa: E402


class FakeDeliveryClient:
    """
    In-memory DeliveryClient.

    ``responder(call_index, batch)`` returns outcomes or raises; the default
    delivers every token successfully.
    """

    def __init__(self, responder: Callable[[int, Sequence[str]], list[DeliveryOutcome]] | None = None):
        self.calls: list[tuple[list[str], NotificationRequest]] = []
        self._responder = responder or (lambda _i, batch: [
            DeliveryOutcome(recipient=t, success=True) for t in batch
        ])

    @property
    def name(self) -> str:
        return "fake"

    async def send(self, batch, request):
        index = len(self.calls)
        self.calls.append((list(batch), request))
        return self._responder(index, batch)


def _failing_on(*call_indexes: int, retryable: bool = True):
    """Responder that raises TransportError on the given call numbers"""
    def responder(index, batch):
        if index in call_indexes:
            raise TransportError("provider unreachable", batch_size=len(batch), retryable=retryable)
        return [DeliveryOutcome(recipient=t, success=True) for t in batch]
    return responder


@pytest.fixture
def fake_client():
    return FakeDeliveryClient()


@pytest.fixture
def make_client():
    """Factory for FakeDeliveryClient with a custom responder"""
    return FakeDeliveryClient


@pytest.fixture
def failing_on():
    """Factory for responders that raise TransportError on given calls"""
    return _failing_on


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()
