"""Shared pytest fixtures and configuration."""

from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from lendlock.loan_engine.engine import LoanEngine, LoanIdGenerator
from lendlock.loan_engine.notifications import NotificationSink
from lendlock.loan_engine.storage import InMemoryLoanStore
from lendlock.shared.loan_errors import NotificationError


class RecordingSink(NotificationSink):
    """Notification sink that keeps every message and can be told to fail."""

    def __init__(self):
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.failing_channels: Set[str] = set()
        self.fail_after: Optional[int] = None

    async def send(self, channel: str, payload: Dict[str, Any]) -> None:
        if channel in self.failing_channels:
            raise NotificationError("sink unavailable", channel, payload.get("loan_id"))
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise NotificationError("sink unavailable", channel, payload.get("loan_id"))
        self.sent.append((channel, dict(payload)))

    def on(self, channel: str) -> List[Dict[str, Any]]:
        return [payload for sent_channel, payload in self.sent if sent_channel == channel]


@pytest.fixture
def store():
    """Create an in-memory loan store."""
    return InMemoryLoanStore()


@pytest.fixture
def sink():
    """Create a recording notification sink."""
    return RecordingSink()


@pytest.fixture
def engine(store, sink):
    """Create a LoanEngine over the in-memory store and recording sink."""
    clock = iter(range(1_700_000_000, 1_800_000_000))
    return LoanEngine(store, sink, id_generator=LoanIdGenerator(clock=lambda: next(clock)))
