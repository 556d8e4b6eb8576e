"""Shared fixtures: an in-memory ledger with a deterministic clock."""

import pytest

from trustledger.ledger import TrustLedger, create_ledger
from trustledger.store.backends import MemoryBackend
from trustledger.store.profiles import ProfileStore
from trustledger.trust.recorder import EventRecorder

TENANT = "0xA11CE00000000000000000000000000000000001"
LANDLORD = "0xB0B0000000000000000000000000000000000002"
OTHER_TENANT = "0xCAFE000000000000000000000000000000000003"

START_MS = 1_700_000_000_000


class TickingClock:
    """Epoch-millisecond clock that advances one second per reading."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend, clock: TickingClock) -> ProfileStore:
    return ProfileStore(backend, clock=clock)


@pytest.fixture
def recorder(store: ProfileStore, clock: TickingClock) -> EventRecorder:
    return EventRecorder(store, clock=clock)


@pytest.fixture
def ledger(backend: MemoryBackend, clock: TickingClock) -> TrustLedger:
    return create_ledger(backend, clock=clock)
