"""
Briq Trust Ledger — Composition root

Wires one storage backend into every component:

    KeyValueBackend ─► ProfileStore ─┬─► EventRecorder ──(on change)──► MetadataProjector
                                     └─► RentalCoordinator ────────────► MetadataProjector

Nothing here is global. The API app and the CLI each build their own
TrustLedger from settings; tests build one around a MemoryBackend.
"""
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from trustledger.config import Settings, get_settings
from trustledger.rental.coordinator import RentalCoordinator
from trustledger.store.backends import KeyValueBackend, build_backend
from trustledger.store.profiles import ProfileStore
from trustledger.trust.projector import MetadataProjector
from trustledger.trust.recorder import EventRecorder
from trustledger.trust.records import now_ms

logger = structlog.get_logger()


@dataclass
class TrustLedger:
    backend: KeyValueBackend
    store: ProfileStore
    recorder: EventRecorder
    coordinator: RentalCoordinator
    projector: MetadataProjector
    currency_unit: str = "HBAR"

    def close(self) -> None:
        self.backend.close()


def create_ledger(
    backend: KeyValueBackend,
    clock: Callable[[], int] = now_ms,
    platform: str = "Briq",
    currency_unit: str = "HBAR",
    optimistic: bool = False,
    retries: int = 3,
) -> TrustLedger:
    store = ProfileStore(backend, clock=clock)
    projector = MetadataProjector(store, platform=platform)
    recorder = EventRecorder(
        store,
        clock=clock,
        optimistic=optimistic,
        retries=retries,
        on_change=lambda profile: projector.refresh(profile.address),
    )
    coordinator = RentalCoordinator(store, projector=projector, clock=clock)
    return TrustLedger(
        backend=backend,
        store=store,
        recorder=recorder,
        coordinator=coordinator,
        projector=projector,
        currency_unit=currency_unit,
    )


def build_ledger(settings: Optional[Settings] = None) -> TrustLedger:
    """Build the ledger described by environment settings."""
    settings = settings or get_settings()
    ledger = create_ledger(
        build_backend(settings),
        platform=settings.PLATFORM_NAME,
        currency_unit=settings.CURRENCY_UNIT,
        optimistic=settings.OPTIMISTIC_WRITES,
        retries=settings.WRITE_RETRIES,
    )
    logger.info("ledger_ready",
                storage=settings.STORAGE_BACKEND,
                optimistic_writes=settings.OPTIMISTIC_WRITES,
                platform=settings.PLATFORM_NAME)
    return ledger
