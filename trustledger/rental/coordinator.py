"""
Briq Trust Ledger — Rental Agreement Coordinator

Writes one signed agreement into two independent profiles. There is no
transaction spanning both, so the write is a small saga driven by an
agreement registry (one entry per property):

    propose ─► registry: PENDING ─► landlord ledger ─► tenant ledger ─► registry: ACTIVE
                   │                      │                  │
                   │                      │ fails            │ fails
                   │                      ▼                  ▼
                   │               entry removed,     entry stays PENDING,
                   │               error re-raised    degraded outcome returned
                   ▼
           different hash already
           PENDING/ACTIVE → AlreadyRented

terminate_rental() frees the property and leaves a tombstone keyed by the
agreement hash, so replaying an ended agreement is a no-op.

The agreement hash is the join key. Re-proposing the same agreement resumes
it, and each side skips the write if its history already holds the hash, so
retries never duplicate entries. reconcile() finishes PENDING entries.

Registry key:  briq_agreements_{quoted property_id}
Tombstone key: briq_ended_agreements_{agreement_hash}
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import structlog

from trustledger.errors import AlreadyRented, PartialUpdateFailure
from trustledger.rental.signatures import RentalAgreement
from trustledger.store.backends import KeyValueBackend
from trustledger.store.profiles import ProfileStore
from trustledger.trust.records import (
    CurrentRental,
    RentalHistoryEntry,
    RentalStatus,
    TrustProfile,
    UserType,
    normalize_address,
    now_ms,
)

logger = structlog.get_logger()

REGISTRY_KEY_PREFIX = "briq_agreements_"
REGISTRY_VERSION = "1.0"
ENDED_KEY_PREFIX = "briq_ended_agreements_"


def registry_key(property_id: str) -> str:
    # Storage keys must not carry path separators or glob characters
    return f"{REGISTRY_KEY_PREFIX}{quote(property_id, safe='')}"


def ended_key(agreement_hash: str) -> str:
    return f"{ENDED_KEY_PREFIX}{quote(agreement_hash, safe='')}"


class AgreementState(str, Enum):
    PENDING = "pending"
    ACTIVE  = "active"
    ENDED   = "ended"


@dataclass
class AgreementEntry:
    """Registry record tracking how far an agreement got."""
    agreement: RentalAgreement
    signature: str
    state: AgreementState = AgreementState.PENDING
    landlord_recorded: bool = False
    tenant_recorded: bool = False
    created_at: int = 0
    updated_at: int = 0

    @property
    def agreement_hash(self) -> str:
        return self.agreement.agreement_hash

    @property
    def property_id(self) -> str:
        return self.agreement.property_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": REGISTRY_VERSION,
            "agreement": self.agreement.to_dict(),
            "signature": self.signature,
            "state": self.state.value,
            "landlordRecorded": self.landlord_recorded,
            "tenantRecorded": self.tenant_recorded,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "AgreementEntry":
        return AgreementEntry(
            agreement=RentalAgreement.from_dict(data["agreement"]),
            signature=data.get("signature", ""),
            state=AgreementState(data.get("state", "pending")),
            landlord_recorded=data.get("landlordRecorded", False),
            tenant_recorded=data.get("tenantRecorded", False),
            created_at=data.get("createdAt", 0),
            updated_at=data.get("updatedAt", 0),
        )


@dataclass
class RentalOutcome:
    agreement_hash: str
    property_id: str
    state: AgreementState
    landlord_recorded: bool
    tenant_recorded: bool
    degraded: bool = False              # one side failed; reconcile() will finish it
    duplicate: bool = False             # the agreement was already known
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agreement_hash": self.agreement_hash,
            "property_id": self.property_id,
            "state": self.state.value,
            "landlord_recorded": self.landlord_recorded,
            "tenant_recorded": self.tenant_recorded,
            "degraded": self.degraded,
            "duplicate": self.duplicate,
            "error": self.error,
        }


class RentalCoordinator:
    """
    Usage:
        coordinator = RentalCoordinator(store, projector=projector)
        agreement = RentalAgreement.create("prop-1", landlord, tenant, 1500, 3000, "2025-01-01T00:00:00.000Z")
        outcome = coordinator.propose_rental_agreement(agreement, signature)
        if outcome.degraded:
            coordinator.reconcile(outcome.agreement_hash)
    """

    def __init__(
        self,
        store: ProfileStore,
        registry: Optional[KeyValueBackend] = None,
        projector=None,
        clock=now_ms,
    ):
        self._store = store
        self._registry = registry if registry is not None else store.backend
        self._projector = projector
        self._clock = clock

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def _read_entry(self, key: str) -> Optional[AgreementEntry]:
        raw = self._registry.get(key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if data.get("version") != REGISTRY_VERSION:
                logger.warning("agreement_entry_version_mismatch", key=key, found=data.get("version"))
                return None
            return AgreementEntry.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("agreement_entry_malformed", key=key, error=str(e))
            return None

    def _write_entry(self, entry: AgreementEntry) -> None:
        entry.updated_at = self._clock()
        self._registry.set(registry_key(entry.property_id), json.dumps(entry.to_dict(), sort_keys=True))

    def _claim(self, entry: AgreementEntry) -> Optional[AgreementEntry]:
        """
        Insert a new PENDING entry if the property is free.
        Returns None on success, or whatever entry got there first.
        """
        key = registry_key(entry.property_id)
        raw = self._registry.get(key)
        if raw is not None:
            current = self._read_entry(key)
            if current is not None:
                return current
            logger.warning("agreement_entry_replaced", key=key)

        entry.created_at = entry.updated_at = self._clock()
        if self._registry.set_if_unchanged(key, raw, json.dumps(entry.to_dict(), sort_keys=True)):
            return None
        # Lost the race: whoever won wrote a fresh entry
        return self._claim(entry)

    def agreement_for_property(self, property_id: str) -> Optional[AgreementEntry]:
        return self._read_entry(registry_key(property_id))

    def ended_agreement(self, agreement_hash: str) -> Optional[AgreementEntry]:
        """The tombstone left by terminate_rental(), if the agreement has ended."""
        return self._read_entry(ended_key(agreement_hash))

    def agreements(self) -> List[AgreementEntry]:
        entries = []
        for key in self._registry.keys(REGISTRY_KEY_PREFIX):
            entry = self._read_entry(key)
            if entry is not None:
                entries.append(entry)
        return entries

    def agreements_for_landlord(self, address: str) -> List[AgreementEntry]:
        """Every registered agreement where `address` is the landlord."""
        address = normalize_address(address)
        return [e for e in self.agreements() if e.agreement.landlord_address == address]

    # ------------------------------------------------------------------
    # Ledger writes
    # ------------------------------------------------------------------

    def _load_or_initialize(self, address: str, user_type: UserType) -> TrustProfile:
        profile = self._store.find(address)
        if profile is None:
            profile = self._store.initialize(address, user_type)
        return profile

    def _write_landlord_side(self, agreement: RentalAgreement, signature: str) -> None:
        profile = self._load_or_initialize(agreement.landlord_address, UserType.LANDLORD)
        if profile.has_agreement(agreement.agreement_hash):
            logger.debug("agreement_side_already_recorded", side="landlord",
                         agreement_hash=agreement.agreement_hash)
            return
        profile.rental_history.append(RentalHistoryEntry(
            counterparty=agreement.tenant_address,
            counterparty_role="tenant",
            property_id=agreement.property_id,
            start_date=agreement.start_date,
            monthly_rent=agreement.monthly_rent,
            deposit=agreement.deposit,
            signature=signature,
            agreement_hash=agreement.agreement_hash,
        ))
        self._store.save(profile)

    def _write_tenant_side(self, agreement: RentalAgreement, signature: str) -> None:
        profile = self._load_or_initialize(agreement.tenant_address, UserType.TENANT)
        profile.current_rental = CurrentRental(
            landlord_address=agreement.landlord_address,
            property_id=agreement.property_id,
            start_date=agreement.start_date,
            monthly_rent=agreement.monthly_rent,
            deposit=agreement.deposit,
            signature=signature,
            agreement_hash=agreement.agreement_hash,
        )
        if not profile.has_agreement(agreement.agreement_hash):
            profile.rental_history.append(RentalHistoryEntry(
                counterparty=agreement.landlord_address,
                counterparty_role="landlord",
                property_id=agreement.property_id,
                start_date=agreement.start_date,
                monthly_rent=agreement.monthly_rent,
                deposit=agreement.deposit,
                signature=signature,
                agreement_hash=agreement.agreement_hash,
            ))
        self._store.save(profile)

    def _refresh_metadata(self, *addresses: str) -> None:
        if self._projector is None:
            return
        for address in addresses:
            try:
                self._projector.refresh(address)
            except Exception as e:
                logger.warning("metadata_refresh_failed", address=address, error=str(e))

    def _advance(self, entry: AgreementEntry, duplicate: bool, compensate: bool) -> RentalOutcome:
        """Drive an entry through whatever ledger writes it still needs."""
        agreement = entry.agreement

        if not entry.landlord_recorded:
            try:
                self._write_landlord_side(agreement, entry.signature)
            except Exception as e:
                logger.error("agreement_landlord_write_failed",
                             agreement_hash=agreement.agreement_hash,
                             property_id=agreement.property_id,
                             error=str(e))
                if compensate:
                    self._registry.delete(registry_key(agreement.property_id))
                    logger.info("agreement_registry_entry_released", property_id=agreement.property_id)
                raise
            entry.landlord_recorded = True
            self._write_entry(entry)

        if not entry.tenant_recorded:
            try:
                self._write_tenant_side(agreement, entry.signature)
            except Exception as e:
                failure = PartialUpdateFailure(agreement.agreement_hash, "tenant", e)
                logger.error("agreement_partial_update",
                             agreement_hash=agreement.agreement_hash,
                             property_id=agreement.property_id,
                             failed_side=failure.failed_side,
                             error=str(e))
                self._refresh_metadata(agreement.landlord_address)
                return RentalOutcome(
                    agreement_hash=agreement.agreement_hash,
                    property_id=agreement.property_id,
                    state=entry.state,
                    landlord_recorded=True,
                    tenant_recorded=False,
                    degraded=True,
                    duplicate=duplicate,
                    error=str(failure),
                )
            entry.tenant_recorded = True

        entry.state = AgreementState.ACTIVE
        self._write_entry(entry)
        self._refresh_metadata(agreement.landlord_address, agreement.tenant_address)

        logger.info("agreement_active",
                    agreement_hash=agreement.agreement_hash,
                    property_id=agreement.property_id,
                    landlord=agreement.landlord_address,
                    tenant=agreement.tenant_address,
                    duplicate=duplicate)
        return RentalOutcome(
            agreement_hash=agreement.agreement_hash,
            property_id=agreement.property_id,
            state=entry.state,
            landlord_recorded=True,
            tenant_recorded=True,
            duplicate=duplicate,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def propose_rental_agreement(self, agreement: RentalAgreement, signature: str) -> RentalOutcome:
        """
        Record a signed agreement on both ledgers.

        Raises AlreadyRented (nothing mutated) if the property carries a
        different pending or active agreement. Raises whatever the landlord
        write raised if that write fails. A tenant-side failure is returned
        as a degraded outcome instead.
        """
        if not agreement.verify_hash():
            raise ValueError(f"Agreement hash {agreement.agreement_hash} does not match its terms")

        ended = self.ended_agreement(agreement.agreement_hash)
        if ended is not None:
            logger.info("agreement_already_ended", agreement_hash=agreement.agreement_hash,
                        property_id=agreement.property_id)
            return RentalOutcome(
                agreement_hash=ended.agreement_hash,
                property_id=ended.property_id,
                state=AgreementState.ENDED,
                landlord_recorded=ended.landlord_recorded,
                tenant_recorded=ended.tenant_recorded,
                duplicate=True,
            )

        entry = AgreementEntry(agreement=agreement, signature=signature)
        existing = self._claim(entry)
        duplicate = existing is not None

        if existing is not None:
            if existing.agreement_hash != agreement.agreement_hash:
                logger.warning("agreement_rejected_property_rented",
                               property_id=agreement.property_id,
                               active_hash=existing.agreement_hash,
                               proposed_hash=agreement.agreement_hash)
                raise AlreadyRented(agreement.property_id, existing.agreement_hash)
            if existing.state == AgreementState.ACTIVE:
                logger.info("agreement_already_active", agreement_hash=agreement.agreement_hash)
                return RentalOutcome(
                    agreement_hash=existing.agreement_hash,
                    property_id=existing.property_id,
                    state=existing.state,
                    landlord_recorded=existing.landlord_recorded,
                    tenant_recorded=existing.tenant_recorded,
                    duplicate=True,
                )
            entry = existing
            logger.info("agreement_resumed", agreement_hash=agreement.agreement_hash,
                        landlord_recorded=entry.landlord_recorded)
        else:
            logger.info("agreement_pending", agreement_hash=agreement.agreement_hash,
                        property_id=agreement.property_id)

        return self._advance(entry, duplicate=duplicate, compensate=True)

    def reconcile(self, agreement_hash: Optional[str] = None) -> List[RentalOutcome]:
        """
        Finish PENDING agreements (all of them, or just the one with `agreement_hash`).
        Entries that still fail stay PENDING for the next pass.
        """
        outcomes = []
        for entry in self.agreements():
            if entry.state != AgreementState.PENDING:
                continue
            if agreement_hash is not None and entry.agreement_hash != agreement_hash:
                continue
            try:
                outcomes.append(self._advance(entry, duplicate=True, compensate=False))
            except Exception as e:
                logger.warning("agreement_reconcile_failed", agreement_hash=entry.agreement_hash, error=str(e))

        logger.info("agreements_reconciled",
                    processed=len(outcomes),
                    activated=sum(1 for o in outcomes if o.state == AgreementState.ACTIVE))
        return outcomes

    def terminate_rental(self, property_id: str) -> Optional[AgreementEntry]:
        """
        End the agreement on a property. History entries on both sides become
        ENDED and the tenant's current rental is cleared. The registry entry
        is replaced by a tombstone under the agreement hash, which frees the
        property for new agreements but not for a replay of this one.
        Returns the ended entry, or None if nothing was registered.
        """
        entry = self.agreement_for_property(property_id)
        if entry is None:
            return None

        agreement = entry.agreement
        entry.state = AgreementState.ENDED
        entry.updated_at = self._clock()
        self._registry.set(ended_key(agreement.agreement_hash), json.dumps(entry.to_dict(), sort_keys=True))

        for address in (agreement.landlord_address, agreement.tenant_address):
            profile = self._store.find(address)
            if profile is None:
                continue
            changed = False
            for i, history in enumerate(profile.rental_history):
                if history.agreement_hash == agreement.agreement_hash and history.status != RentalStatus.ENDED:
                    profile.rental_history[i] = RentalHistoryEntry(
                        counterparty=history.counterparty,
                        counterparty_role=history.counterparty_role,
                        property_id=history.property_id,
                        start_date=history.start_date,
                        monthly_rent=history.monthly_rent,
                        deposit=history.deposit,
                        signature=history.signature,
                        agreement_hash=history.agreement_hash,
                        status=RentalStatus.ENDED,
                    )
                    changed = True
            current = profile.current_rental
            if current is not None and current.agreement_hash == agreement.agreement_hash:
                profile.current_rental = None
                changed = True
            if changed:
                self._store.save(profile)

        self._registry.delete(registry_key(property_id))
        self._refresh_metadata(agreement.landlord_address, agreement.tenant_address)
        logger.info("agreement_terminated", agreement_hash=agreement.agreement_hash, property_id=property_id)
        return entry
