"""
Briq Trust Ledger — Event Recorder

The only writer of profile aggregates. Every operation is one
read-modify-write cycle:

    Profile Store (read) → mutate aggregate → derive metrics → score → Profile Store (persist)

There is no in-memory-only mode: each call persists before it returns.

Concurrency: saves are last-write-wins unless the recorder is built with
optimistic=True, in which case it saves with the revision it read and
replays the whole cycle (up to `retries` times) when another writer got in
first.
"""
from enum import Enum
from typing import Callable, List, Optional, Union

import structlog

from trustledger.errors import Conflict, ProfileNotFound
from trustledger.store.profiles import ProfileStore
from trustledger.trust.engine import (
    SUB_SCORE_MAX,
    SUB_SCORE_MIN,
    calculate_landlord_trust_score,
    calculate_tenant_trust_score,
    clamp,
    derive_payment_metrics,
)
from trustledger.trust.records import (
    DepositReturnRecord,
    LandlordRecord,
    LicenseStatus,
    PaymentRecord,
    PropertyManagementRecord,
    TenancyRecord,
    TenantRecord,
    TrustProfile,
    UserType,
    normalize_address,
    now_ms,
)

logger = structlog.get_logger()


# =============================================
# ENUMS
# =============================================

class TenantDimension(str, Enum):
    MAINTENANCE   = "maintenance"
    COMMUNICATION = "communication"
    COMPLIANCE    = "compliance"


class LandlordDimension(str, Enum):
    COMMUNICATION   = "communication"
    FAIRNESS        = "fairness"
    PROFESSIONALISM = "professionalism"
    DISPUTE         = "dispute"
    LEGAL           = "legal"


class IncidentKind(str, Enum):
    # Tenant side
    NOISE_COMPLAINT = "noise_complaint"
    DAMAGE_REPORT   = "damage_report"
    EVICTION        = "eviction"
    DISPUTE         = "dispute"
    # Landlord side
    UNAUTHORIZED_ENTRY       = "unauthorized_entry"
    DISCRIMINATION_COMPLAINT = "discrimination_complaint"


_TENANT_SCORE_FIELDS = {
    TenantDimension.MAINTENANCE: "maintenance_score",
    TenantDimension.COMMUNICATION: "communication_score",
    TenantDimension.COMPLIANCE: "compliance_score",
}

_LANDLORD_SCORE_FIELDS = {
    LandlordDimension.COMMUNICATION: "communication_score",
    LandlordDimension.FAIRNESS: "fairness_score",
    LandlordDimension.PROFESSIONALISM: "professionalism_score",
    LandlordDimension.DISPUTE: "dispute_resolution_score",
    LandlordDimension.LEGAL: "legal_compliance_score",
}

_TENANT_COUNTERS = {
    IncidentKind.NOISE_COMPLAINT: "noise_complaints",
    IncidentKind.DAMAGE_REPORT: "damage_reports",
    IncidentKind.EVICTION: "evictions",
    IncidentKind.DISPUTE: "disputes",
}

_LANDLORD_COUNTERS = {
    IncidentKind.UNAUTHORIZED_ENTRY: "unauthorized_entry_reports",
    IncidentKind.DISCRIMINATION_COMPLAINT: "discrimination_complaints",
}

_TENANT_DIMENSIONS = {d.value for d in TenantDimension}
_LANDLORD_DIMENSIONS = {d.value for d in LandlordDimension}

Dimension = Union[TenantDimension, LandlordDimension, str]


# =============================================
# DERIVED STATE
# =============================================

def refresh_tenant(tenant: TenantRecord, timestamp: int) -> None:
    """Recompute derived payment metrics and the cached tenant score."""
    percentage, average_late = derive_payment_metrics(tenant.payment_history)
    tenant.on_time_payment_percentage = percentage
    tenant.average_late_days = average_late
    tenant.trust_score = calculate_tenant_trust_score(tenant)
    tenant.last_updated = timestamp


def refresh_landlord(landlord: LandlordRecord, timestamp: int) -> None:
    landlord.trust_score = calculate_landlord_trust_score(landlord)
    landlord.last_updated = timestamp


def _resolve_dimension(profile: TrustProfile, dimension: Dimension, side: Optional[str]):
    """
    Work out which side a behavioral dimension belongs to.

    "communication" exists on both sides: without an explicit side it goes to
    the tenant record when the profile has one, else to the landlord record.
    Returns (record, field_name).
    """
    if isinstance(dimension, TenantDimension):
        side = side or "tenant"
    elif isinstance(dimension, LandlordDimension):
        side = side or "landlord"

    name = dimension.value if isinstance(dimension, Enum) else str(dimension).strip().lower()
    tenant_dim = TenantDimension(name) if name in _TENANT_DIMENSIONS else None
    landlord_dim = LandlordDimension(name) if name in _LANDLORD_DIMENSIONS else None

    if tenant_dim is None and landlord_dim is None:
        raise ValueError(f"Unknown behavioral dimension: {name!r}")

    if side is None:
        if tenant_dim is not None and (profile.tenant is not None or landlord_dim is None):
            side = "tenant"
        else:
            side = "landlord"

    if side == "tenant":
        if tenant_dim is None:
            raise ValueError(f"{name!r} is not a tenant dimension")
        return profile.require_tenant(), _TENANT_SCORE_FIELDS[tenant_dim]
    if side == "landlord":
        if landlord_dim is None:
            raise ValueError(f"{name!r} is not a landlord dimension")
        return profile.require_landlord(), _LANDLORD_SCORE_FIELDS[landlord_dim]
    raise ValueError(f"Unknown side: {side!r}")


# =============================================
# THE RECORDER
# =============================================

class EventRecorder:
    """
    Usage:
        recorder = EventRecorder(store)
        recorder.record_payment("0xabc...", PaymentRecord(...))
        recorder.adjust_behavioral_score("0xabc...", "maintenance", 92)
    """

    def __init__(
        self,
        store: ProfileStore,
        clock: Callable[[], int] = now_ms,
        optimistic: bool = False,
        retries: int = 3,
        on_change: Optional[Callable[[TrustProfile], None]] = None,
    ):
        self._store = store
        self._clock = clock
        self._optimistic = optimistic
        self._retries = max(retries, 0)
        self._on_change = on_change

    # ------------------------------------------------------------------
    # Read-modify-write
    # ------------------------------------------------------------------

    def _load(self, address: str, auto_create: bool, user_type: UserType) -> TrustProfile:
        profile = self._store.find(address)
        if profile is not None:
            return profile
        if not auto_create:
            raise ProfileNotFound(normalize_address(address))
        logger.info("profile_auto_created", address=normalize_address(address), user_type=user_type.value)
        return TrustProfile.create(address, user_type, self._clock())

    def _apply(
        self,
        address: str,
        mutate: Callable[[TrustProfile, int], None],
        auto_create: bool = False,
        user_type: UserType = UserType.TENANT,
    ) -> TrustProfile:
        attempts = self._retries + 1 if self._optimistic else 1
        attempt = 0
        while True:
            attempt += 1
            profile = self._load(address, auto_create, user_type)
            expected = profile.revision if self._optimistic else None
            mutate(profile, self._clock())
            try:
                self._store.save(profile, expected_revision=expected)
            except Conflict as e:
                if attempt >= attempts:
                    raise
                logger.warning("profile_write_conflict_retrying", address=e.address,
                               attempt=attempt, expected=e.expected, actual=e.actual)
                continue
            self._notify(profile)
            return profile

    def _notify(self, profile: TrustProfile) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(profile)
        except Exception as e:
            logger.warning("profile_change_hook_failed", address=profile.address, error=str(e))

    # ------------------------------------------------------------------
    # Tenant events
    # ------------------------------------------------------------------

    def record_payment(self, address: str, payment: PaymentRecord, auto_create: bool = False) -> TrustProfile:
        """Append a payment, add it to total rent paid and rescore the tenant."""
        def mutate(profile: TrustProfile, timestamp: int) -> None:
            tenant = profile.require_tenant()
            tenant.payment_history.append(payment)
            tenant.total_rent_paid += payment.amount
            refresh_tenant(tenant, timestamp)

        profile = self._apply(address, mutate, auto_create=auto_create, user_type=UserType.TENANT)
        logger.info("payment_recorded",
                    address=profile.address,
                    property_id=payment.property_id,
                    status=payment.status.value,
                    amount=str(payment.amount),
                    on_time_pct=profile.tenant.on_time_payment_percentage,
                    trust_score=profile.tenant.trust_score)
        return profile

    def record_tenancy(self, address: str, tenancy: TenancyRecord, auto_create: bool = False) -> TrustProfile:
        def mutate(profile: TrustProfile, timestamp: int) -> None:
            tenant = profile.require_tenant()
            tenant.tenancy_history.append(tenancy)
            refresh_tenant(tenant, timestamp)

        profile = self._apply(address, mutate, auto_create=auto_create, user_type=UserType.TENANT)
        logger.info("tenancy_recorded",
                    address=profile.address,
                    property_id=tenancy.property_id,
                    tenancies=len(profile.tenant.tenancy_history),
                    trust_score=profile.tenant.trust_score)
        return profile

    # ------------------------------------------------------------------
    # Behavioral scores and incidents
    # ------------------------------------------------------------------

    def adjust_behavioral_score(
        self,
        address: str,
        dimension: Dimension,
        new_value: float,
        side: Optional[str] = None,
    ) -> TrustProfile:
        """
        Set a 0-100 sub-score. Out-of-range values are clamped (and logged),
        never rejected.
        """
        stored = clamp(new_value, SUB_SCORE_MIN, SUB_SCORE_MAX)
        if stored != new_value:
            logger.warning("behavioral_score_clamped", address=normalize_address(address),
                           dimension=str(getattr(dimension, "value", dimension)),
                           requested=new_value, stored=stored)

        def mutate(profile: TrustProfile, timestamp: int) -> None:
            record, field_name = _resolve_dimension(profile, dimension, side)
            setattr(record, field_name, stored)
            if isinstance(record, TenantRecord):
                refresh_tenant(record, timestamp)
            else:
                refresh_landlord(record, timestamp)

        profile = self._apply(address, mutate)
        logger.info("behavioral_score_adjusted", address=profile.address,
                    dimension=str(getattr(dimension, "value", dimension)), value=stored)
        return profile

    def record_incident(self, address: str, kind: Union[IncidentKind, str], count: int = 1) -> TrustProfile:
        """Bump an incident counter (noise complaint, dispute, unauthorized entry...)."""
        kind = IncidentKind(kind)
        if count < 1:
            raise ValueError("count must be positive")

        def mutate(profile: TrustProfile, timestamp: int) -> None:
            if kind in _TENANT_COUNTERS:
                tenant = profile.require_tenant()
                field_name = _TENANT_COUNTERS[kind]
                setattr(tenant, field_name, getattr(tenant, field_name) + count)
                refresh_tenant(tenant, timestamp)
            else:
                landlord = profile.require_landlord()
                field_name = _LANDLORD_COUNTERS[kind]
                setattr(landlord, field_name, getattr(landlord, field_name) + count)
                refresh_landlord(landlord, timestamp)

        profile = self._apply(address, mutate)
        logger.info("incident_recorded", address=profile.address, kind=kind.value, count=count)
        return profile

    # ------------------------------------------------------------------
    # Landlord events
    # ------------------------------------------------------------------

    def record_property_management(self, address: str, record: PropertyManagementRecord) -> TrustProfile:
        """Add or replace the management record for one property."""
        def mutate(profile: TrustProfile, timestamp: int) -> None:
            landlord = profile.require_landlord()
            landlord.properties_managed[record.property_id] = record
            refresh_landlord(landlord, timestamp)

        profile = self._apply(address, mutate)
        logger.info("property_management_recorded", address=profile.address,
                    property_id=record.property_id,
                    properties=len(profile.landlord.properties_managed),
                    trust_score=profile.landlord.trust_score)
        return profile

    def record_deposit_return(self, address: str, record: DepositReturnRecord) -> TrustProfile:
        def mutate(profile: TrustProfile, timestamp: int) -> None:
            landlord = profile.require_landlord()
            landlord.deposit_return_history.append(record)
            refresh_landlord(landlord, timestamp)

        profile = self._apply(address, mutate)
        logger.info("deposit_return_recorded", address=profile.address,
                    property_id=record.property_id,
                    returned=str(record.returned_amount),
                    deposit=str(record.deposit_amount))
        return profile

    def set_license_status(self, address: str, status: Union[LicenseStatus, str]) -> TrustProfile:
        status = LicenseStatus(status)

        def mutate(profile: TrustProfile, timestamp: int) -> None:
            landlord = profile.require_landlord()
            landlord.license_status = status
            refresh_landlord(landlord, timestamp)

        profile = self._apply(address, mutate)
        logger.info("license_status_set", address=profile.address, status=status.value)
        return profile

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def recompute(self, address: str) -> TrustProfile:
        """Re-derive every metric and score from the stored aggregates."""
        def mutate(profile: TrustProfile, timestamp: int) -> None:
            if profile.tenant is not None:
                refresh_tenant(profile.tenant, timestamp)
            if profile.landlord is not None:
                refresh_landlord(profile.landlord, timestamp)

        return self._apply(address, mutate)

    def recompute_all(self) -> List[TrustProfile]:
        profiles = []
        for address in self._store.addresses():
            try:
                profiles.append(self.recompute(address))
            except ProfileNotFound:
                logger.warning("recompute_skipped_untrusted_record", address=address)
        return profiles
