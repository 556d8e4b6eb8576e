"""
Briq Trust Ledger — Record Types

Value shapes for everything the ledger stores about an address:

    TrustProfile
    ├── TenantRecord    payments, tenancies, behavioral scores, counters
    ├── LandlordRecord  managed properties, deposit returns, sub-scores
    ├── CurrentRental   the tenant's active agreement (if any)
    └── RentalHistory   one entry per agreement, from this party's side

Event records (PaymentRecord, TenancyRecord, ...) are frozen once built.
The per-side aggregates are mutable and are changed only by the EventRecorder.

Serialization follows the persisted JSON layout (camelCase keys, amounts as
decimal strings so minor-unit integers of any size survive the round trip).
Timestamps are epoch milliseconds.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple

from trustledger.errors import WrongUserType


# Seed values for freshly initialized profiles
DEFAULT_BEHAVIORAL_SCORE = 85
DEFAULT_LEGAL_COMPLIANCE_SCORE = 90
BASE_TENANT_SCORE = 700
BASE_LANDLORD_SCORE = 85


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def normalize_address(address: str) -> str:
    """Case-normalize an address so variants resolve to one profile."""
    return address.strip().lower()


# =============================================
# ENUMS
# =============================================

class UserType(str, Enum):
    TENANT   = "tenant"
    LANDLORD = "landlord"
    BOTH     = "both"

    @property
    def has_tenant_side(self) -> bool:
        return self in (UserType.TENANT, UserType.BOTH)

    @property
    def has_landlord_side(self) -> bool:
        return self in (UserType.LANDLORD, UserType.BOTH)


class PaymentStatus(str, Enum):
    ON_TIME = "on-time"
    LATE    = "late"
    MISSED  = "missed"


class ReasonForLeaving(str, Enum):
    LEASE_EXPIRED = "lease-expired"
    EVICTED       = "evicted"
    VOLUNTARY     = "voluntary"
    BREACH        = "breach"


class LicenseStatus(str, Enum):
    ACTIVE    = "active"
    EXPIRED   = "expired"
    SUSPENDED = "suspended"


class RentalStatus(str, Enum):
    ACTIVE = "active"
    ENDED  = "ended"


# =============================================
# EVENT RECORDS (immutable)
# =============================================

@dataclass(frozen=True)
class PaymentRecord:
    amount: int                         # minor units
    due_date: int
    paid_date: int                      # 0 when missed
    status: PaymentStatus
    late_days: int = 0
    property_id: str = ""
    transaction_hash: Optional[str] = None   # proof reference

    def __post_init__(self):
        object.__setattr__(self, "amount", int(self.amount))
        object.__setattr__(self, "status", PaymentStatus(self.status))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "amount": str(self.amount),
            "dueDate": self.due_date,
            "paidDate": self.paid_date,
            "status": self.status.value,
            "lateDays": self.late_days,
            "propertyId": self.property_id,
        }
        if self.transaction_hash is not None:
            data["transactionHash"] = self.transaction_hash
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PaymentRecord":
        return PaymentRecord(
            amount=int(data["amount"]),
            due_date=data["dueDate"],
            paid_date=data.get("paidDate", 0),
            status=PaymentStatus(data["status"]),
            late_days=data.get("lateDays", 0),
            property_id=data.get("propertyId", ""),
            transaction_hash=data.get("transactionHash"),
        )


@dataclass(frozen=True)
class TenancyRecord:
    property_id: str
    landlord_address: str
    start_date: int
    end_date: int
    monthly_rent: int
    deposit: int
    early_termination: bool = False
    reason_for_leaving: ReasonForLeaving = ReasonForLeaving.LEASE_EXPIRED
    landlord_rating: Optional[int] = None    # 1-5, given by the tenant
    tenant_rating: Optional[int] = None      # 1-5, given by the landlord

    def __post_init__(self):
        object.__setattr__(self, "monthly_rent", int(self.monthly_rent))
        object.__setattr__(self, "deposit", int(self.deposit))
        object.__setattr__(self, "reason_for_leaving", ReasonForLeaving(self.reason_for_leaving))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "propertyId": self.property_id,
            "landlordAddress": self.landlord_address,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "monthlyRent": str(self.monthly_rent),
            "deposit": str(self.deposit),
            "earlyTermination": self.early_termination,
            "reasonForLeaving": self.reason_for_leaving.value,
        }
        if self.landlord_rating is not None:
            data["landlordRating"] = self.landlord_rating
        if self.tenant_rating is not None:
            data["tenantRating"] = self.tenant_rating
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TenancyRecord":
        return TenancyRecord(
            property_id=data["propertyId"],
            landlord_address=data.get("landlordAddress", ""),
            start_date=data.get("startDate", 0),
            end_date=data.get("endDate", 0),
            monthly_rent=int(data.get("monthlyRent", "0")),
            deposit=int(data.get("deposit", "0")),
            early_termination=data.get("earlyTermination", False),
            reason_for_leaving=ReasonForLeaving(data.get("reasonForLeaving", "lease-expired")),
            landlord_rating=data.get("landlordRating"),
            tenant_rating=data.get("tenantRating"),
        )


@dataclass(frozen=True)
class PropertyManagementRecord:
    property_id: str
    maintenance_response_time: float = 0.0      # average hours
    maintenance_completion_time: float = 0.0    # average hours
    property_condition_score: float = 0.0       # 0-100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "propertyId": self.property_id,
            "maintenanceResponseTime": self.maintenance_response_time,
            "maintenanceCompletionTime": self.maintenance_completion_time,
            "propertyConditionScore": self.property_condition_score,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PropertyManagementRecord":
        return PropertyManagementRecord(
            property_id=data["propertyId"],
            maintenance_response_time=data.get("maintenanceResponseTime", 0.0),
            maintenance_completion_time=data.get("maintenanceCompletionTime", 0.0),
            property_condition_score=data.get("propertyConditionScore", 0.0),
        )


@dataclass(frozen=True)
class DepositReturnRecord:
    tenant_address: str
    property_id: str
    deposit_amount: int
    returned_amount: int
    deduction_reasons: Tuple[str, ...] = ()
    return_time_in_days: int = 0
    tenant_satisfaction_rating: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "deposit_amount", int(self.deposit_amount))
        object.__setattr__(self, "returned_amount", int(self.returned_amount))
        object.__setattr__(self, "deduction_reasons", tuple(self.deduction_reasons))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "tenantAddress": self.tenant_address,
            "propertyId": self.property_id,
            "depositAmount": str(self.deposit_amount),
            "returnedAmount": str(self.returned_amount),
            "deductionReasons": list(self.deduction_reasons),
            "returnTimeInDays": self.return_time_in_days,
        }
        if self.tenant_satisfaction_rating is not None:
            data["tenantSatisfactionRating"] = self.tenant_satisfaction_rating
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DepositReturnRecord":
        return DepositReturnRecord(
            tenant_address=data["tenantAddress"],
            property_id=data["propertyId"],
            deposit_amount=int(data.get("depositAmount", "0")),
            returned_amount=int(data.get("returnedAmount", "0")),
            deduction_reasons=tuple(data.get("deductionReasons", [])),
            return_time_in_days=data.get("returnTimeInDays", 0),
            tenant_satisfaction_rating=data.get("tenantSatisfactionRating"),
        )


@dataclass(frozen=True)
class RentalHistoryEntry:
    """One party's copy of a signed rental agreement."""
    counterparty: str                   # the other party's address
    counterparty_role: str              # "tenant" on the landlord's ledger, "landlord" on the tenant's
    property_id: str
    start_date: str
    monthly_rent: int
    deposit: int
    signature: str
    agreement_hash: str
    status: RentalStatus = RentalStatus.ACTIVE

    def __post_init__(self):
        object.__setattr__(self, "monthly_rent", int(self.monthly_rent))
        object.__setattr__(self, "deposit", int(self.deposit))
        object.__setattr__(self, "status", RentalStatus(self.status))

    def to_dict(self) -> Dict[str, Any]:
        return {
            f"{self.counterparty_role}Address": self.counterparty,
            "propertyId": self.property_id,
            "startDate": self.start_date,
            "monthlyRent": str(self.monthly_rent),
            "deposit": str(self.deposit),
            "status": self.status.value,
            "signature": self.signature,
            "agreementHash": self.agreement_hash,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "RentalHistoryEntry":
        role = "tenant" if "tenantAddress" in data else "landlord"
        return RentalHistoryEntry(
            counterparty=data[f"{role}Address"],
            counterparty_role=role,
            property_id=data["propertyId"],
            start_date=data.get("startDate", ""),
            monthly_rent=int(data.get("monthlyRent", "0")),
            deposit=int(data.get("deposit", "0")),
            signature=data.get("signature", ""),
            agreement_hash=data["agreementHash"],
            status=RentalStatus(data.get("status", "active")),
        )


@dataclass(frozen=True)
class CurrentRental:
    landlord_address: str
    property_id: str
    start_date: str
    monthly_rent: int
    deposit: int
    signature: str
    agreement_hash: str

    def __post_init__(self):
        object.__setattr__(self, "monthly_rent", int(self.monthly_rent))
        object.__setattr__(self, "deposit", int(self.deposit))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "landlordAddress": self.landlord_address,
            "propertyId": self.property_id,
            "startDate": self.start_date,
            "monthlyRent": str(self.monthly_rent),
            "deposit": str(self.deposit),
            "signature": self.signature,
            "agreementHash": self.agreement_hash,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CurrentRental":
        return CurrentRental(
            landlord_address=data["landlordAddress"],
            property_id=data["propertyId"],
            start_date=data.get("startDate", ""),
            monthly_rent=int(data.get("monthlyRent", "0")),
            deposit=int(data.get("deposit", "0")),
            signature=data.get("signature", ""),
            agreement_hash=data["agreementHash"],
        )


# =============================================
# PER-SIDE AGGREGATES (mutable)
# =============================================

@dataclass
class TenantRecord:
    # Financial history
    payment_history: List[PaymentRecord] = field(default_factory=list)
    tenancy_history: List[TenancyRecord] = field(default_factory=list)

    # Behavioral sub-scores (0-100)
    maintenance_score: float = DEFAULT_BEHAVIORAL_SCORE
    communication_score: float = DEFAULT_BEHAVIORAL_SCORE
    compliance_score: float = DEFAULT_BEHAVIORAL_SCORE

    # Counters
    noise_complaints: int = 0
    damage_reports: int = 0
    evictions: int = 0
    disputes: int = 0

    # Financial reliability
    total_rent_paid: int = 0
    on_time_payment_percentage: int = 100      # derived
    average_late_days: int = 0                 # derived

    # Cached score (0-850)
    trust_score: int = BASE_TENANT_SCORE
    last_updated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthlyPaymentRecords": [p.to_dict() for p in self.payment_history],
            "previousTenancies": [t.to_dict() for t in self.tenancy_history],
            "propertyMaintenanceScore": self.maintenance_score,
            "communicationScore": self.communication_score,
            "leaseComplianceScore": self.compliance_score,
            "noiseComplaints": self.noise_complaints,
            "damageReports": self.damage_reports,
            "totalRentPaid": str(self.total_rent_paid),
            "onTimePaymentPercentage": self.on_time_payment_percentage,
            "averageLateDays": self.average_late_days,
            "evictionHistory": self.evictions,
            "disputeHistory": self.disputes,
            "trustScore": self.trust_score,
            "lastUpdated": self.last_updated,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TenantRecord":
        return TenantRecord(
            payment_history=[PaymentRecord.from_dict(p) for p in data.get("monthlyPaymentRecords", [])],
            tenancy_history=[TenancyRecord.from_dict(t) for t in data.get("previousTenancies", [])],
            maintenance_score=data.get("propertyMaintenanceScore", DEFAULT_BEHAVIORAL_SCORE),
            communication_score=data.get("communicationScore", DEFAULT_BEHAVIORAL_SCORE),
            compliance_score=data.get("leaseComplianceScore", DEFAULT_BEHAVIORAL_SCORE),
            noise_complaints=data.get("noiseComplaints", 0),
            damage_reports=data.get("damageReports", 0),
            evictions=data.get("evictionHistory", 0),
            disputes=data.get("disputeHistory", 0),
            total_rent_paid=int(data.get("totalRentPaid", "0")),
            on_time_payment_percentage=data.get("onTimePaymentPercentage", 100),
            average_late_days=data.get("averageLateDays", 0),
            trust_score=data.get("trustScore", BASE_TENANT_SCORE),
            last_updated=data.get("lastUpdated", 0),
        )


@dataclass
class LandlordRecord:
    # Property management, keyed by property_id (insertion order kept)
    properties_managed: Dict[str, PropertyManagementRecord] = field(default_factory=dict)

    # Financial transparency
    deposit_return_history: List[DepositReturnRecord] = field(default_factory=list)

    # Tenant relations (0-100)
    communication_score: float = DEFAULT_BEHAVIORAL_SCORE
    fairness_score: float = DEFAULT_BEHAVIORAL_SCORE
    professionalism_score: float = DEFAULT_BEHAVIORAL_SCORE
    dispute_resolution_score: float = DEFAULT_BEHAVIORAL_SCORE

    # Legal compliance
    legal_compliance_score: float = DEFAULT_LEGAL_COMPLIANCE_SCORE
    unauthorized_entry_reports: int = 0
    discrimination_complaints: int = 0
    license_status: LicenseStatus = LicenseStatus.ACTIVE

    # Cached score (0-100)
    trust_score: int = BASE_LANDLORD_SCORE
    last_updated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "propertiesManaged": [p.to_dict() for p in self.properties_managed.values()],
            "depositReturnHistory": [d.to_dict() for d in self.deposit_return_history],
            "communicationScore": self.communication_score,
            "fairnessScore": self.fairness_score,
            "professionalismScore": self.professionalism_score,
            "disputeResolutionScore": self.dispute_resolution_score,
            "legalComplianceScore": self.legal_compliance_score,
            "unauthorizedEntryReports": self.unauthorized_entry_reports,
            "discriminationComplaints": self.discrimination_complaints,
            "licenseStatus": LicenseStatus(self.license_status).value,
            "trustScore": self.trust_score,
            "lastUpdated": self.last_updated,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "LandlordRecord":
        properties = [PropertyManagementRecord.from_dict(p) for p in data.get("propertiesManaged", [])]
        return LandlordRecord(
            properties_managed={p.property_id: p for p in properties},
            deposit_return_history=[DepositReturnRecord.from_dict(d) for d in data.get("depositReturnHistory", [])],
            communication_score=data.get("communicationScore", DEFAULT_BEHAVIORAL_SCORE),
            fairness_score=data.get("fairnessScore", DEFAULT_BEHAVIORAL_SCORE),
            professionalism_score=data.get("professionalismScore", DEFAULT_BEHAVIORAL_SCORE),
            dispute_resolution_score=data.get("disputeResolutionScore", DEFAULT_BEHAVIORAL_SCORE),
            legal_compliance_score=data.get("legalComplianceScore", DEFAULT_LEGAL_COMPLIANCE_SCORE),
            unauthorized_entry_reports=data.get("unauthorizedEntryReports", 0),
            discrimination_complaints=data.get("discriminationComplaints", 0),
            license_status=LicenseStatus(data.get("licenseStatus", "active")),
            trust_score=data.get("trustScore", BASE_LANDLORD_SCORE),
            last_updated=data.get("lastUpdated", 0),
        )


# =============================================
# THE PROFILE
# =============================================

@dataclass
class TrustProfile:
    address: str
    user_type: UserType
    created_at: int
    updated_at: int
    tenant: Optional[TenantRecord] = None
    landlord: Optional[LandlordRecord] = None
    current_rental: Optional[CurrentRental] = None
    rental_history: List[RentalHistoryEntry] = field(default_factory=list)
    revision: int = 0                   # bumped by every save

    @staticmethod
    def create(address: str, user_type: UserType, timestamp: int) -> "TrustProfile":
        """Seed a new profile with the sides its user type calls for."""
        user_type = UserType(user_type)
        return TrustProfile(
            address=normalize_address(address),
            user_type=user_type,
            created_at=timestamp,
            updated_at=timestamp,
            tenant=TenantRecord(last_updated=timestamp) if user_type.has_tenant_side else None,
            landlord=LandlordRecord(last_updated=timestamp) if user_type.has_landlord_side else None,
        )

    def require_tenant(self) -> TenantRecord:
        if self.tenant is None:
            raise WrongUserType(self.address, required="tenant", user_type=self.user_type.value)
        return self.tenant

    def require_landlord(self) -> LandlordRecord:
        if self.landlord is None:
            raise WrongUserType(self.address, required="landlord", user_type=self.user_type.value)
        return self.landlord

    def has_agreement(self, agreement_hash: str) -> bool:
        return any(e.agreement_hash == agreement_hash for e in self.rental_history)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "userAddress": self.address,
            "userType": self.user_type.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "revision": self.revision,
        }
        if self.tenant is not None:
            data["tenantData"] = self.tenant.to_dict()
        if self.landlord is not None:
            data["landlordData"] = self.landlord.to_dict()
        if self.current_rental is not None:
            data["currentRental"] = self.current_rental.to_dict()
        if self.rental_history:
            data["rentalHistory"] = [e.to_dict() for e in self.rental_history]
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TrustProfile":
        tenant = data.get("tenantData")
        landlord = data.get("landlordData")
        current = data.get("currentRental")
        return TrustProfile(
            address=normalize_address(data["userAddress"]),
            user_type=UserType(data["userType"]),
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
            tenant=TenantRecord.from_dict(tenant) if tenant is not None else None,
            landlord=LandlordRecord.from_dict(landlord) if landlord is not None else None,
            current_rental=CurrentRental.from_dict(current) if current is not None else None,
            rental_history=[RentalHistoryEntry.from_dict(e) for e in data.get("rentalHistory", [])],
            revision=data.get("revision", 0),
        )
