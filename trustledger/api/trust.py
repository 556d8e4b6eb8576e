"""
Briq Trust Ledger — Trust API

Profiles:
    GET  /v1/trust/health                          - Health check
    POST /v1/trust/profiles                        - Initialize a profile
    GET  /v1/trust/profiles/{address}              - Full stored profile
    GET  /v1/trust/profiles/{address}/metadata     - NFT metadata projection
    GET  /v1/trust/profiles/{address}/summary      - Headline scores

Events:
    POST /v1/trust/profiles/{address}/payments     - Record a rent payment
    POST /v1/trust/profiles/{address}/tenancies    - Record a completed tenancy
    POST /v1/trust/profiles/{address}/scores       - Adjust a behavioral sub-score

Rental agreements:
    POST   /v1/trust/agreements                    - Propose a signed agreement
    POST   /v1/trust/agreements/message            - Build the message both parties sign
    POST   /v1/trust/agreements/reconcile          - Finish pending agreements
    DELETE /v1/trust/agreements/{property_id}      - Terminate the agreement on a property
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
import structlog

from trustledger.errors import (
    AlreadyExists,
    AlreadyRented,
    Conflict,
    LedgerError,
    ProfileNotFound,
    WrongUserType,
)
from trustledger.ledger import TrustLedger
from trustledger.rental.signatures import RentalAgreement, build_signature_message
from trustledger.trust.projector import build_metadata, summarize
from trustledger.trust.records import PaymentRecord, TenancyRecord, UserType

logger = structlog.get_logger()


# =============================================
# REQUEST/RESPONSE MODELS
# =============================================

class CreateProfileRequest(BaseModel):
    address: str = Field(..., min_length=1)
    user_type: str = Field(..., pattern="^(tenant|landlord|both)$")


class PaymentRequest(BaseModel):
    amount: int = Field(..., ge=0, description="Minor currency units")
    due_date: int
    paid_date: int = 0
    status: str = Field(..., pattern="^(on-time|late|missed)$")
    late_days: int = Field(0, ge=0)
    property_id: str = ""
    transaction_hash: Optional[str] = None
    auto_create: bool = False


class TenancyRequest(BaseModel):
    property_id: str
    landlord_address: str
    start_date: int
    end_date: int
    monthly_rent: int = Field(..., ge=0)
    deposit: int = Field(..., ge=0)
    early_termination: bool = False
    reason_for_leaving: str = Field("lease-expired", pattern="^(lease-expired|evicted|voluntary|breach)$")
    landlord_rating: Optional[int] = Field(None, ge=1, le=5)
    tenant_rating: Optional[int] = Field(None, ge=1, le=5)
    auto_create: bool = False


class ScoreAdjustRequest(BaseModel):
    dimension: str
    value: float = Field(..., allow_inf_nan=False)
    side: Optional[str] = Field(None, pattern="^(tenant|landlord)$")


class AgreementTerms(BaseModel):
    property_id: str = Field(..., min_length=1)
    landlord_address: str = Field(..., min_length=1)
    tenant_address: str = Field(..., min_length=1)
    monthly_rent: int = Field(..., ge=0)
    deposit: int = Field(..., ge=0)
    start_date: str
    nonce: Optional[str] = None
    agreement_hash: Optional[str] = None

    def to_agreement(self) -> RentalAgreement:
        agreement = RentalAgreement.create(
            self.property_id, self.landlord_address, self.tenant_address,
            self.monthly_rent, self.deposit, self.start_date, nonce=self.nonce,
        )
        if self.agreement_hash is not None and self.agreement_hash != agreement.agreement_hash:
            raise HTTPException(status_code=400, detail="agreement_hash does not match the agreement terms")
        return agreement


class ProposeAgreementRequest(AgreementTerms):
    nonce: str
    signature: str = Field(..., min_length=1)


class ReconcileRequest(BaseModel):
    agreement_hash: Optional[str] = None


class OutcomeResponse(BaseModel):
    agreement_hash: str
    property_id: str
    state: str
    landlord_recorded: bool
    tenant_recorded: bool
    degraded: bool
    duplicate: bool
    error: Optional[str] = None


# =============================================
# DEPENDENCIES / ERROR MAPPING
# =============================================

def get_ledger(request: Request) -> TrustLedger:
    return request.app.state.ledger


def _http_error(e: LedgerError) -> HTTPException:
    if isinstance(e, WrongUserType):
        return HTTPException(status_code=422, detail={
            "error": "wrong_user_type",
            "address": e.address,
            "required": e.required,
            "user_type": e.user_type,
        })
    if isinstance(e, ProfileNotFound):
        return HTTPException(status_code=404, detail={"error": "profile_not_found", "address": e.address})
    if isinstance(e, AlreadyExists):
        return HTTPException(status_code=409, detail={"error": "already_exists", "address": e.address})
    if isinstance(e, AlreadyRented):
        return HTTPException(status_code=409, detail={
            "error": "already_rented",
            "property_id": e.property_id,
            "active_hash": e.active_hash,
        })
    if isinstance(e, Conflict):
        return HTTPException(status_code=409, detail={
            "error": "conflict",
            "address": e.address,
            "expected_revision": e.expected,
            "actual_revision": e.actual,
        })
    logger.error("ledger_error", error=str(e), type=type(e).__name__)
    return HTTPException(status_code=500, detail={"error": "ledger_error", "message": str(e)})


# =============================================
# ROUTES
# =============================================

trust_router = APIRouter(prefix="/v1/trust", tags=["trust"])


@trust_router.get("/health")
async def trust_health(ledger: TrustLedger = Depends(get_ledger)):
    """Health check for the Trust API."""
    return {
        "status": "healthy",
        "service": "briq-trust-ledger",
        "storage": type(ledger.backend).__name__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Profiles ──────────────────────────────────────

@trust_router.post("/profiles", status_code=201)
def create_profile(body: CreateProfileRequest, ledger: TrustLedger = Depends(get_ledger)):
    try:
        profile = ledger.store.initialize(body.address, UserType(body.user_type))
    except LedgerError as e:
        raise _http_error(e)
    ledger.projector.refresh(profile.address)
    return profile.to_dict()


@trust_router.get("/profiles/{address}")
def get_profile(address: str, ledger: TrustLedger = Depends(get_ledger)):
    try:
        return ledger.store.get(address).to_dict()
    except LedgerError as e:
        raise _http_error(e)


@trust_router.get("/profiles/{address}/metadata")
def get_metadata(address: str, ledger: TrustLedger = Depends(get_ledger)):
    """Stored NFT metadata, or a fresh projection if none was stored yet."""
    try:
        profile = ledger.store.get(address)
    except LedgerError as e:
        raise _http_error(e)
    stored = ledger.projector.get_metadata(profile.address)
    if stored is not None:
        return stored
    return build_metadata(profile)


@trust_router.get("/profiles/{address}/summary")
def get_summary(address: str, ledger: TrustLedger = Depends(get_ledger)):
    try:
        return summarize(ledger.store.get(address))
    except LedgerError as e:
        raise _http_error(e)


# ── Events ────────────────────────────────────────

@trust_router.post("/profiles/{address}/payments")
def record_payment(address: str, body: PaymentRequest, ledger: TrustLedger = Depends(get_ledger)):
    payment = PaymentRecord(
        amount=body.amount,
        due_date=body.due_date,
        paid_date=body.paid_date,
        status=body.status,
        late_days=body.late_days,
        property_id=body.property_id,
        transaction_hash=body.transaction_hash,
    )
    try:
        profile = ledger.recorder.record_payment(address, payment, auto_create=body.auto_create)
    except LedgerError as e:
        raise _http_error(e)
    return summarize(profile)


@trust_router.post("/profiles/{address}/tenancies")
def record_tenancy(address: str, body: TenancyRequest, ledger: TrustLedger = Depends(get_ledger)):
    tenancy = TenancyRecord(
        property_id=body.property_id,
        landlord_address=body.landlord_address,
        start_date=body.start_date,
        end_date=body.end_date,
        monthly_rent=body.monthly_rent,
        deposit=body.deposit,
        early_termination=body.early_termination,
        reason_for_leaving=body.reason_for_leaving,
        landlord_rating=body.landlord_rating,
        tenant_rating=body.tenant_rating,
    )
    try:
        profile = ledger.recorder.record_tenancy(address, tenancy, auto_create=body.auto_create)
    except LedgerError as e:
        raise _http_error(e)
    return summarize(profile)


@trust_router.post("/profiles/{address}/scores")
def adjust_score(address: str, body: ScoreAdjustRequest, ledger: TrustLedger = Depends(get_ledger)):
    try:
        profile = ledger.recorder.adjust_behavioral_score(address, body.dimension, body.value, side=body.side)
    except LedgerError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": "invalid_dimension", "message": str(e)})
    return summarize(profile)


# ── Rental agreements ─────────────────────────────

@trust_router.post("/agreements/message")
def agreement_message(body: AgreementTerms, ledger: TrustLedger = Depends(get_ledger)):
    """Derive the agreement hash (drawing a nonce if needed) and the text to sign."""
    agreement = body.to_agreement()
    return {
        "agreement": agreement.to_dict(),
        "message": build_signature_message(agreement, unit=ledger.currency_unit),
    }


@trust_router.post("/agreements", response_model=OutcomeResponse)
def propose_agreement(body: ProposeAgreementRequest, ledger: TrustLedger = Depends(get_ledger)):
    agreement = body.to_agreement()
    try:
        outcome = ledger.coordinator.propose_rental_agreement(agreement, body.signature)
    except LedgerError as e:
        raise _http_error(e)
    return OutcomeResponse(**outcome.to_dict())


@trust_router.post("/agreements/reconcile")
def reconcile_agreements(body: ReconcileRequest, ledger: TrustLedger = Depends(get_ledger)):
    outcomes = ledger.coordinator.reconcile(body.agreement_hash)
    return {
        "outcomes": [o.to_dict() for o in outcomes],
        "processed": len(outcomes),
        "still_pending": sum(1 for o in outcomes if o.degraded),
    }


@trust_router.delete("/agreements/{property_id}")
def terminate_agreement(property_id: str, ledger: TrustLedger = Depends(get_ledger)):
    entry = ledger.coordinator.terminate_rental(property_id)
    if entry is None:
        raise HTTPException(status_code=404, detail={"error": "no_agreement", "property_id": property_id})
    return {"message": "Agreement terminated.", "property_id": property_id, "agreement_hash": entry.agreement_hash}
