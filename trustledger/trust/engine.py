"""
Briq Trust Ledger — Trust Scoring Engine

Two scores, both pure functions of the aggregates stored on a profile.

Tenant Trust Score (0-850, credit-bureau style):

    Payment History     (weight 35%): on-time payment percentage
    Tenancy Stability   (weight 30%): 20 pts per completed tenancy, max 100
    Property Care       (weight 20%): maintenance sub-score
    Financial Capacity  (weight 10%): 100 - 2 x average late days
    Dispute Record      (weight  5%): 100 - 10 x disputes
    ───────────────────────────────
    composite (0-100) x 8.5

Landlord Trust Score (0-100):

    Deposit Fairness     (weight 25%): fairness sub-score
    Maintenance          (weight 25%): 100 - average response hours (capped at 100)
    Communication        (weight 20%)
    Legal Compliance     (weight 20%)
    Professionalism      (weight 10%)

A landlord with no managed properties gets 0 for the maintenance term.

Rounding is half-up (floor(x + 0.5)) so stored scores reproduce exactly
across implementations that use the same convention.
"""
import math
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from trustledger.trust.records import (
    LandlordRecord,
    PaymentRecord,
    PaymentStatus,
    TenantRecord,
)


TENANT_MAX_SCORE = 850
LANDLORD_MAX_SCORE = 100
TENANT_SCALE = 8.5

SUB_SCORE_MIN = 0
SUB_SCORE_MAX = 100


# =============================================
# ENUMS
# =============================================

class ScoreGrade(str, Enum):
    A_PLUS = "A+"
    A      = "A"
    B_PLUS = "B+"
    B      = "B"
    C      = "C"
    D      = "D"


# =============================================
# HELPERS
# =============================================

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value, low, high):
    return min(max(value, low), high)


def derive_payment_metrics(payments: Sequence[PaymentRecord]) -> Tuple[int, int]:
    """
    Returns (on_time_payment_percentage, average_late_days) over the full history.

    No payments → (100, 0). Average late days only counts late-status records.
    """
    if not payments:
        return 100, 0

    on_time = sum(1 for p in payments if p.status == PaymentStatus.ON_TIME)
    percentage = round_half_up(on_time / len(payments) * 100)

    late = [p for p in payments if p.status == PaymentStatus.LATE]
    if not late:
        return percentage, 0
    average_late = round_half_up(sum(p.late_days for p in late) / len(late))
    return percentage, average_late


def average_maintenance_response(landlord: LandlordRecord) -> Optional[float]:
    """Average maintenance response time in hours, None if no properties."""
    if not landlord.properties_managed:
        return None
    total = sum(p.maintenance_response_time for p in landlord.properties_managed.values())
    return total / len(landlord.properties_managed)


# =============================================
# TENANT SCORE
# =============================================

def tenant_score_breakdown(tenant: TenantRecord) -> Dict[str, float]:
    """Weighted terms of the tenant composite (each already multiplied by its weight)."""
    return {
        "payment_history": tenant.on_time_payment_percentage * 0.35,
        "tenancy_stability": min(100, len(tenant.tenancy_history) * 20) * 0.30,
        "property_care": tenant.maintenance_score * 0.20,
        "financial_capacity": max(0, 100 - tenant.average_late_days * 2) * 0.10,
        "dispute_record": max(0, 100 - tenant.disputes * 10) * 0.05,
    }


def calculate_tenant_trust_score(tenant: TenantRecord) -> int:
    breakdown = tenant_score_breakdown(tenant)
    composite = (
        breakdown["payment_history"] +
        breakdown["tenancy_stability"] +
        breakdown["property_care"] +
        breakdown["financial_capacity"] +
        breakdown["dispute_record"]
    )
    return clamp(round_half_up(composite * TENANT_SCALE), 0, TENANT_MAX_SCORE)


# =============================================
# LANDLORD SCORE
# =============================================

def landlord_score_breakdown(landlord: LandlordRecord) -> Dict[str, float]:
    avg_response = average_maintenance_response(landlord)
    if avg_response is None:
        maintenance = 0.0
    else:
        maintenance = (100 - clamp(avg_response, 0, 100)) * 0.25

    return {
        "deposit_fairness": landlord.fairness_score * 0.25,
        "maintenance": maintenance,
        "communication": landlord.communication_score * 0.20,
        "legal_compliance": landlord.legal_compliance_score * 0.20,
        "professionalism": landlord.professionalism_score * 0.10,
    }


def calculate_landlord_trust_score(landlord: LandlordRecord) -> int:
    breakdown = landlord_score_breakdown(landlord)
    composite = (
        breakdown["deposit_fairness"] +
        breakdown["maintenance"] +
        breakdown["communication"] +
        breakdown["legal_compliance"] +
        breakdown["professionalism"]
    )
    return clamp(round_half_up(composite), 0, LANDLORD_MAX_SCORE)


# =============================================
# DISPLAY HELPERS
# =============================================

def score_grade(score: float, max_score: float = LANDLORD_MAX_SCORE) -> ScoreGrade:
    percentage = score / max_score * 100
    if percentage >= 90:
        return ScoreGrade.A_PLUS
    elif percentage >= 80:
        return ScoreGrade.A
    elif percentage >= 70:
        return ScoreGrade.B_PLUS
    elif percentage >= 60:
        return ScoreGrade.B
    elif percentage >= 50:
        return ScoreGrade.C
    return ScoreGrade.D


def score_label(score: float, max_score: float = LANDLORD_MAX_SCORE) -> str:
    percentage = score / max_score * 100
    if percentage >= 90:
        return "Excellent"
    elif percentage >= 75:
        return "Very Good"
    elif percentage >= 60:
        return "Good"
    elif percentage >= 40:
        return "Fair"
    return "Poor"


def tenant_standing(score: int) -> str:
    if score >= 750:
        return "Excellent Tenant"
    elif score >= 650:
        return "Good Tenant"
    elif score >= 550:
        return "Fair Tenant"
    return "Developing Tenant"


def landlord_standing(score: int) -> str:
    if score >= 90:
        return "Excellent Landlord"
    elif score >= 75:
        return "Good Landlord"
    elif score >= 60:
        return "Fair Landlord"
    return "Developing Landlord"
