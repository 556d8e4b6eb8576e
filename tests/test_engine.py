"""Unit tests for the trust scoring engine. Pure computation, no storage."""

import pytest

from trustledger.trust.engine import (
    ScoreGrade,
    calculate_landlord_trust_score,
    calculate_tenant_trust_score,
    derive_payment_metrics,
    landlord_score_breakdown,
    landlord_standing,
    round_half_up,
    score_grade,
    score_label,
    tenant_score_breakdown,
    tenant_standing,
)
from trustledger.trust.records import (
    LandlordRecord,
    PaymentRecord,
    PaymentStatus,
    PropertyManagementRecord,
    TenancyRecord,
    TenantRecord,
)


def _payment(status: str, late_days: int = 0, amount: int = 1000) -> PaymentRecord:
    return PaymentRecord(
        amount=amount,
        due_date=1_700_000_000_000,
        paid_date=0 if status == "missed" else 1_700_000_000_000,
        status=status,
        late_days=late_days,
        property_id="prop-1",
    )


def _tenancy(n: int) -> TenancyRecord:
    return TenancyRecord(
        property_id=f"prop-{n}",
        landlord_address="0xb0b",
        start_date=0,
        end_date=1,
        monthly_rent=1000,
        deposit=2000,
    )


# =====================================================================
# Rounding
# =====================================================================

class TestRounding:
    def test_half_rounds_up(self) -> None:
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(569.5) == 570

    def test_below_half_rounds_down(self) -> None:
        assert round_half_up(64.49) == 64


# =====================================================================
# Derived payment metrics
# =====================================================================

class TestPaymentMetrics:
    def test_no_payments(self) -> None:
        assert derive_payment_metrics([]) == (100, 0)

    def test_all_on_time(self) -> None:
        assert derive_payment_metrics([_payment("on-time"), _payment("on-time")]) == (100, 0)

    def test_one_of_two_late(self) -> None:
        assert derive_payment_metrics([_payment("on-time"), _payment("late", 5)]) == (50, 5)

    def test_average_late_days_ignores_missed(self) -> None:
        payments = [
            _payment("on-time"),
            _payment("late", 4),
            _payment("late", 7),
            _payment("missed", 30),
        ]
        percentage, average_late = derive_payment_metrics(payments)
        assert percentage == 25
        assert average_late == 6  # 5.5 rounds half-up

    def test_missed_only(self) -> None:
        assert derive_payment_metrics([_payment("missed")]) == (0, 0)


# =====================================================================
# Tenant score
# =====================================================================

class TestTenantScore:
    def test_fresh_tenant_after_clean_history(self) -> None:
        tenant = TenantRecord()
        # 35 + 0 + 17 + 10 + 5 = 67 → 569.5 → 570
        assert calculate_tenant_trust_score(tenant) == 570

    def test_perfect_tenant_hits_ceiling(self) -> None:
        tenant = TenantRecord(
            tenancy_history=[_tenancy(i) for i in range(6)],
            maintenance_score=100,
        )
        assert calculate_tenant_trust_score(tenant) == 850

    def test_worst_tenant_hits_floor(self) -> None:
        tenant = TenantRecord(
            on_time_payment_percentage=0,
            maintenance_score=0,
            average_late_days=80,
            disputes=20,
        )
        assert calculate_tenant_trust_score(tenant) == 0

    def test_tenancy_stability_caps_at_five(self) -> None:
        five = TenantRecord(tenancy_history=[_tenancy(i) for i in range(5)])
        nine = TenantRecord(tenancy_history=[_tenancy(i) for i in range(9)])
        assert tenant_score_breakdown(five)["tenancy_stability"] == pytest.approx(30.0)
        assert calculate_tenant_trust_score(five) == calculate_tenant_trust_score(nine)

    def test_disputes_lower_score(self) -> None:
        tenant = TenantRecord(disputes=1)
        # 35 + 0 + 17 + 10 + 4.5 = 66.5 → 565.25 → 565
        assert calculate_tenant_trust_score(tenant) == 565

    def test_recomputation_is_idempotent(self) -> None:
        tenant = TenantRecord(disputes=2, average_late_days=3, on_time_payment_percentage=80)
        assert calculate_tenant_trust_score(tenant) == calculate_tenant_trust_score(tenant)

    def test_score_within_bounds(self) -> None:
        for pct in (0, 50, 100):
            for late in (0, 10, 100):
                tenant = TenantRecord(on_time_payment_percentage=pct, average_late_days=late)
                assert 0 <= calculate_tenant_trust_score(tenant) <= 850


# =====================================================================
# Landlord score
# =====================================================================

class TestLandlordScore:
    def test_defaults_without_properties(self) -> None:
        landlord = LandlordRecord()
        # 21.25 + 0 + 17 + 18 + 8.5 = 64.75 → 65
        assert calculate_landlord_trust_score(landlord) == 65
        assert landlord_score_breakdown(landlord)["maintenance"] == 0.0

    def test_fast_maintenance_response(self) -> None:
        landlord = LandlordRecord(properties_managed={
            "prop-1": PropertyManagementRecord("prop-1", maintenance_response_time=24),
        })
        # 21.25 + 19 + 17 + 18 + 8.5 = 83.75 → 84
        assert calculate_landlord_trust_score(landlord) == 84

    def test_response_time_is_capped(self) -> None:
        landlord = LandlordRecord(properties_managed={
            "prop-1": PropertyManagementRecord("prop-1", maintenance_response_time=150),
        })
        assert landlord_score_breakdown(landlord)["maintenance"] == 0.0
        assert calculate_landlord_trust_score(landlord) == 65

    def test_response_time_averaged_across_properties(self) -> None:
        landlord = LandlordRecord(properties_managed={
            "prop-1": PropertyManagementRecord("prop-1", maintenance_response_time=10),
            "prop-2": PropertyManagementRecord("prop-2", maintenance_response_time=30),
        })
        assert landlord_score_breakdown(landlord)["maintenance"] == pytest.approx(20.0)

    def test_perfect_landlord(self) -> None:
        landlord = LandlordRecord(
            properties_managed={"prop-1": PropertyManagementRecord("prop-1", maintenance_response_time=0)},
            fairness_score=100,
            communication_score=100,
            legal_compliance_score=100,
            professionalism_score=100,
        )
        assert calculate_landlord_trust_score(landlord) == 100


# =====================================================================
# Display helpers
# =====================================================================

class TestDisplayHelpers:
    def test_grades(self) -> None:
        assert score_grade(95) == ScoreGrade.A_PLUS
        assert score_grade(85) == ScoreGrade.A
        assert score_grade(765, 850) == ScoreGrade.A_PLUS
        assert score_grade(10) == ScoreGrade.D

    def test_labels(self) -> None:
        assert score_label(570, 850) == "Good"
        assert score_label(65) == "Good"
        assert score_label(39) == "Poor"

    def test_standings(self) -> None:
        assert tenant_standing(570) == "Fair Tenant"
        assert tenant_standing(800) == "Excellent Tenant"
        assert landlord_standing(65) == "Fair Landlord"
        assert landlord_standing(40) == "Developing Landlord"

    def test_payment_status_values(self) -> None:
        assert PaymentStatus("on-time") is PaymentStatus.ON_TIME
