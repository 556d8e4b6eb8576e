"""Tests for agreement hashing and the signature message."""

import dataclasses
import re

from trustledger.rental.signatures import (
    RentalAgreement,
    build_signature_message,
    compute_agreement_hash,
)

from conftest import LANDLORD, TENANT

START = "2025-01-01T00:00:00.000Z"


def _agreement(nonce: str = "n-1", **overrides) -> RentalAgreement:
    terms = dict(
        property_id="prop-1",
        landlord_address=LANDLORD,
        tenant_address=TENANT,
        monthly_rent=1500,
        deposit=3000,
        start_date=START,
        nonce=nonce,
    )
    terms.update(overrides)
    return RentalAgreement.create(**terms)


class TestAgreementHash:
    def test_hash_shape(self) -> None:
        assert re.fullmatch(r"0x[0-9a-f]{64}", _agreement().agreement_hash)

    def test_deterministic(self) -> None:
        assert _agreement().agreement_hash == _agreement().agreement_hash

    def test_address_case_does_not_matter(self) -> None:
        upper = _agreement(landlord_address=LANDLORD.upper(), tenant_address=TENANT.upper())
        assert upper.agreement_hash == _agreement().agreement_hash
        assert upper.landlord_address == LANDLORD.lower()

    def test_nonce_changes_hash(self) -> None:
        assert _agreement("n-1").agreement_hash != _agreement("n-2").agreement_hash

    def test_terms_change_hash(self) -> None:
        assert _agreement(monthly_rent=1501).agreement_hash != _agreement().agreement_hash

    def test_matches_free_function(self) -> None:
        agreement = _agreement()
        assert agreement.agreement_hash == compute_agreement_hash(
            "prop-1", LANDLORD, TENANT, 1500, 3000, START, "n-1",
        )

    def test_fresh_nonce_when_missing(self) -> None:
        a = RentalAgreement.create("prop-1", LANDLORD, TENANT, 1500, 3000, START)
        b = RentalAgreement.create("prop-1", LANDLORD, TENANT, 1500, 3000, START)
        assert len(a.nonce) == 32
        assert a.agreement_hash != b.agreement_hash

    def test_verify_detects_tampering(self) -> None:
        agreement = _agreement()
        assert agreement.verify_hash() is True
        tampered = dataclasses.replace(agreement, deposit=1)
        assert tampered.verify_hash() is False

    def test_dict_round_trip(self) -> None:
        agreement = _agreement(monthly_rent=10 ** 25)
        assert RentalAgreement.from_dict(agreement.to_dict()) == agreement


class TestSignatureMessage:
    def test_message_is_verbatim(self) -> None:
        agreement = _agreement()
        expected = (
            "Rental Agreement Signature:\n"
            "\n"
            "Property ID: prop-1\n"
            f"Landlord: {LANDLORD.lower()}\n"
            f"Tenant: {TENANT.lower()}\n"
            "Monthly Rent: 1500 HBAR\n"
            "Deposit: 3000 HBAR\n"
            f"Start Date: {START}\n"
            f"Agreement Hash: {agreement.agreement_hash}\n"
            "\n"
            "By signing this message, I agree to rent this property under the terms specified above."
        )
        assert build_signature_message(agreement) == expected

    def test_currency_unit(self) -> None:
        message = build_signature_message(_agreement(), unit="USDC")
        assert "Monthly Rent: 1500 USDC\n" in message
        assert "Deposit: 3000 USDC\n" in message
