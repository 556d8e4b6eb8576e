"""
Briq Trust Ledger — Rental Agreement Signatures

An agreement is identified by its hash: a deterministic SHA-256 over the
agreement terms plus a nonce. The same terms with the same nonce always
produce the same hash, which is what makes proposing an agreement twice
safe. Changing any term or the nonce produces a different agreement.

Both parties sign the human-readable message built by
build_signature_message(). Signatures are carried as opaque strings; they
are never verified here.
"""
import hashlib
import json
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from trustledger.trust.records import normalize_address


SIGNATURE_TEMPLATE = (
    "Rental Agreement Signature:\n"
    "\n"
    "Property ID: {property_id}\n"
    "Landlord: {landlord}\n"
    "Tenant: {tenant}\n"
    "Monthly Rent: {monthly_rent} {unit}\n"
    "Deposit: {deposit} {unit}\n"
    "Start Date: {start_date}\n"
    "Agreement Hash: {agreement_hash}\n"
    "\n"
    "By signing this message, I agree to rent this property under the terms specified above."
)


def new_nonce() -> str:
    return secrets.token_hex(16)


def compute_agreement_hash(
    property_id: str,
    landlord_address: str,
    tenant_address: str,
    monthly_rent: int,
    deposit: int,
    start_date: str,
    nonce: str,
) -> str:
    """
    Deterministic SHA-256 of the agreement terms.
    Addresses are case-normalized and amounts are hashed as decimal strings.
    """
    content = json.dumps({
        "property_id": property_id,
        "landlord": normalize_address(landlord_address),
        "tenant": normalize_address(tenant_address),
        "monthly_rent": str(int(monthly_rent)),
        "deposit": str(int(deposit)),
        "start_date": start_date,
        "nonce": nonce,
    }, sort_keys=True)
    return "0x" + hashlib.sha256(content.encode()).hexdigest()


@dataclass(frozen=True)
class RentalAgreement:
    property_id: str
    landlord_address: str
    tenant_address: str
    monthly_rent: int                   # minor units
    deposit: int                        # minor units
    start_date: str                     # ISO 8601
    nonce: str
    agreement_hash: str

    def __post_init__(self):
        object.__setattr__(self, "landlord_address", normalize_address(self.landlord_address))
        object.__setattr__(self, "tenant_address", normalize_address(self.tenant_address))
        object.__setattr__(self, "monthly_rent", int(self.monthly_rent))
        object.__setattr__(self, "deposit", int(self.deposit))

    @staticmethod
    def create(
        property_id: str,
        landlord_address: str,
        tenant_address: str,
        monthly_rent: int,
        deposit: int,
        start_date: str,
        nonce: Optional[str] = None,
    ) -> "RentalAgreement":
        """Build an agreement and derive its hash. A fresh nonce is drawn when none is given."""
        nonce = nonce or new_nonce()
        return RentalAgreement(
            property_id=property_id,
            landlord_address=landlord_address,
            tenant_address=tenant_address,
            monthly_rent=monthly_rent,
            deposit=deposit,
            start_date=start_date,
            nonce=nonce,
            agreement_hash=compute_agreement_hash(
                property_id, landlord_address, tenant_address,
                monthly_rent, deposit, start_date, nonce,
            ),
        )

    def compute_hash(self) -> str:
        return compute_agreement_hash(
            self.property_id, self.landlord_address, self.tenant_address,
            self.monthly_rent, self.deposit, self.start_date, self.nonce,
        )

    def verify_hash(self) -> bool:
        """True if agreement_hash still matches the terms it claims to cover."""
        return self.agreement_hash == self.compute_hash()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "propertyId": self.property_id,
            "landlordAddress": self.landlord_address,
            "tenantAddress": self.tenant_address,
            "monthlyRent": str(self.monthly_rent),
            "deposit": str(self.deposit),
            "startDate": self.start_date,
            "nonce": self.nonce,
            "agreementHash": self.agreement_hash,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "RentalAgreement":
        return RentalAgreement(
            property_id=data["propertyId"],
            landlord_address=data["landlordAddress"],
            tenant_address=data["tenantAddress"],
            monthly_rent=int(data["monthlyRent"]),
            deposit=int(data["deposit"]),
            start_date=data["startDate"],
            nonce=data["nonce"],
            agreement_hash=data["agreementHash"],
        )


def build_signature_message(agreement: RentalAgreement, unit: str = "HBAR") -> str:
    """The exact text both parties sign."""
    return SIGNATURE_TEMPLATE.format(
        property_id=agreement.property_id,
        landlord=agreement.landlord_address,
        tenant=agreement.tenant_address,
        monthly_rent=agreement.monthly_rent,
        deposit=agreement.deposit,
        unit=unit,
        start_date=agreement.start_date,
        agreement_hash=agreement.agreement_hash,
    )
