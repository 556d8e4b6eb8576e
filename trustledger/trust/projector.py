"""
Briq Trust Ledger — Metadata Projector

Maps a profile to the ordered trait list shown on the user's profile NFT.

    Platform, User Type, Address
    [tenant]   Tenant Trust Score, On-Time Payment %, Total Payments, Property Care Score
    [landlord] Landlord Trust Score, Properties Managed, Communication Score, Fairness Score
    Last Updated

project() is read-only and pure. MetadataProjector.refresh() stores the
resulting metadata document under briq_user_nft_{address}.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from trustledger.store.backends import KeyValueBackend
from trustledger.store.profiles import ProfileStore
from trustledger.trust.engine import (
    LANDLORD_MAX_SCORE,
    TENANT_MAX_SCORE,
    landlord_standing,
    score_grade,
    score_label,
    tenant_standing,
)
from trustledger.trust.records import TrustProfile, normalize_address

logger = structlog.get_logger()

METADATA_KEY_PREFIX = "briq_user_nft_"
DEFAULT_PLATFORM = "Briq"
METADATA_DESCRIPTION = "Briq user profile with trust scores"
AVATAR_URL = "https://api.dicebear.com/7.x/identicon/svg?seed={address}"


def metadata_key(address: str) -> str:
    return f"{METADATA_KEY_PREFIX}{normalize_address(address)}"


@dataclass(frozen=True)
class Trait:
    trait_type: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"trait_type": self.trait_type, "value": self.value}


# ── Formatting ────────────────────────────────────

def format_number(value) -> str:
    """Missing numerics render as "0"; whole floats drop their ".0"."""
    if value is None:
        return "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def truncate_address(address: str) -> str:
    return f"{address[:6]}...{address[-4:]}"


def format_timestamp(timestamp_ms: int) -> str:
    """Epoch milliseconds → 2025-01-01T00:00:00.000Z"""
    moment = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{timestamp_ms % 1000:03d}Z"


# ── Projection ────────────────────────────────────

def project(profile: TrustProfile, platform: str = DEFAULT_PLATFORM) -> List[Trait]:
    traits = [
        Trait("Platform", platform),
        Trait("User Type", profile.user_type.value),
        Trait("Address", truncate_address(profile.address)),
    ]

    tenant = profile.tenant
    if tenant is not None:
        traits += [
            Trait("Tenant Trust Score", format_number(tenant.trust_score)),
            Trait("On-Time Payment %", format_number(tenant.on_time_payment_percentage)),
            Trait("Total Payments", format_number(len(tenant.payment_history))),
            Trait("Property Care Score", format_number(tenant.maintenance_score)),
        ]

    landlord = profile.landlord
    if landlord is not None:
        traits += [
            Trait("Landlord Trust Score", format_number(landlord.trust_score)),
            Trait("Properties Managed", format_number(len(landlord.properties_managed))),
            Trait("Communication Score", format_number(landlord.communication_score)),
            Trait("Fairness Score", format_number(landlord.fairness_score)),
        ]

    traits.append(Trait("Last Updated", format_timestamp(profile.updated_at)))
    return traits


def build_metadata(
    profile: TrustProfile,
    name: Optional[str] = None,
    image: Optional[str] = None,
    platform: str = DEFAULT_PLATFORM,
) -> Dict[str, Any]:
    return {
        "name": name or f"User {profile.address[:6]}",
        "description": METADATA_DESCRIPTION,
        "image": image or AVATAR_URL.format(address=profile.address),
        "attributes": [t.to_dict() for t in project(profile, platform)],
    }


def summarize(profile: TrustProfile) -> Dict[str, Any]:
    """Headline numbers for dashboards."""
    summary: Dict[str, Any] = {
        "address": profile.address,
        "user_type": profile.user_type.value,
        "tenant_score": 0,
        "landlord_score": 0,
        "total_payments": 0,
        "on_time_percentage": 0,
        "properties_managed": 0,
        "current_rental": profile.current_rental.property_id if profile.current_rental else None,
        "last_updated": profile.updated_at,
    }
    if profile.tenant is not None:
        score = profile.tenant.trust_score
        summary.update({
            "tenant_score": score,
            "tenant_grade": score_grade(score, TENANT_MAX_SCORE).value,
            "tenant_label": score_label(score, TENANT_MAX_SCORE),
            "tenant_standing": tenant_standing(score),
            "total_payments": len(profile.tenant.payment_history),
            "on_time_percentage": profile.tenant.on_time_payment_percentage,
        })
    if profile.landlord is not None:
        score = profile.landlord.trust_score
        summary.update({
            "landlord_score": score,
            "landlord_grade": score_grade(score, LANDLORD_MAX_SCORE).value,
            "landlord_label": score_label(score, LANDLORD_MAX_SCORE),
            "landlord_standing": landlord_standing(score),
            "properties_managed": len(profile.landlord.properties_managed),
        })
    return summary


# ── Stored metadata ───────────────────────────────

class MetadataProjector:
    """
    Keeps the stored NFT metadata in step with the ledger.

    Usage:
        projector = MetadataProjector(store)
        projector.refresh("0xabc...")
        projector.get_metadata("0xabc...")
    """

    def __init__(
        self,
        store: ProfileStore,
        backend: Optional[KeyValueBackend] = None,
        platform: str = DEFAULT_PLATFORM,
    ):
        self._store = store
        self._backend = backend if backend is not None else store.backend
        self._platform = platform

    def get_metadata(self, address: str) -> Optional[Dict[str, Any]]:
        raw = self._backend.get(metadata_key(address))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error("metadata_record_unreadable", address=normalize_address(address), error=str(e))
            return None

    def refresh(self, address: str) -> Optional[Dict[str, Any]]:
        """Rebuild and store the metadata for one address. Keeps an existing name and image."""
        profile = self._store.find(address)
        if profile is None:
            logger.info("metadata_refresh_skipped", address=normalize_address(address), reason="no_profile")
            return None

        existing = self.get_metadata(profile.address) or {}
        metadata = build_metadata(
            profile,
            name=existing.get("name"),
            image=existing.get("image"),
            platform=self._platform,
        )
        self._backend.set(metadata_key(profile.address), json.dumps(metadata))
        logger.info("metadata_refreshed", address=profile.address, traits=len(metadata["attributes"]))
        return metadata
