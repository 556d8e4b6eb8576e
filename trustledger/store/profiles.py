"""
Briq Trust Ledger — Profile Store

Keyed persistence of one TrustProfile per address.

Record layout (one per address, key = briq_trust_data_{lower-cased address}):

    {
        "version": "1.0",
        "trustData": {
            "userAddress", "userType", "createdAt", "updatedAt", "revision",
            "tenantData"?, "landlordData"?, "currentRental"?, "rentalHistory"?
        }
    }

A record whose version tag is missing or different, or that does not decode,
reads as absent. It is logged and never migrated or partially trusted.

Writes are last-write-wins. Two read-modify-write sequences racing on the
same address can lose an update. Callers that need more pass
expected_revision to save(), which turns the write into a compare-and-swap
and raises Conflict when the stored revision moved.
"""
import json
from typing import Any, Callable, Dict, List, Optional

import structlog

from trustledger.errors import AlreadyExists, Conflict, ProfileNotFound, SerializationError
from trustledger.store.backends import KeyValueBackend
from trustledger.trust.records import TrustProfile, UserType, normalize_address, now_ms

logger = structlog.get_logger()

STORAGE_KEY_PREFIX = "briq_trust_data_"
SCHEMA_VERSION = "1.0"


def storage_key(address: str) -> str:
    return f"{STORAGE_KEY_PREFIX}{normalize_address(address)}"


class ProfileStore:
    """
    Usage:
        store = ProfileStore(MemoryBackend())
        profile = store.initialize("0xABC...", UserType.TENANT)
        profile = store.get("0xabc...")      # same profile, any case
        store.save(profile)
    """

    def __init__(self, backend: KeyValueBackend, clock: Callable[[], int] = now_ms):
        self._backend = backend
        self._clock = clock

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def _load_record(self, address: str, raw: str) -> Optional[Dict[str, Any]]:
        """Parse a stored record, returning its trustData only if the version matches."""
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error("profile_record_unreadable", address=address, error=str(e))
            return None

        version = data.get("version") if isinstance(data, dict) else None
        if version != SCHEMA_VERSION:
            logger.warning("profile_version_mismatch", address=address,
                           found=version, expected=SCHEMA_VERSION)
            return None

        trust_data = data.get("trustData")
        if not isinstance(trust_data, dict):
            logger.error("profile_record_malformed", address=address, error="missing trustData")
            return None
        return trust_data

    def _decode(self, address: str, raw: str) -> Optional[TrustProfile]:
        trust_data = self._load_record(address, raw)
        if trust_data is None:
            return None
        try:
            return TrustProfile.from_dict(trust_data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("profile_record_malformed", address=address, error=str(e))
            return None

    def _stored_revision(self, address: str, raw: Optional[str]) -> int:
        if raw is None:
            return 0
        trust_data = self._load_record(address, raw)
        if trust_data is None:
            return 0
        return int(trust_data.get("revision", 0))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, address: str) -> Optional[TrustProfile]:
        """Return the stored profile, or None if absent or untrusted."""
        address = normalize_address(address)
        raw = self._backend.get(storage_key(address))
        if raw is None:
            return None
        return self._decode(address, raw)

    def get(self, address: str) -> TrustProfile:
        profile = self.find(address)
        if profile is None:
            raise ProfileNotFound(normalize_address(address))
        return profile

    def exists(self, address: str) -> bool:
        return self.find(address) is not None

    def addresses(self) -> List[str]:
        """Every address with a stored record (trusted or not)."""
        return [k[len(STORAGE_KEY_PREFIX):] for k in self._backend.keys(STORAGE_KEY_PREFIX)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def initialize(self, address: str, user_type: UserType) -> TrustProfile:
        """Create and persist a seeded profile. Never overwrites an existing one."""
        address = normalize_address(address)
        if self.exists(address):
            raise AlreadyExists(address)

        profile = TrustProfile.create(address, UserType(user_type), self._clock())
        self.save(profile)
        logger.info("profile_initialized", address=address, user_type=profile.user_type.value)
        return profile

    def save(self, profile: TrustProfile, expected_revision: Optional[int] = None) -> TrustProfile:
        """
        Persist a profile, stamping updated_at and bumping revision.

        expected_revision=None → unconditional overwrite (last write wins).
        expected_revision=N    → fails with Conflict unless the stored revision is N.
        """
        address = normalize_address(profile.address)
        key = storage_key(address)
        current_raw = self._backend.get(key)
        stored_revision = self._stored_revision(address, current_raw)

        if expected_revision is not None and stored_revision != expected_revision:
            raise Conflict(address, expected_revision, stored_revision)

        updated_at = self._clock()
        revision = stored_revision + 1

        trust_data = profile.to_dict()
        trust_data["userAddress"] = address
        trust_data["updatedAt"] = updated_at
        trust_data["revision"] = revision
        try:
            raw = json.dumps({"version": SCHEMA_VERSION, "trustData": trust_data}, sort_keys=True)
        except (TypeError, ValueError) as e:
            logger.error("profile_serialization_failed", address=address, error=str(e))
            raise SerializationError(f"Cannot serialize profile {address}: {e}") from e

        if expected_revision is None:
            self._backend.set(key, raw)
        elif not self._backend.set_if_unchanged(key, current_raw, raw):
            raise Conflict(address, expected_revision,
                           self._stored_revision(address, self._backend.get(key)))

        profile.address = address
        profile.updated_at = updated_at
        profile.revision = revision
        logger.debug("profile_saved", address=address, revision=revision)
        return profile
