"""
Briq Trust Ledger — Error taxonomy

Errors that block the caller are raised. PartialUpdateFailure is the
exception: the rental coordinator builds it, logs it and attaches it to a
degraded outcome instead of raising it.
"""
from typing import Optional


class LedgerError(Exception):
    pass


class ProfileNotFound(LedgerError):
    def __init__(self, address: str, message: Optional[str] = None):
        self.address = address
        super().__init__(message or f"No trust profile stored for {address}")


class WrongUserType(ProfileNotFound):
    """The profile exists but lacks the side (tenant/landlord) an operation needs."""

    def __init__(self, address: str, required: str, user_type: str):
        self.required = required
        self.user_type = user_type
        super().__init__(
            address,
            f"Profile {address} is a {user_type} profile; operation needs {required} data",
        )


class AlreadyExists(LedgerError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Trust profile already exists for {address}")


class AlreadyRented(LedgerError):
    def __init__(self, property_id: str, active_hash: str):
        self.property_id = property_id
        self.active_hash = active_hash
        super().__init__(
            f"Property {property_id} already has an agreement in progress ({active_hash})"
        )


class Conflict(LedgerError):
    def __init__(self, address: str, expected: int, actual: int):
        self.address = address
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Profile {address} changed underneath the writer: expected revision {expected}, found {actual}"
        )


class SerializationError(LedgerError):
    pass


class PartialUpdateFailure(LedgerError):
    def __init__(self, agreement_hash: str, failed_side: str, cause: BaseException):
        self.agreement_hash = agreement_hash
        self.failed_side = failed_side
        self.cause = cause
        super().__init__(
            f"Agreement {agreement_hash}: {failed_side} ledger write failed ({cause})"
        )
