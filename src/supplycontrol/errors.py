"""Error taxonomy for supply control decisions.

Every rejection is a distinct exception type so the ledger and any auditor
can attribute the cause precisely. All of them are raised before any state
is mutated.
"""

from typing import Any


class SupplyControlError(Exception):
    """Base class for supply control rejections.

    Subclasses define a stable ``code`` and the ``status_code`` used when
    the error is surfaced over HTTP.
    """

    code: str = "supply_control_error"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str = "Supply control error", **fields: Any) -> None:
        self.message = message
        self.fields = fields
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.code, "message": self.message}
        for key, value in self.fields.items():
            # uint256 amounts do not survive JSON number parsing in most clients
            data[key] = str(value) if isinstance(value, int) and not isinstance(value, bool) else value
        return data


# --- Configuration errors ---


class ConfigurationError(SupplyControlError):
    """Administrator or caller mistake in registry configuration."""

    code = "configuration_error"


class ZeroAddressError(ConfigurationError):
    """Raised when a null identity or account is supplied."""

    code = "zero_address"
    status_code = 400

    def __init__(self, field: str = "identity") -> None:
        super().__init__(f"{field} must not be the zero address", field=field)


class MalformedIdentityError(ConfigurationError):
    """Raised when an identity or account carries surrounding whitespace."""

    code = "malformed_identity"
    status_code = 400

    def __init__(self, value: str, field: str = "identity") -> None:
        super().__init__(f"{field} must not have leading or trailing whitespace: {value!r}", field=field)


class ControllerAlreadyExistsError(ConfigurationError):
    """Raised when registering an identity that is already a controller."""

    code = "controller_already_exists"
    status_code = 409

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(f"Controller already registered: {identity}", identity=identity)


class ControllerNotFoundError(ConfigurationError):
    """Raised when an identity is not a registered controller."""

    code = "controller_not_found"
    status_code = 404

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(f"Controller not found: {identity}", identity=identity)


class DuplicateEntryError(ConfigurationError):
    """Raised when adding an account already present in a whitelist."""

    code = "duplicate_entry"
    status_code = 409

    def __init__(self, identity: str, account: str) -> None:
        self.identity = identity
        self.account = account
        super().__init__(
            f"{account} is already whitelisted for {identity}",
            identity=identity,
            account=account,
        )


class EntryNotFoundError(ConfigurationError):
    """Raised when removing an account absent from a whitelist."""

    code = "entry_not_found"
    status_code = 404

    def __init__(self, identity: str, account: str) -> None:
        self.identity = identity
        self.account = account
        super().__init__(
            f"{account} is not whitelisted for {identity}",
            identity=identity,
            account=account,
        )


# --- Authorization-policy errors ---


class PolicyError(SupplyControlError):
    """Well-formed request forbidden by controller policy."""

    code = "policy_error"
    status_code = 403


class DestinationNotAllowedError(PolicyError):
    """Raised when a controller may not mint to / burn from an account."""

    code = "destination_not_allowed"

    def __init__(self, identity: str, destination: str, action: str = "mint") -> None:
        self.identity = identity
        self.destination = destination
        self.action = action
        preposition = "to" if action == "mint" else "from"
        super().__init__(
            f"Controller {identity} cannot {action} {preposition} {destination}",
            identity=identity,
            destination=destination,
            action=action,
        )


# --- Quota errors ---


class QuotaError(SupplyControlError):
    """Time- or volume-based rejection.

    The caller may retry later or with a corrected timestamp; nothing in
    this package retries on its behalf.
    """

    code = "quota_error"
    retryable = True


class QuotaExceededError(QuotaError):
    """Raised when the requested amount exceeds the available quota."""

    code = "quota_exceeded"
    status_code = 429

    def __init__(self, amount: int, available: int, identity: str | None = None) -> None:
        self.amount = amount
        self.available = available
        self.identity = identity
        fields: dict[str, Any] = {"amount": amount, "available": available}
        if identity is not None:
            fields["identity"] = identity
        super().__init__(
            f"Requested {amount} exceeds available quota {available}",
            **fields,
        )


class StaleTimestampError(QuotaError):
    """Raised when a request is older than the last accepted event."""

    code = "stale_timestamp"
    status_code = 422

    def __init__(self, now: int, last_update_time: int, identity: str | None = None) -> None:
        self.now = now
        self.last_update_time = last_update_time
        self.identity = identity
        fields: dict[str, Any] = {"now": now, "last_update_time": last_update_time}
        if identity is not None:
            fields["identity"] = identity
        super().__init__(
            f"Timestamp {now} is older than last update {last_update_time}",
            **fields,
        )


# --- Access-control errors ---


class AccessError(SupplyControlError):
    """Caller lacks the capability for the attempted operation."""

    code = "access_denied"
    status_code = 403


class MissingRoleError(AccessError):
    """Raised when the caller does not hold a required role."""

    code = "missing_role"

    def __init__(self, caller: str, role: str) -> None:
        self.caller = caller
        self.role = role
        super().__init__(f"Account {caller} is missing role {role}", caller=caller, role=role)


class NotAuthorizedCallerError(AccessError):
    """Raised when a read is attempted by neither the controller nor an inspector."""

    code = "not_authorized"

    def __init__(self, caller: str, identity: str) -> None:
        self.caller = caller
        self.identity = identity
        super().__init__(
            f"Account {caller} may not inspect controller {identity}",
            caller=caller,
            identity=identity,
        )
