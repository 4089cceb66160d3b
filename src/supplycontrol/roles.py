"""Roles, caller contexts and role grants."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from supplycontrol.errors import MalformedIdentityError, MissingRoleError, ZeroAddressError
from supplycontrol.events import EventLog, RoleGranted, RoleRevoked

if TYPE_CHECKING:
    from supplycontrol.db.store import ControllerStore

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def is_null_identity(identity: str | None) -> bool:
    """Check for empty identities and the zero address."""
    if identity is None:
        return True
    value = identity.strip()
    return not value or value.lower() == ZERO_ADDRESS


def validate_identity(identity: str | None, field_name: str = "identity") -> str:
    """
    Check an identity before it is stored.

    Identities are compared verbatim, so surrounding whitespace is
    rejected.

    Raises:
        ZeroAddressError: If the identity is null
        MalformedIdentityError: If the identity has surrounding whitespace
    """
    if is_null_identity(identity):
        raise ZeroAddressError(field_name)
    if identity != identity.strip():
        raise MalformedIdentityError(identity, field_name)
    return identity


class Role(str, Enum):
    """Capabilities a caller may hold."""

    DEFAULT_ADMIN = "default_admin"
    CONTROLLER_MANAGER = "controller_manager"
    TOKEN_CONTRACT = "token_contract"
    INSPECTOR = "inspector"


@dataclass(frozen=True)
class CallerContext:
    """
    Identity of the caller plus the roles it was granted.

    Passed explicitly into every registry entry point.
    """

    identity: str
    roles: frozenset[Role] = field(default_factory=frozenset)

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def require(self, role: Role) -> None:
        """Raise MissingRoleError unless the caller holds ``role``."""
        if role not in self.roles:
            logger.warning(f"Access denied: {self.identity} lacks {role.value}")
            raise MissingRoleError(self.identity, role.value)


class RoleBook:
    """
    Role grant table.

    Only callers holding DEFAULT_ADMIN may grant or revoke roles.
    Grants are persisted through the store when one is attached, in the
    same transaction as the audit row for the change.
    """

    def __init__(
        self,
        events: EventLog | None = None,
        store: ControllerStore | None = None,
    ) -> None:
        self._grants: dict[str, set[Role]] = {}
        self._events = events if events is not None else EventLog()
        self._store = store
        self._lock = threading.RLock()

    @property
    def events(self) -> EventLog:
        return self._events

    def seed(
        self,
        admin: str,
        manager: str,
        token_contract: str,
        inspectors: list[str] | None = None,
    ) -> None:
        """
        Grant the initial administrative roles.

        Raises:
            ZeroAddressError: If any of the identities is null
            MalformedIdentityError: If any identity has surrounding whitespace
        """
        for field_name, identity in (
            ("admin", admin),
            ("manager", manager),
            ("token_contract", token_contract),
        ):
            validate_identity(identity, field_name)
        for inspector in inspectors or []:
            validate_identity(inspector, "inspector")

        with self._lock:
            self._set(admin, Role.DEFAULT_ADMIN)
            self._set(manager, Role.CONTROLLER_MANAGER)
            self._set(token_contract, Role.TOKEN_CONTRACT)
            for inspector in inspectors or []:
                self._set(inspector, Role.INSPECTOR)
        logger.info(f"Seeded roles: admin={admin}, manager={manager}, token_contract={token_contract}")

    def load(self, grants: list[tuple[str, Role]]) -> None:
        """Replace in-memory grants with persisted ones."""
        loaded: dict[str, set[Role]] = {}
        for identity, role in grants:
            loaded.setdefault(identity, set()).add(role)
        with self._lock:
            self._grants = loaded

    def _set(self, identity: str, role: Role, event: RoleGranted | None = None) -> bool:
        if role in self._grants.get(identity, ()):
            return False
        if self._store:
            self._store.save_role_grant(identity, role, event)
        self._grants.setdefault(identity, set()).add(role)
        return True

    def roles_of(self, identity: str) -> frozenset[Role]:
        with self._lock:
            return frozenset(self._grants.get(identity, ()))

    def has_role(self, identity: str, role: Role) -> bool:
        with self._lock:
            return role in self._grants.get(identity, ())

    def members(self, role: Role) -> list[str]:
        with self._lock:
            return sorted(i for i, roles in self._grants.items() if role in roles)

    def context_for(self, identity: str) -> CallerContext:
        """Build the caller context for an authenticated identity."""
        return CallerContext(identity=identity, roles=self.roles_of(identity))

    def grant_role(self, caller: CallerContext, identity: str, role: Role) -> bool:
        """
        Grant a role to an identity.

        Returns:
            True if the grant is new, False if already held
        """
        caller.require(Role.DEFAULT_ADMIN)
        validate_identity(identity)

        event = RoleGranted(identity=identity, role=role.value, sender=caller.identity)
        with self._lock:
            granted = self._set(identity, role, event)
            if granted:
                self._events.emit(event)
        return granted

    def revoke_role(self, caller: CallerContext, identity: str, role: Role) -> bool:
        """
        Revoke a role from an identity.

        Returns:
            True if the role was held, False otherwise
        """
        caller.require(Role.DEFAULT_ADMIN)
        with self._lock:
            roles = self._grants.get(identity)
            if not roles or role not in roles:
                return False

            event = RoleRevoked(identity=identity, role=role.value, sender=caller.identity)
            if self._store:
                self._store.delete_role_grant(identity, role, event)
            roles.discard(role)
            if not roles:
                del self._grants[identity]
            self._events.emit(event)
        return True
