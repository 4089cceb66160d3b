"""
Controller registry service.

Owns one quota tracker per registered controller together with its
destination policy, and answers the ledger's question: may controller C
move amount A to/from account X at time T?
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable

from supplycontrol.errors import (
    ControllerAlreadyExistsError,
    ControllerNotFoundError,
    DestinationNotAllowedError,
    DuplicateEntryError,
    EntryNotFoundError,
    NotAuthorizedCallerError,
    QuotaError,
)
from supplycontrol.events import (
    ControllerAdded,
    ControllerRemoved,
    DestinationPolicyUpdated,
    EventLog,
    LimitConfigUpdated,
    WhitelistEntryAdded,
    WhitelistEntryRemoved,
)
from supplycontrol.quota import LimitConfig, QuotaTracker
from supplycontrol.registry.models import (
    ControllerConfig,
    ControllerRecord,
    ControllerSpec,
    SupplyAction,
)
from supplycontrol.roles import CallerContext, Role, validate_identity

if TYPE_CHECKING:
    from supplycontrol.db.store import ControllerStore

logger = logging.getLogger(__name__)


class ControllerRegistry:
    """
    Registry of supply controllers and their mint/burn policy.

    Every entry point validates fully before changing anything. When a
    store is attached, a change and its audit row are persisted in one
    transaction before the change is committed in memory, so a failed
    write leaves the registry untouched. Events are emitted while the
    lock is held, so their order matches the order of the changes.
    """

    def __init__(
        self,
        events: EventLog | None = None,
        store: ControllerStore | None = None,
    ) -> None:
        """
        Initialize registry.

        Args:
            events: Event log receiving audit notifications
            store: Optional persistence backend
        """
        self._controllers: dict[str, ControllerRecord] = {}
        self._events = events if events is not None else EventLog()
        self._store = store
        self._lock = threading.RLock()

    @property
    def events(self) -> EventLog:
        return self._events

    def load(self, records: Iterable[ControllerRecord]) -> int:
        """
        Replace in-memory records with previously persisted ones.

        Returns:
            Number of controllers loaded
        """
        with self._lock:
            self._controllers = {record.identity: record for record in records}
            logger.info(f"Loaded {len(self._controllers)} supply controllers")
            return len(self._controllers)

    def _get(self, identity: str) -> ControllerRecord:
        record = self._controllers.get(identity)
        if record is None:
            raise ControllerNotFoundError(identity)
        return record

    # --- Administration ---

    def _new_record(
        self,
        identity: str,
        capacity: int,
        refill_rate: int,
        initial_whitelist: Iterable[str],
        allow_any_destination: bool,
    ) -> tuple[ControllerRecord, ControllerAdded]:
        """Validate one registration and build its record and event."""
        validate_identity(identity)
        if identity in self._controllers:
            raise ControllerAlreadyExistsError(identity)

        whitelist: list[str] = []
        seen: set[str] = set()
        for account in initial_whitelist:
            validate_identity(account, "account")
            if account in seen:
                raise DuplicateEntryError(identity, account)
            seen.add(account)
            whitelist.append(account)

        record = ControllerRecord(
            identity=identity,
            tracker=QuotaTracker(LimitConfig(capacity=capacity, refill_rate=refill_rate)),
            destination_allowlist=seen,
            allow_any_destination=allow_any_destination,
        )
        event = ControllerAdded(
            identity=identity,
            capacity=capacity,
            refill_rate=refill_rate,
            whitelist=whitelist,
            allow_any_destination=allow_any_destination,
        )
        return record, event

    def add_controller(
        self,
        caller: CallerContext,
        identity: str,
        capacity: int,
        refill_rate: int,
        initial_whitelist: Iterable[str] = (),
        allow_any_destination: bool = False,
    ) -> ControllerConfig:
        """
        Register a new supply controller with fresh quota state.

        Args:
            caller: Must hold CONTROLLER_MANAGER
            identity: Controller account
            capacity: Quota ceiling
            refill_rate: Units restored per time unit (0 = unlimited)
            initial_whitelist: Accounts the controller may mint to / burn from
            allow_any_destination: Bypass the whitelist entirely

        Returns:
            Configuration of the new controller

        Raises:
            ZeroAddressError: If identity or a whitelist entry is null
            MalformedIdentityError: If identity or an entry has surrounding whitespace
            ControllerAlreadyExistsError: If identity is already registered
            DuplicateEntryError: If the initial whitelist repeats an account
        """
        caller.require(Role.CONTROLLER_MANAGER)

        with self._lock:
            record, event = self._new_record(
                identity, capacity, refill_rate, initial_whitelist, allow_any_destination
            )
            if self._store:
                self._store.save_controller(record, event)
            self._controllers[identity] = record

            logger.info(f"Added supply controller {identity} (capacity={capacity}, refill={refill_rate})")
            self._events.emit(event)
            return record.to_config()

    def bootstrap(self, caller: CallerContext, specs: Iterable[ControllerSpec]) -> list[str]:
        """
        Register a batch of controllers, all or nothing.

        The whole batch is validated, then persisted in a single
        transaction, before any controller becomes visible.

        Returns:
            Identities registered
        """
        caller.require(Role.CONTROLLER_MANAGER)
        specs = list(specs)

        with self._lock:
            records: list[ControllerRecord] = []
            added: list[ControllerAdded] = []
            batch: set[str] = set()
            for spec in specs:
                if spec.identity in batch:
                    raise ControllerAlreadyExistsError(spec.identity)
                record, event = self._new_record(
                    spec.identity,
                    spec.capacity,
                    spec.refill_rate,
                    spec.whitelist,
                    spec.allow_any_destination,
                )
                batch.add(spec.identity)
                records.append(record)
                added.append(event)

            if self._store:
                self._store.save_controllers(records, added)
            for record in records:
                self._controllers[record.identity] = record

            logger.info(f"Bootstrapped {len(records)} supply controllers")
            for event in added:
                self._events.emit(event)
        return [record.identity for record in records]

    def remove_controller(self, caller: CallerContext, identity: str) -> None:
        """
        Remove a controller, discarding its policy and quota state.

        Re-adding the same identity later starts from a clean record.
        """
        caller.require(Role.CONTROLLER_MANAGER)
        with self._lock:
            self._get(identity)
            event = ControllerRemoved(identity=identity)
            if self._store:
                self._store.delete_controller(identity, event)
            del self._controllers[identity]

            logger.info(f"Removed supply controller {identity}")
            self._events.emit(event)

    def update_limit_config(
        self,
        caller: CallerContext,
        identity: str,
        capacity: int,
        refill_rate: int,
    ) -> LimitConfig:
        """
        Replace a controller's capacity and refill rate.

        Available quota and the last update time are left as they are.

        Returns:
            The new configuration
        """
        caller.require(Role.CONTROLLER_MANAGER)
        with self._lock:
            record = self._get(identity)
            new_config = LimitConfig(capacity=capacity, refill_rate=refill_rate)
            old_config = record.tracker.config
            event = LimitConfigUpdated(
                identity=identity,
                new_capacity=new_config.capacity,
                new_refill_rate=new_config.refill_rate,
                old_capacity=old_config.capacity,
                old_refill_rate=old_config.refill_rate,
            )
            if self._store:
                self._store.save_limit_config(identity, new_config, event)
            record.tracker.reconfigure(capacity, refill_rate)
            self._events.emit(event)
        return new_config

    def update_destination_policy(
        self,
        caller: CallerContext,
        identity: str,
        allow_any: bool,
    ) -> bool:
        """
        Set whether the controller may target any account.

        Returns:
            The previous value
        """
        caller.require(Role.CONTROLLER_MANAGER)
        with self._lock:
            record = self._get(identity)
            old_value = record.allow_any_destination
            event = DestinationPolicyUpdated(identity=identity, new_allow_any=allow_any, old_allow_any=old_value)
            if self._store:
                self._store.set_allow_any(identity, allow_any, event)
            record.allow_any_destination = allow_any
            self._events.emit(event)
        return old_value

    def add_to_whitelist(self, caller: CallerContext, identity: str, account: str) -> None:
        """Allow a controller to mint to / burn from ``account``."""
        caller.require(Role.CONTROLLER_MANAGER)
        validate_identity(account, "account")

        with self._lock:
            record = self._get(identity)
            if account in record.destination_allowlist:
                raise DuplicateEntryError(identity, account)
            event = WhitelistEntryAdded(identity=identity, account=account)
            if self._store:
                self._store.add_whitelist_entry(identity, account, event)
            record.destination_allowlist.add(account)
            self._events.emit(event)

    def remove_from_whitelist(self, caller: CallerContext, identity: str, account: str) -> None:
        """Revoke a controller's permission to target ``account``."""
        caller.require(Role.CONTROLLER_MANAGER)
        with self._lock:
            record = self._get(identity)
            if account not in record.destination_allowlist:
                raise EntryNotFoundError(identity, account)
            event = WhitelistEntryRemoved(identity=identity, account=account)
            if self._store:
                self._store.remove_whitelist_entry(identity, account, event)
            record.destination_allowlist.discard(account)
            self._events.emit(event)

    # --- Ledger integration ---

    def authorize(
        self,
        caller: CallerContext,
        identity: str,
        amount: int,
        destination: str,
        now: int,
        action: SupplyAction = SupplyAction.MINT,
    ) -> None:
        """
        Authorize a mint or burn before the ledger changes balances.

        Only the token contract may call this. On success the controller's
        quota is consumed; that is the only mutation.

        Args:
            caller: Must hold TOKEN_CONTRACT
            identity: Controller requesting the supply change
            amount: Units to mint or burn
            destination: Account minted to or burned from
            now: Current timestamp, non-decreasing per controller
            action: Mint or burn

        Raises:
            ControllerNotFoundError: If identity is not a controller
            DestinationNotAllowedError: If the destination is not permitted
            QuotaExceededError: If amount exceeds available quota
            StaleTimestampError: If now precedes the last accepted event
        """
        caller.require(Role.TOKEN_CONTRACT)
        with self._lock:
            record = self._get(identity)
            if not record.permits(destination):
                logger.info(f"Rejected {action.value} by {identity}: destination {destination} not allowed")
                raise DestinationNotAllowedError(identity, destination, action.value)

            try:
                new_state = record.tracker.evaluate(amount, now)
            except QuotaError as e:
                logger.info(f"Rejected {action.value} of {amount} by {identity}: {e.code}")
                raise

            if new_state is not None and self._store:
                self._store.save_quota_state(identity, new_state)
            record.tracker.apply(new_state)

        logger.debug(f"Authorized {action.value} of {amount} by {identity} for {destination}")

    def authorize_mint(
        self, caller: CallerContext, identity: str, amount: int, to_account: str, now: int
    ) -> None:
        self.authorize(caller, identity, amount, to_account, now, SupplyAction.MINT)

    def authorize_burn(
        self, caller: CallerContext, identity: str, amount: int, from_account: str, now: int
    ) -> None:
        self.authorize(caller, identity, amount, from_account, now, SupplyAction.BURN)

    # --- Queries ---

    def _require_inspector(self, caller: CallerContext, identity: str) -> None:
        if caller.identity != identity and not caller.has_role(Role.INSPECTOR):
            raise NotAuthorizedCallerError(caller.identity, identity)

    def remaining_quota(self, caller: CallerContext, identity: str, now: int) -> int:
        """
        Quota the controller could use at ``now``.

        Readable by the controller itself or an inspector. Never used by
        the ledger for authorization decisions.
        """
        self._require_inspector(caller, identity)
        with self._lock:
            return self._get(identity).tracker.peek(now)

    def get_controller_config(self, caller: CallerContext, identity: str) -> ControllerConfig:
        """Full configuration and quota state of one controller."""
        self._require_inspector(caller, identity)
        with self._lock:
            return self._get(identity).to_config()

    def list_controllers(self) -> list[str]:
        """Identities of all registered controllers."""
        with self._lock:
            return sorted(self._controllers)

    def is_controller(self, identity: str) -> bool:
        return identity in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)
