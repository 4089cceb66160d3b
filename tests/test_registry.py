"""Tests for the controller registry."""

from unittest.mock import MagicMock

import pytest

from supplycontrol.db.store import ControllerStore
from supplycontrol.errors import (
    ControllerAlreadyExistsError,
    ControllerNotFoundError,
    DestinationNotAllowedError,
    DuplicateEntryError,
    EntryNotFoundError,
    MalformedIdentityError,
    MissingRoleError,
    NotAuthorizedCallerError,
    QuotaExceededError,
    StaleTimestampError,
    ZeroAddressError,
)
from supplycontrol.events import EventLog
from supplycontrol.quota import UINT256_MAX, LimitConfig
from supplycontrol.registry import ControllerRegistry, ControllerSpec, SupplyAction
from supplycontrol.roles import ZERO_ADDRESS, CallerContext


@pytest.fixture
def minter(registry: ControllerRegistry, manager: CallerContext) -> str:
    """Register a standard controller and return its identity."""
    registry.add_controller(manager, "minter-1", 2000, 50, ["treasury", "alice"])
    return "minter-1"


class TestAddController:
    """Tests for registering controllers."""

    def test_add_returns_config(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        config = registry.add_controller(manager, "minter-1", 2000, 50, ["treasury"])

        assert config.identity == "minter-1"
        assert config.limit_config == LimitConfig(capacity=2000, refill_rate=50)
        assert config.quota_state.available == 0
        assert config.quota_state.last_update_time == 0
        assert config.whitelist == ["treasury"]
        assert config.allow_any_destination is False
        assert registry.is_controller("minter-1")

    def test_requires_manager_role(
        self, registry: ControllerRegistry, admin: CallerContext, outsider: CallerContext
    ) -> None:
        """Test even the default admin cannot register controllers."""
        for caller in (admin, outsider):
            with pytest.raises(MissingRoleError):
                registry.add_controller(caller, "minter-1", 100, 1)
        assert len(registry) == 0

    def test_rejects_duplicate_identity(
        self, registry: ControllerRegistry, manager: CallerContext, minter: str
    ) -> None:
        with pytest.raises(ControllerAlreadyExistsError):
            registry.add_controller(manager, minter, 1, 1)

    def test_rejects_zero_address(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        with pytest.raises(ZeroAddressError):
            registry.add_controller(manager, ZERO_ADDRESS, 100, 1)
        with pytest.raises(ZeroAddressError):
            registry.add_controller(manager, "", 100, 1)

    def test_rejects_duplicate_whitelist_entry(
        self, registry: ControllerRegistry, manager: CallerContext
    ) -> None:
        with pytest.raises(DuplicateEntryError):
            registry.add_controller(manager, "minter-1", 100, 1, ["a", "b", "a"])
        assert not registry.is_controller("minter-1")

    def test_rejects_zero_address_in_whitelist(
        self, registry: ControllerRegistry, manager: CallerContext
    ) -> None:
        with pytest.raises(ZeroAddressError):
            registry.add_controller(manager, "minter-1", 100, 1, [ZERO_ADDRESS])

    def test_rejects_invalid_amounts(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        with pytest.raises(ValueError):
            registry.add_controller(manager, "minter-1", -1, 1)
        assert not registry.is_controller("minter-1")

    def test_emits_event(
        self, registry: ControllerRegistry, events: EventLog, manager: CallerContext
    ) -> None:
        registry.add_controller(manager, "minter-1", 2000, 50, ["treasury"], allow_any_destination=True)

        event = events.recent(1)[0]
        assert event.name == "controller_added"
        assert event.identity == "minter-1"
        assert event.capacity == 2000
        assert event.whitelist == ["treasury"]
        assert event.allow_any_destination is True

    def test_uses_given_event_log(self, events: EventLog) -> None:
        """Test an empty log passed in is the one the registry emits to."""
        assert len(events) == 0
        assert ControllerRegistry(events=events).events is events

    def test_rejects_padded_identity(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        registry.add_controller(manager, "minter-1", 100, 1)

        with pytest.raises(MalformedIdentityError) as exc_info:
            registry.add_controller(manager, " minter-1", 100, 1)
        assert exc_info.value.status_code == 400
        with pytest.raises(MalformedIdentityError):
            registry.add_controller(manager, "minter-2", 100, 1, ["treasury "])
        assert registry.list_controllers() == ["minter-1"]

    def test_large_initial_whitelist(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        accounts = [f"account-{i}" for i in range(5000)]

        with pytest.raises(DuplicateEntryError) as exc_info:
            registry.add_controller(manager, "minter-1", 100, 1, accounts + ["account-17"])
        assert exc_info.value.account == "account-17"

        config = registry.add_controller(manager, "minter-1", 100, 1, accounts)
        assert len(config.whitelist) == 5000


class TestRemoveController:
    """Tests for removing controllers."""

    def test_remove(self, registry: ControllerRegistry, manager: CallerContext, minter: str) -> None:
        registry.remove_controller(manager, minter)

        assert not registry.is_controller(minter)
        assert registry.list_controllers() == []

    def test_remove_unknown(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        with pytest.raises(ControllerNotFoundError):
            registry.remove_controller(manager, "ghost")

    def test_readd_starts_clean(
        self,
        registry: ControllerRegistry,
        manager: CallerContext,
        ledger: CallerContext,
        inspector: CallerContext,
        minter: str,
    ) -> None:
        """Test no whitelist or quota state survives removal."""
        registry.authorize(ledger, minter, 1500, "treasury", 100)
        registry.remove_controller(manager, minter)
        registry.add_controller(manager, minter, 2000, 50)

        config = registry.get_controller_config(inspector, minter)
        assert config.whitelist == []
        assert config.quota_state.available == 0
        assert config.quota_state.last_update_time == 0
        with pytest.raises(DestinationNotAllowedError):
            registry.authorize(ledger, minter, 1, "treasury", 100)


class TestUpdateLimitConfig:
    """Tests for changing limits."""

    def test_update_preserves_state(
        self,
        registry: ControllerRegistry,
        manager: CallerContext,
        ledger: CallerContext,
        inspector: CallerContext,
        minter: str,
    ) -> None:
        registry.authorize(ledger, minter, 1000, "treasury", 100)
        new_config = registry.update_limit_config(manager, minter, 5000, 100)

        assert new_config == LimitConfig(capacity=5000, refill_rate=100)
        config = registry.get_controller_config(inspector, minter)
        assert config.quota_state.available == 1000
        assert config.quota_state.last_update_time == 100

    def test_event_carries_old_values(
        self, registry: ControllerRegistry, events: EventLog, manager: CallerContext, minter: str
    ) -> None:
        registry.update_limit_config(manager, minter, 5000, 100)

        event = events.recent(1)[0]
        assert event.name == "limit_config_updated"
        assert (event.new_capacity, event.new_refill_rate) == (5000, 100)
        assert (event.old_capacity, event.old_refill_rate) == (2000, 50)

    def test_disable_limiting(
        self,
        registry: ControllerRegistry,
        manager: CallerContext,
        ledger: CallerContext,
        minter: str,
    ) -> None:
        registry.update_limit_config(manager, minter, 2000, 0)

        registry.authorize(ledger, minter, 10**40, "treasury", 100)
        assert registry.remaining_quota(CallerContext(minter), minter, 100) == UINT256_MAX

    def test_unknown_controller(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        with pytest.raises(ControllerNotFoundError):
            registry.update_limit_config(manager, "ghost", 1, 1)

    def test_requires_manager(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        with pytest.raises(MissingRoleError):
            registry.update_limit_config(ledger, minter, 1, 1)


class TestDestinationPolicy:
    """Tests for whitelist and allow-any policy."""

    def test_whitelisted_destination(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        registry.authorize(ledger, minter, 100, "alice", 100)

    def test_unlisted_destination_rejected(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        with pytest.raises(DestinationNotAllowedError) as exc_info:
            registry.authorize(ledger, minter, 100, "bob", 100)
        assert exc_info.value.action == "mint"

    def test_burn_error_names_action(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        with pytest.raises(DestinationNotAllowedError) as exc_info:
            registry.authorize_burn(ledger, minter, 100, "bob", 100)
        assert exc_info.value.action == "burn"
        assert "cannot burn from bob" in exc_info.value.message

    def test_allow_any(
        self,
        registry: ControllerRegistry,
        manager: CallerContext,
        ledger: CallerContext,
        minter: str,
    ) -> None:
        old_value = registry.update_destination_policy(manager, minter, True)
        assert old_value is False

        registry.authorize_mint(ledger, minter, 100, "bob", 100)

        assert registry.update_destination_policy(manager, minter, False) is True
        with pytest.raises(DestinationNotAllowedError):
            registry.authorize_mint(ledger, minter, 100, "bob", 101)

    def test_whitelist_round_trip(
        self,
        registry: ControllerRegistry,
        manager: CallerContext,
        ledger: CallerContext,
        minter: str,
    ) -> None:
        """Test adding then removing an account restores the prior decision."""
        with pytest.raises(DestinationNotAllowedError):
            registry.authorize(ledger, minter, 1, "bob", 100)

        registry.add_to_whitelist(manager, minter, "bob")
        registry.authorize(ledger, minter, 1, "bob", 100)

        registry.remove_from_whitelist(manager, minter, "bob")
        with pytest.raises(DestinationNotAllowedError):
            registry.authorize(ledger, minter, 1, "bob", 101)

    def test_duplicate_whitelist_add(
        self, registry: ControllerRegistry, manager: CallerContext, minter: str
    ) -> None:
        with pytest.raises(DuplicateEntryError):
            registry.add_to_whitelist(manager, minter, "treasury")

    def test_remove_missing_entry(
        self, registry: ControllerRegistry, manager: CallerContext, minter: str
    ) -> None:
        with pytest.raises(EntryNotFoundError):
            registry.remove_from_whitelist(manager, minter, "bob")

    def test_whitelist_zero_address(
        self, registry: ControllerRegistry, manager: CallerContext, minter: str
    ) -> None:
        with pytest.raises(ZeroAddressError):
            registry.add_to_whitelist(manager, minter, ZERO_ADDRESS)

    def test_whitelist_unknown_controller(
        self, registry: ControllerRegistry, manager: CallerContext
    ) -> None:
        with pytest.raises(ControllerNotFoundError):
            registry.add_to_whitelist(manager, "ghost", "bob")


class TestAuthorize:
    """Tests for ledger authorization."""

    def test_consumes_quota(
        self,
        registry: ControllerRegistry,
        ledger: CallerContext,
        inspector: CallerContext,
        minter: str,
    ) -> None:
        registry.authorize(ledger, minter, 1000, "treasury", 100)

        assert registry.remaining_quota(inspector, minter, 100) == 1000
        assert registry.remaining_quota(inspector, minter, 110) == 1500

    def test_quota_exceeded(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        registry.authorize(ledger, minter, 1000, "treasury", 100)
        registry.authorize(ledger, minter, 500, "treasury", 105)

        with pytest.raises(QuotaExceededError):
            registry.authorize(ledger, minter, 1000, "treasury", 106)

    def test_stale_timestamp(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        registry.authorize(ledger, minter, 10, "treasury", 100)
        with pytest.raises(StaleTimestampError):
            registry.authorize(ledger, minter, 10, "treasury", 99)

    def test_destination_checked_before_quota(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        """Test a forbidden destination wins over an oversized amount."""
        with pytest.raises(DestinationNotAllowedError):
            registry.authorize(ledger, minter, 10**9, "bob", 100)

    def test_only_token_contract(
        self,
        registry: ControllerRegistry,
        manager: CallerContext,
        minter: str,
    ) -> None:
        """Test the controller itself cannot self-authorize."""
        for caller in (manager, CallerContext(minter)):
            with pytest.raises(MissingRoleError):
                registry.authorize(caller, minter, 1, "treasury", 100)

    def test_unknown_controller(self, registry: ControllerRegistry, ledger: CallerContext) -> None:
        with pytest.raises(ControllerNotFoundError):
            registry.authorize(ledger, "ghost", 1, "treasury", 100)

    def test_failure_leaves_state_unchanged(
        self,
        registry: ControllerRegistry,
        ledger: CallerContext,
        inspector: CallerContext,
        minter: str,
    ) -> None:
        registry.authorize(ledger, minter, 1000, "treasury", 100)
        before = registry.get_controller_config(inspector, minter)

        for args in ((5000, "treasury", 101), (1, "bob", 101), (1, "treasury", 50)):
            with pytest.raises((QuotaExceededError, DestinationNotAllowedError, StaleTimestampError)):
                registry.authorize(ledger, minter, *args)

        assert registry.get_controller_config(inspector, minter) == before

    def test_controllers_isolated(
        self,
        registry: ControllerRegistry,
        manager: CallerContext,
        ledger: CallerContext,
        inspector: CallerContext,
        minter: str,
    ) -> None:
        """Test consuming one controller's quota never touches another."""
        registry.add_controller(manager, "minter-2", 2000, 50, ["treasury"])
        registry.authorize(ledger, minter, 2000, "treasury", 100)

        assert registry.remaining_quota(inspector, minter, 100) == 0
        assert registry.remaining_quota(inspector, "minter-2", 100) == 2000

    def test_action_enum(
        self, registry: ControllerRegistry, ledger: CallerContext, minter: str
    ) -> None:
        registry.authorize(ledger, minter, 5, "treasury", 100, SupplyAction.BURN)


class TestQueries:
    """Tests for read access to controller state."""

    def test_controller_reads_own_quota(self, registry: ControllerRegistry, minter: str) -> None:
        assert registry.remaining_quota(CallerContext(minter), minter, 100) == 2000

    def test_outsider_cannot_read(
        self, registry: ControllerRegistry, outsider: CallerContext, minter: str
    ) -> None:
        with pytest.raises(NotAuthorizedCallerError):
            registry.remaining_quota(outsider, minter, 100)
        with pytest.raises(NotAuthorizedCallerError):
            registry.get_controller_config(outsider, minter)

    def test_remaining_unknown(self, registry: ControllerRegistry, inspector: CallerContext) -> None:
        with pytest.raises(ControllerNotFoundError):
            registry.remaining_quota(inspector, "ghost", 100)

    def test_config_to_dict(
        self, registry: ControllerRegistry, inspector: CallerContext, minter: str
    ) -> None:
        data = registry.get_controller_config(inspector, minter).to_dict()

        assert data["identity"] == minter
        assert data["limit_config"] == {"capacity": "2000", "refill_rate": "50"}
        assert data["whitelist"] == ["alice", "treasury"]
        assert data["rate_limited"] is True

    def test_list_controllers_sorted(self, registry: ControllerRegistry, manager: CallerContext) -> None:
        for identity in ("zeta", "alpha", "mid"):
            registry.add_controller(manager, identity, 1, 1)

        assert registry.list_controllers() == ["alpha", "mid", "zeta"]


class TestBootstrap:
    """Tests for batch registration."""

    def test_bootstrap(
        self, registry: ControllerRegistry, manager: CallerContext, inspector: CallerContext
    ) -> None:
        specs = [
            ControllerSpec("minter-1", 2000, 50, ["treasury"]),
            ControllerSpec("minter-2", UINT256_MAX, 0, allow_any_destination=True),
        ]
        registered = registry.bootstrap(manager, specs)

        assert registered == ["minter-1", "minter-2"]
        assert registry.get_controller_config(inspector, "minter-2").allow_any_destination is True

    def test_bootstrap_is_all_or_nothing(
        self, registry: ControllerRegistry, manager: CallerContext
    ) -> None:
        specs = [
            ControllerSpec("minter-1", 2000, 50),
            ControllerSpec("minter-1", 100, 1),
        ]
        with pytest.raises(ControllerAlreadyExistsError):
            registry.bootstrap(manager, specs)
        assert len(registry) == 0

    def test_bootstrap_rejects_zero_address(
        self, registry: ControllerRegistry, manager: CallerContext
    ) -> None:
        specs = [ControllerSpec("minter-1", 2000, 50), ControllerSpec(ZERO_ADDRESS, 1, 1)]
        with pytest.raises(ZeroAddressError):
            registry.bootstrap(manager, specs)
        assert len(registry) == 0

    def test_spec_from_dict(self) -> None:
        spec = ControllerSpec.from_dict(
            {"identity": "m", "capacity": "max", "refill_rate": "25", "whitelist": ["a"]}
        )

        assert spec.capacity == UINT256_MAX
        assert spec.refill_rate == 25
        assert spec.whitelist == ["a"]


class TestStoreFailures:
    """Tests for persistence failures leaving memory untouched."""

    @pytest.fixture
    def failing_store(self) -> MagicMock:
        store = MagicMock(spec=ControllerStore)
        store.save_quota_state.side_effect = RuntimeError("disk full")
        store.add_whitelist_entry.side_effect = RuntimeError("disk full")
        return store

    def test_authorize_store_failure(
        self,
        failing_store: MagicMock,
        manager: CallerContext,
        ledger: CallerContext,
        inspector: CallerContext,
    ) -> None:
        registry = ControllerRegistry(store=failing_store)
        registry.add_controller(manager, "minter-1", 2000, 50, ["treasury"])

        with pytest.raises(RuntimeError):
            registry.authorize(ledger, "minter-1", 1000, "treasury", 100)

        state = registry.get_controller_config(inspector, "minter-1").quota_state
        assert state.available == 0
        assert state.last_update_time == 0

    def test_whitelist_store_failure(
        self,
        failing_store: MagicMock,
        manager: CallerContext,
        ledger: CallerContext,
    ) -> None:
        events = EventLog()
        registry = ControllerRegistry(events=events, store=failing_store)
        registry.add_controller(manager, "minter-1", 2000, 50)
        emitted = events.total

        with pytest.raises(RuntimeError):
            registry.add_to_whitelist(manager, "minter-1", "bob")

        assert events.total == emitted
        with pytest.raises(DestinationNotAllowedError):
            registry.authorize(ledger, "minter-1", 1, "bob", 100)

    def test_bootstrap_store_failure(self, manager: CallerContext) -> None:
        store = MagicMock(spec=ControllerStore)
        store.save_controllers.side_effect = RuntimeError("disk full")
        events = EventLog()
        registry = ControllerRegistry(events=events, store=store)
        specs = [ControllerSpec("minter-1", 2000, 50), ControllerSpec("minter-2", 100, 1)]

        with pytest.raises(RuntimeError):
            registry.bootstrap(manager, specs)

        assert registry.list_controllers() == []
        assert events.total == 0
        records, added = store.save_controllers.call_args.args
        assert [r.identity for r in records] == ["minter-1", "minter-2"]
        assert [e.identity for e in added] == ["minter-1", "minter-2"]

    def test_audit_event_written_with_change(self, manager: CallerContext) -> None:
        store = MagicMock(spec=ControllerStore)
        registry = ControllerRegistry(store=store)
        registry.add_controller(manager, "minter-1", 2000, 50)

        registry.update_limit_config(manager, "minter-1", 3000, 5)

        identity, config, event = store.save_limit_config.call_args.args
        assert identity == "minter-1"
        assert config == LimitConfig(3000, 5)
        assert (event.old_capacity, event.new_capacity) == (2000, 3000)
        assert registry.events.recent(1) == [event]
