"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Generator

import pytest

from supplycontrol.config import Settings
from supplycontrol.db.manager import DatabaseManager
from supplycontrol.db.store import ControllerStore
from supplycontrol.events import EventLog
from supplycontrol.registry import ControllerRegistry
from supplycontrol.roles import CallerContext, Role, RoleBook
from supplycontrol.service import SupplyControlService


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except OSError:
            pass


@pytest.fixture
def db_manager(temp_db_path: str) -> Generator[DatabaseManager, None, None]:
    """Create a DatabaseManager with a temporary database."""
    manager = DatabaseManager(database_url=f"sqlite:///{temp_db_path}")
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def store(db_manager: DatabaseManager) -> ControllerStore:
    return ControllerStore(db_manager)


@pytest.fixture
def admin() -> CallerContext:
    return CallerContext("admin", frozenset({Role.DEFAULT_ADMIN}))


@pytest.fixture
def manager() -> CallerContext:
    return CallerContext("controller-manager", frozenset({Role.CONTROLLER_MANAGER}))


@pytest.fixture
def ledger() -> CallerContext:
    return CallerContext("token-contract", frozenset({Role.TOKEN_CONTRACT}))


@pytest.fixture
def inspector() -> CallerContext:
    return CallerContext("auditor", frozenset({Role.INSPECTOR}))


@pytest.fixture
def outsider() -> CallerContext:
    return CallerContext("mallory")


@pytest.fixture
def events() -> EventLog:
    return EventLog()


@pytest.fixture
def registry(events: EventLog) -> ControllerRegistry:
    """In-memory registry without persistence."""
    return ControllerRegistry(events=events)


@pytest.fixture
def role_book(events: EventLog) -> RoleBook:
    book = RoleBook(events=events)
    book.seed(admin="admin", manager="controller-manager", token_contract="token-contract")
    return book


@pytest.fixture
def api_tokens() -> dict[str, str]:
    """Bearer tokens mapped to caller identities."""
    return {
        "admin-token": "admin",
        "manager-token": "controller-manager",
        "ledger-token": "token-contract",
        "auditor-token": "auditor",
        "minter-token": "minter-1",
    }


@pytest.fixture
def test_settings(temp_db_path: str, api_tokens: dict[str, str]) -> Settings:
    """Settings pointing at a temporary database."""
    return Settings(
        database_url=f"sqlite:///{temp_db_path}",
        api_tokens=api_tokens,
        admin_identity="admin",
        manager_identity="controller-manager",
        token_contract_identity="token-contract",
        inspector_identities=["auditor"],
        bootstrap_path=None,
    )


@pytest.fixture
def service(test_settings: Settings) -> Generator[SupplyControlService, None, None]:
    """A started service backed by a temporary database."""
    svc = SupplyControlService(test_settings)
    svc.start()
    yield svc
    svc.stop()
