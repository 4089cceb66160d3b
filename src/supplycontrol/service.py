"""Wiring of database, event log, role book and controller registry."""

import json
import logging
from pathlib import Path
from typing import Any

from supplycontrol.config import Settings, settings as default_settings
from supplycontrol.db import ControllerStore, DatabaseManager
from supplycontrol.events import EventLog
from supplycontrol.registry import ControllerRegistry, ControllerSpec
from supplycontrol.roles import RoleBook

logger = logging.getLogger(__name__)


def load_bootstrap_file(path: str | Path) -> list[ControllerSpec]:
    """
    Read initial controller registrations from a JSON file.

    The file holds either a list of controller objects or an object with
    a "controllers" list. Amounts may be decimal strings or "max".
    """
    with open(path) as f:
        data: Any = json.load(f)

    if isinstance(data, dict):
        data = data.get("controllers", [])
    if not isinstance(data, list):
        raise ValueError(f"Bootstrap file {path} must contain a list of controllers")

    return [ControllerSpec.from_dict(entry) for entry in data]


class SupplyControlService:
    """Supply control application state coordinating all components."""

    def __init__(self, config: Settings | None = None) -> None:
        """
        Initialize the service.

        Args:
            config: Settings to use (defaults to the environment)
        """
        self.config = config or default_settings
        self.db_manager = DatabaseManager(database_url=self.config.database_url)
        self.store = ControllerStore(self.db_manager)
        self.events = EventLog(max_events=self.config.event_log_size)
        self.role_book = RoleBook(events=self.events, store=self.store)
        self.registry = ControllerRegistry(events=self.events, store=self.store)
        self._started = False

    def start(self) -> None:
        """Create tables and restore persisted state, seeding it on first start."""
        if self._started:
            return

        self.db_manager.init_db()
        first_start = self.store.is_empty()

        if first_start:
            logger.info("Empty database, seeding roles and controllers")
            self.role_book.seed(
                admin=self.config.admin_identity,
                manager=self.config.manager_identity,
                token_contract=self.config.token_contract_identity,
                inspectors=self.config.inspector_identities,
            )
            if self.config.bootstrap_path:
                specs = load_bootstrap_file(self.config.bootstrap_path)
                manager = self.role_book.context_for(self.config.manager_identity)
                registered = self.registry.bootstrap(manager, specs)
                logger.info(f"Registered {len(registered)} controllers from {self.config.bootstrap_path}")
        else:
            self.role_book.load(self.store.load_role_grants())
            self.registry.load(self.store.load_controllers())

        self._started = True
        logger.info(f"Supply control started with {len(self.registry)} controllers")

    def stop(self) -> None:
        """Release database resources."""
        self.db_manager.close()
        self._started = False
        logger.info("Supply control stopped")
