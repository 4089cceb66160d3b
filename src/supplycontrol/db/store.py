"""
Persistence of registry state.

Maps controller records, role grants and audit events to database rows.
Each method runs in its own session so every registry change, together
with the audit row describing it, is a single committed transaction.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from supplycontrol.db.manager import DatabaseManager
from supplycontrol.db.models import (
    AuditEventRow,
    RoleGrantRow,
    SupplyControllerRow,
    WhitelistEntryRow,
)
from supplycontrol.errors import ControllerNotFoundError
from supplycontrol.events import RegistryEvent
from supplycontrol.quota import LimitConfig, QuotaState, QuotaTracker
from supplycontrol.registry.models import ControllerRecord
from supplycontrol.roles import Role

logger = logging.getLogger(__name__)


class ControllerStore:
    """Database-backed store for the controller registry and role book."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    def _controller_row(self, session: Session, identity: str) -> SupplyControllerRow:
        row = session.scalars(
            select(SupplyControllerRow).where(SupplyControllerRow.identity == identity)
        ).first()
        if row is None:
            raise ControllerNotFoundError(identity)
        return row

    # --- Controllers ---

    def load_controllers(self) -> list[ControllerRecord]:
        """Rebuild controller records from the database."""
        with self._db.get_session() as session:
            rows = session.scalars(select(SupplyControllerRow)).all()
            records = [
                ControllerRecord(
                    identity=row.identity,
                    tracker=QuotaTracker(
                        LimitConfig(capacity=int(row.capacity), refill_rate=int(row.refill_rate)),
                        QuotaState(
                            available=int(row.available),
                            last_update_time=int(row.last_update_time),
                        ),
                    ),
                    destination_allowlist={entry.account for entry in row.whitelist},
                    allow_any_destination=row.allow_any_destination,
                )
                for row in rows
            ]
        return records

    @staticmethod
    def _new_controller_row(record: ControllerRecord) -> SupplyControllerRow:
        config = record.tracker.config
        state = record.tracker.state
        row = SupplyControllerRow(
            identity=record.identity,
            capacity=str(config.capacity),
            refill_rate=str(config.refill_rate),
            available=str(state.available),
            last_update_time=str(state.last_update_time),
            allow_any_destination=record.allow_any_destination,
        )
        row.whitelist = [WhitelistEntryRow(account=account) for account in sorted(record.destination_allowlist)]
        return row

    def save_controller(self, record: ControllerRecord, event: RegistryEvent | None = None) -> None:
        """Insert a newly registered controller."""
        self.save_controllers([record], [event] if event is not None else [])

    def save_controllers(
        self,
        records: list[ControllerRecord],
        events: list[RegistryEvent] | None = None,
    ) -> None:
        """Insert a batch of controllers in one transaction."""
        with self._db.get_session() as session:
            for record in records:
                session.add(self._new_controller_row(record))
            for event in events or []:
                self._add_event(session, event)

    def delete_controller(self, identity: str, event: RegistryEvent | None = None) -> None:
        """Delete a controller and its whitelist."""
        with self._db.get_session() as session:
            session.delete(self._controller_row(session, identity))
            self._add_event(session, event)

    def save_limit_config(self, identity: str, config: LimitConfig, event: RegistryEvent | None = None) -> None:
        with self._db.get_session() as session:
            row = self._controller_row(session, identity)
            row.capacity = str(config.capacity)
            row.refill_rate = str(config.refill_rate)
            self._add_event(session, event)

    def save_quota_state(self, identity: str, state: QuotaState) -> None:
        with self._db.get_session() as session:
            row = self._controller_row(session, identity)
            row.available = str(state.available)
            row.last_update_time = str(state.last_update_time)

    def set_allow_any(self, identity: str, allow_any: bool, event: RegistryEvent | None = None) -> None:
        with self._db.get_session() as session:
            self._controller_row(session, identity).allow_any_destination = allow_any
            self._add_event(session, event)

    def add_whitelist_entry(self, identity: str, account: str, event: RegistryEvent | None = None) -> None:
        with self._db.get_session() as session:
            row = self._controller_row(session, identity)
            session.add(WhitelistEntryRow(controller_id=row.id, account=account))
            self._add_event(session, event)

    def remove_whitelist_entry(self, identity: str, account: str, event: RegistryEvent | None = None) -> None:
        with self._db.get_session() as session:
            row = self._controller_row(session, identity)
            entry = session.scalars(
                select(WhitelistEntryRow).where(
                    WhitelistEntryRow.controller_id == row.id,
                    WhitelistEntryRow.account == account,
                )
            ).first()
            if entry is not None:
                session.delete(entry)
            self._add_event(session, event)

    # --- Roles ---

    def load_role_grants(self) -> list[tuple[str, Role]]:
        with self._db.get_session() as session:
            rows = session.scalars(select(RoleGrantRow)).all()
            return [(row.identity, Role(row.role)) for row in rows]

    def save_role_grant(self, identity: str, role: Role, event: RegistryEvent | None = None) -> None:
        with self._db.get_session() as session:
            session.add(RoleGrantRow(identity=identity, role=role.value))
            self._add_event(session, event)

    def delete_role_grant(self, identity: str, role: Role, event: RegistryEvent | None = None) -> None:
        with self._db.get_session() as session:
            row = session.scalars(
                select(RoleGrantRow).where(
                    RoleGrantRow.identity == identity,
                    RoleGrantRow.role == role.value,
                )
            ).first()
            if row is not None:
                session.delete(row)
            self._add_event(session, event)

    # --- Audit trail ---

    @staticmethod
    def _add_event(session: Session, event: RegistryEvent | None) -> None:
        if event is None:
            return
        payload = event.to_dict()
        session.add(
            AuditEventRow(
                name=event.name,
                payload_json=json.dumps(payload["data"]),
                emitted_at=getattr(event, "emitted_at"),
            )
        )

    def recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        """Most recent audit events, oldest first."""
        with self._db.get_session() as session:
            rows = session.scalars(
                select(AuditEventRow).order_by(AuditEventRow.id.desc()).limit(limit)
            ).all()
            events = [
                {
                    "event": row.name,
                    "emitted_at": row.emitted_at.isoformat(),
                    "data": json.loads(row.payload_json),
                }
                for row in rows
            ]
        events.reverse()
        return events

    def is_empty(self) -> bool:
        """Whether no controller or role grant has been persisted yet."""
        with self._db.get_session() as session:
            has_controller = session.scalars(select(SupplyControllerRow.id).limit(1)).first() is not None
            has_grant = session.scalars(select(RoleGrantRow.id).limit(1)).first() is not None
        return not (has_controller or has_grant)
