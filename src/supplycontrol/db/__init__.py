"""Database package for supply control state."""

from supplycontrol.db.base import Base
from supplycontrol.db.manager import DatabaseManager
from supplycontrol.db.models import AuditEventRow, RoleGrantRow, SupplyControllerRow, WhitelistEntryRow
from supplycontrol.db.store import ControllerStore

__all__ = [
    "Base",
    "DatabaseManager",
    "ControllerStore",
    "SupplyControllerRow",
    "WhitelistEntryRow",
    "RoleGrantRow",
    "AuditEventRow",
]
