"""
Supply controller registry.

Maps controller identities to their quota trackers and destination
policy, and exposes the authorization check consumed by the ledger.
"""

from supplycontrol.registry.models import (
    ControllerConfig,
    ControllerRecord,
    ControllerSpec,
    SupplyAction,
    parse_amount,
)
from supplycontrol.registry.service import ControllerRegistry

__all__ = [
    "ControllerConfig",
    "ControllerRecord",
    "ControllerRegistry",
    "ControllerSpec",
    "SupplyAction",
    "parse_amount",
]
