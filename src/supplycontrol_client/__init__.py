"""
Supply Control Client SDK
Python client library for the Supply Control API.
"""

from .client import SupplyControlAPIError, SupplyControlClient
from .models import AuditEvent, ControllerInfo, RemainingQuota

__version__ = "0.1.0"
__all__ = [
    "SupplyControlClient",
    "SupplyControlAPIError",
    "ControllerInfo",
    "RemainingQuota",
    "AuditEvent",
]
