"""
Quota tracking for supply controllers.

Provides a uint256 token bucket with saturating refill arithmetic.
"""

from supplycontrol.quota.arithmetic import (
    UINT256_MAX,
    check_uint256,
    saturating_add,
    saturating_mul,
)
from supplycontrol.quota.tracker import (
    LimitConfig,
    QuotaState,
    QuotaTracker,
)

__all__ = [
    "LimitConfig",
    "QuotaState",
    "QuotaTracker",
    "UINT256_MAX",
    "check_uint256",
    "saturating_add",
    "saturating_mul",
]
