"""
Unsigned 256-bit arithmetic for quota amounts.

Amounts come from a uint256 ledger domain. Python integers never overflow,
so the width is enforced explicitly and addition/multiplication clamp to
UINT256_MAX instead of growing past it.
"""

UINT256_MAX = 2**256 - 1
"""Largest representable amount; also the 'unlimited' remaining quota."""


def check_uint256(value: int, name: str = "value") -> int:
    """
    Validate that a value lies in the uint256 domain.

    Args:
        value: Candidate amount
        name: Field name used in the error message

    Returns:
        The value unchanged

    Raises:
        ValueError: If value is not an int in [0, UINT256_MAX]
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"{name} out of uint256 range: {value}")
    return value


def saturating_add(a: int, b: int) -> int:
    """Add two uint256 values, clamping to UINT256_MAX on overflow."""
    return min(a + b, UINT256_MAX)


def saturating_mul(a: int, b: int) -> int:
    """Multiply two uint256 values, clamping to UINT256_MAX on overflow."""
    return min(a * b, UINT256_MAX)
