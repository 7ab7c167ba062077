"""Kernel utilities."""

from approval_kernel.utils.expiring_codes import ExpiringCodeCache, generate_numeric_code

__all__ = [
    "ExpiringCodeCache",
    "generate_numeric_code",
]
