"""
Constants module for the dojo API
"""

from .roles import (
    Role,
    PaymentStatus,
    PAYMENT_REVIEWER_ROLES,
    STAFF_ROLES,
    ROLE_DESCRIPTIONS,
)

__all__ = [
    "Role",
    "PaymentStatus",
    "PAYMENT_REVIEWER_ROLES",
    "STAFF_ROLES",
    "ROLE_DESCRIPTIONS",
]
