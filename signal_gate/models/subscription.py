"""
Subscription data models.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SubscriptionStatus(str, Enum):
    """Stored subscription states."""
    ACTIVE = "active"
    EXPIRED = "expired"


class EntitlementStatus(str, Enum):
    """Evaluated state of an account's subscription at a point in time."""
    ACTIVE = "active"
    EXPIRED = "expired"
    NONE = "none"


@dataclass
class Subscription:
    """One subscription row per account."""
    account_id: int
    status: SubscriptionStatus
    end_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None
