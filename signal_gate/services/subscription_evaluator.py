"""
Subscription evaluation.

The ``subscriptions`` row is the single source of truth. Anything that looks
like a per-user status column (profiles, admin listings) is computed here
from that row at read time.
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

from signal_gate.exceptions import ValidationError
from signal_gate.models.subscription import EntitlementStatus, Subscription, SubscriptionStatus
from signal_gate.utils.clock import as_utc

# Historical status values that mean "no access"
_EXPIRED_ALIASES = {"expired", "inactive", "disabled"}

UPGRADE_INSTRUCTION = "Contact an administrator to upgrade your subscription."


def normalize_status(value: Union[str, SubscriptionStatus]) -> SubscriptionStatus:
    """Map a raw status to ``active`` or ``expired``."""
    if isinstance(value, SubscriptionStatus):
        return value
    if not isinstance(value, str):
        raise ValidationError("Subscription status must be a string")

    normalized = value.strip().lower()
    if normalized == SubscriptionStatus.ACTIVE.value:
        return SubscriptionStatus.ACTIVE
    if normalized in _EXPIRED_ALIASES:
        return SubscriptionStatus.EXPIRED
    raise ValidationError(
        f"Unknown subscription status: {value}",
        details={"allowed": ["active", "expired", "inactive", "disabled"]},
    )


def evaluate(subscription: Optional[Subscription], now: datetime) -> EntitlementStatus:
    """
    Entitlement of an account at ``now``.

    ``none`` when there is no row; ``active`` only when the stored status is
    active and the end date is still in the future; ``expired`` otherwise,
    including active rows whose end date has passed or is missing.
    """
    if subscription is None:
        return EntitlementStatus.NONE

    if subscription.status != SubscriptionStatus.ACTIVE:
        return EntitlementStatus.EXPIRED

    end_date = as_utc(subscription.end_date)
    if end_date is None or end_date <= as_utc(now):
        return EntitlementStatus.EXPIRED
    return EntitlementStatus.ACTIVE


def is_granting(subscription: Optional[Subscription], now: datetime) -> bool:
    return evaluate(subscription, now) == EntitlementStatus.ACTIVE


def grant_window(duration_days: int, now: datetime) -> Tuple[SubscriptionStatus, datetime]:
    """Status and end date written by a grant of ``duration_days``."""
    if isinstance(duration_days, bool) or not isinstance(duration_days, int) or duration_days <= 0:
        raise ValidationError("duration_days must be a positive integer")
    return SubscriptionStatus.ACTIVE, now + timedelta(days=duration_days)


def revoke_window(now: datetime) -> Tuple[SubscriptionStatus, datetime]:
    return SubscriptionStatus.EXPIRED, now


def from_legacy(
    status: Union[str, SubscriptionStatus],
    expiry_days: Optional[int],
    now: datetime,
) -> Tuple[SubscriptionStatus, datetime]:
    """
    Translate the older admin payload ``{status, expiry_days}``.

    An active status becomes a grant (``expiry_days`` defaults to 30); any
    other status becomes a revoke.
    """
    normalized = normalize_status(status)
    if normalized == SubscriptionStatus.ACTIVE:
        return grant_window(30 if expiry_days is None else expiry_days, now)
    return revoke_window(now)
