"""
Data models for the signal platform.
"""
from .account import Account, AccountProfile, UserRole
from .subscription import Subscription, SubscriptionStatus, EntitlementStatus
from .signal import Signal, SignalDraft, Direction, parse_signal_draft
from .otp import OneTimeCode

__all__ = [
    "Account",
    "AccountProfile",
    "UserRole",
    "Subscription",
    "SubscriptionStatus",
    "EntitlementStatus",
    "Signal",
    "SignalDraft",
    "Direction",
    "parse_signal_draft",
    "OneTimeCode",
]
