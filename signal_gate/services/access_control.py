"""
Access decisions for signal reads and administrative actions.

Every decision starts from verified token claims. Admins bypass the
subscription check entirely; everyone else has their subscription row read
live on each request.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from signal_gate.exceptions import RoleRequiredError, SubscriptionRequiredError
from signal_gate.models.account import UserRole
from signal_gate.models.subscription import EntitlementStatus
from signal_gate.repositories.subscription_repository import SubscriptionRepository
from signal_gate.services.subscription_evaluator import UPGRADE_INSTRUCTION, evaluate
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)

VISIBLE_ALL = "all"
VISIBLE_APPROVED_ONLY = "approvedOnly"


@dataclass(frozen=True)
class ReadDecision:
    """Outcome of a signal-read check."""
    allowed: bool
    visible_set: Optional[str] = None
    reason: Dict[str, Any] = field(default_factory=dict)

    @property
    def approved_only(self) -> bool:
        return self.visible_set == VISIBLE_APPROVED_ONLY


def _as_role(role: Any) -> Optional[UserRole]:
    try:
        return UserRole(role)
    except ValueError:
        return None


def can_manage(role: Any) -> bool:
    """True only for administrators. Missing or unknown roles are denied."""
    return _as_role(role) == UserRole.ADMIN


def require_manage(role: Any) -> None:
    if not can_manage(role):
        raise RoleRequiredError(UserRole.ADMIN.value)


class AccessControl:
    """Signal-read entitlement checks backed by the subscription store."""

    def __init__(self, subscriptions: SubscriptionRepository, clock: Clock = utc_now):
        self.subscriptions = subscriptions
        self._clock = clock

    async def can_read_signals(
        self,
        account_id: int,
        role: Any,
        now: Optional[datetime] = None,
    ) -> ReadDecision:
        if can_manage(role):
            return ReadDecision(allowed=True, visible_set=VISIBLE_ALL)

        subscription = await self.subscriptions.get(account_id)
        status = evaluate(subscription, now or self._clock())
        if status != EntitlementStatus.ACTIVE:
            logger.debug(f"Account {account_id} denied signal access ({status.value})")
            return ReadDecision(
                allowed=False,
                reason={"status": status.value, "instruction": UPGRADE_INSTRUCTION},
            )
        return ReadDecision(allowed=True, visible_set=VISIBLE_APPROVED_ONLY)

    async def require_signal_access(self, account_id: int, role: Any) -> ReadDecision:
        """Like ``can_read_signals`` but raises ``SubscriptionRequiredError`` on denial."""
        decision = await self.can_read_signals(account_id, role)
        if not decision.allowed:
            raise SubscriptionRequiredError(
                status=decision.reason["status"],
                instruction=decision.reason["instruction"],
            )
        return decision
