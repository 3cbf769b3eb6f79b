"""
Session token issuing and verification.

Tokens are HS256 JWTs carrying only the account id and role. Subscription
state is never embedded; it is re-read on every signal request.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from signal_gate.config.settings import APIConfig
from signal_gate.exceptions import ExpiredTokenError, InvalidTokenError
from signal_gate.models.account import UserRole
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by a verified token."""
    account_id: int
    role: UserRole
    expires_at: datetime


class TokenService:
    """Issues and verifies signed session tokens."""

    def __init__(self, config: APIConfig, clock: Clock = utc_now):
        self.secret = config.jwt_secret
        self.algorithm = config.jwt_algorithm
        self.lifetime = timedelta(hours=config.jwt_expiry_hours)
        self._clock = clock

    def issue(self, account_id: int, role: UserRole, now: Optional[datetime] = None) -> str:
        """Create a token for ``account_id`` that expires after the configured lifetime."""
        issued_at = now or self._clock()
        payload = {
            "sub": str(account_id),
            "role": UserRole(role).value,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.lifetime).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Decode ``token`` and return its claims.

        Raises:
            ExpiredTokenError: the token is past its ``exp``.
            InvalidTokenError: bad signature, malformed token or missing claims.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "role", "exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected token: {e}")
            raise InvalidTokenError() from e

        try:
            claims = TokenClaims(
                account_id=int(payload["sub"]),
                role=UserRole(payload["role"]),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug(f"Rejected token with malformed claims: {e}")
            raise InvalidTokenError() from e

        # Expiry is checked against the injected clock, not the wall clock
        if self._clock() >= claims.expires_at:
            raise ExpiredTokenError()
        return claims
