"""
Storage for live one-time codes, keyed by email.

``InMemoryCodeStore`` is the default and suits a single process. Deployments
running several API instances use ``RedisCodeStore`` so a code issued by one
instance can be verified by another.
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from signal_gate.config.settings import RedisConfig
from signal_gate.exceptions import ExternalServiceError
from signal_gate.models.otp import OneTimeCode
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)

# Keys outlive the code itself so a late submission still reports "expired"
# rather than "not found".
EXPIRED_GRACE_SECONDS = 300


class CodeStore(ABC):
    """At most one live code per email."""

    @abstractmethod
    async def put(self, email: str, code: OneTimeCode) -> None:
        """Store ``code``, replacing any earlier code for ``email``."""

    @abstractmethod
    async def get(self, email: str) -> Optional[OneTimeCode]:
        ...

    @abstractmethod
    async def delete(self, email: str) -> None:
        ...

    async def close(self) -> None:
        pass


class InMemoryCodeStore(CodeStore):
    """Process-local store. Codes are lost on restart."""

    def __init__(self, clock: Clock = utc_now):
        self._codes: Dict[str, OneTimeCode] = {}
        self._clock = clock

    async def put(self, email: str, code: OneTimeCode) -> None:
        self._purge_stale()
        self._codes[email.lower()] = code

    async def get(self, email: str) -> Optional[OneTimeCode]:
        return self._codes.get(email.lower())

    async def delete(self, email: str) -> None:
        self._codes.pop(email.lower(), None)

    def __len__(self) -> int:
        return len(self._codes)

    def _purge_stale(self) -> None:
        """Forget codes nobody came back for."""
        now = self._clock()
        stale = [
            email for email, code in self._codes.items()
            if (now - code.expires_at).total_seconds() > EXPIRED_GRACE_SECONDS
        ]
        for email in stale:
            del self._codes[email]


class RedisCodeStore(CodeStore):
    """Redis-backed store; each code is a JSON value with a key TTL."""

    def __init__(self, config: RedisConfig, client: Optional[redis.Redis] = None, clock: Clock = utc_now):
        self.config = config
        self._clock = clock
        self._redis = client or redis.from_url(
            config.url,
            socket_timeout=config.socket_timeout,
            decode_responses=True,
        )

    def _key(self, email: str) -> str:
        return f"{self.config.key_prefix}{email.lower()}"

    def _ttl_ms(self, expires_at: datetime) -> int:
        remaining = (expires_at - self._clock()).total_seconds()
        return max(1, int((remaining + EXPIRED_GRACE_SECONDS) * 1000))

    async def put(self, email: str, code: OneTimeCode) -> None:
        try:
            await self._redis.set(
                self._key(email),
                json.dumps(code.to_dict()),
                px=self._ttl_ms(code.expires_at),
            )
        except RedisError as e:
            logger.error(f"Failed to store one-time code: {e}")
            raise ExternalServiceError("One-time code store") from e

    async def get(self, email: str) -> Optional[OneTimeCode]:
        try:
            raw = await self._redis.get(self._key(email))
        except RedisError as e:
            logger.error(f"Failed to read one-time code: {e}")
            raise ExternalServiceError("One-time code store") from e

        if raw is None:
            return None
        try:
            return OneTimeCode.from_dict(json.loads(raw))
        except (ValueError, KeyError) as e:
            logger.warning(f"Discarding unreadable one-time code entry: {e}")
            await self.delete(email)
            return None

    async def delete(self, email: str) -> None:
        try:
            await self._redis.delete(self._key(email))
        except RedisError as e:
            logger.error(f"Failed to delete one-time code: {e}")
            raise ExternalServiceError("One-time code store") from e

    async def close(self) -> None:
        await self._redis.aclose()
