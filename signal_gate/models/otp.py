"""
One-time code model.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from signal_gate.utils.clock import as_utc


@dataclass
class OneTimeCode:
    """A live code for one email address."""
    code: str
    expires_at: datetime
    attempts: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > as_utc(self.expires_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "expires_at": as_utc(self.expires_at).isoformat(),
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OneTimeCode":
        return cls(
            code=str(data["code"]),
            expires_at=as_utc(datetime.fromisoformat(data["expires_at"])),
            attempts=int(data.get("attempts", 0)),
        )
