"""
Trading signal models with Pydantic validation.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from signal_gate.exceptions import ValidationError

PAIR_MAX_LENGTH = 10


class Direction(str, Enum):
    """Trade direction."""
    BUY = "BUY"
    SELL = "SELL"


class Signal(BaseModel):
    """Persisted trading signal."""
    id: int
    pair: str
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: float
    notes: Optional[str] = None
    is_approved: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SignalDraft(BaseModel):
    """
    Validated create/edit command for a signal.

    Accepts the legacy broadcast field names (``type``, ``entry``, ``sl``,
    ``tp``) alongside the canonical ones.
    """
    pair: str = Field(..., description="Instrument, e.g. BTC/USD")
    direction: Direction = Field(..., validation_alias=AliasChoices("direction", "type"))
    entry_price: float = Field(..., allow_inf_nan=False, validation_alias=AliasChoices("entry_price", "entry"))
    stop_loss: float = Field(..., allow_inf_nan=False, validation_alias=AliasChoices("stop_loss", "sl"))
    take_profit: float = Field(..., allow_inf_nan=False, validation_alias=AliasChoices("take_profit", "tp"))
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator('pair')
    @classmethod
    def validate_pair(cls, v):
        """Pair must be non-empty and short enough to display, e.g. BTC/USD."""
        v = v.strip()
        if not v:
            raise ValueError("Pair cannot be empty")
        if len(v) > PAIR_MAX_LENGTH:
            raise ValueError("Pair name is too long (e.g., BTC/USD).")
        return v

    @field_validator('direction', mode='before')
    @classmethod
    def normalize_direction(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator('entry_price', 'stop_loss', 'take_profit', mode='before')
    @classmethod
    def reject_non_numeric(cls, v):
        """Prices must be real numbers; booleans and blank strings are refused."""
        if isinstance(v, bool) or v is None:
            raise ValueError("Prices must be valid numbers.")
        if isinstance(v, str) and not v.strip():
            raise ValueError("Prices must be valid numbers.")
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("Prices must be finite numbers.")
        return v

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "pair": "BTC/USD",
                "direction": "BUY",
                "entry_price": 64250.0,
                "stop_loss": 63100.0,
                "take_profit": 66800.0,
                "notes": "Breakout retest on the 4h chart."
            }
        }
    )


def parse_signal_draft(fields: Union[SignalDraft, Mapping[str, Any]]) -> SignalDraft:
    """Turn raw request fields into a ``SignalDraft`` or raise ``ValidationError``."""
    if isinstance(fields, SignalDraft):
        return fields
    if not isinstance(fields, Mapping):
        raise ValidationError("Signal fields must be an object")
    try:
        return SignalDraft.model_validate(dict(fields))
    except PydanticValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
            }
            for err in e.errors()
        ]
        raise ValidationError("Invalid signal fields", details={"errors": errors}) from e
