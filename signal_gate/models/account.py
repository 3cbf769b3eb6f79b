"""
Account data models.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr


class UserRole(str, Enum):
    """Roles for access control."""
    USER = "user"
    ADMIN = "admin"


class Account(BaseModel):
    """Stored account, including the credential hash. Never returned over HTTP."""
    id: int
    username: str
    email: EmailStr
    credential_hash: str
    role: UserRole = UserRole.USER
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AccountProfile(BaseModel):
    """
    Public view of an account.

    ``subscription_status`` and ``subscription_expiry`` are derived from the
    subscription record at read time; the account row holds no copy of them.
    """
    id: int
    username: str
    email: EmailStr
    role: UserRole
    subscription_status: str
    subscription_expiry: Optional[datetime] = None
    created_at: Optional[datetime] = None
