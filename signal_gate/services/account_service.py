"""
Account flows: registration, login, password reset, profiles and the
administrative user operations.

Registration and password reset are gated by a one-time code. The code is
consumed before the account mutation runs; if that mutation then fails the
caller is told to start over with a new code.
"""
import hmac
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from passlib.context import CryptContext

from signal_gate.config.settings import BootstrapConfig
from signal_gate.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PasswordResetFailedError,
    RegistrationFailedError,
    SignalGateError,
    ValidationError,
)
from signal_gate.models.account import Account, AccountProfile, UserRole
from signal_gate.models.subscription import Subscription
from signal_gate.repositories.account_repository import AccountRepository
from signal_gate.repositories.subscription_repository import SubscriptionRepository
from signal_gate.services import subscription_evaluator
from signal_gate.services.otp_service import OTPService
from signal_gate.services.token_service import TokenService
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger
from signal_gate.utils.monitoring import get_metrics_collector

logger = get_logger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 8


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, stored: str) -> Tuple[bool, bool]:
    """
    Check a password against its stored form.

    Rows written before hashing was introduced hold the password itself;
    those are compared in constant time. Returns ``(matches, needs_rehash)``.
    """
    if pwd_context.identify(stored) is None:
        matches = hmac.compare_digest(plain_password.encode(), stored.encode())
        return matches, matches
    try:
        matches = pwd_context.verify(plain_password, stored)
    except ValueError:
        logger.warning("Stored credential hash is malformed")
        return False, False
    return matches, matches and pwd_context.needs_update(stored)


def validate_username(username: str) -> str:
    if not isinstance(username, str):
        raise ValidationError("Username is required")
    username = username.strip()
    if any(ch.isspace() for ch in username):
        raise ValidationError("Username cannot contain spaces")
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters"
        )
    return username


def validate_password(password: str) -> str:
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    return password


class AccountService:
    """Account lifecycle on top of the account and subscription repositories."""

    def __init__(
        self,
        accounts: AccountRepository,
        subscriptions: SubscriptionRepository,
        otp: OTPService,
        tokens: TokenService,
        clock: Clock = utc_now,
    ):
        self.accounts = accounts
        self.subscriptions = subscriptions
        self.otp = otp
        self.tokens = tokens
        self._clock = clock

    # Registration

    async def start_registration(self, username: str, email: str, password: str) -> datetime:
        """Validate the request and email a code. Returns the code's expiry."""
        username = validate_username(username)
        validate_password(password)
        if await self.accounts.exists(username, email):
            raise ConflictError("Username or email already exists")
        return await self.otp.issue(email)

    async def complete_registration(self, email: str, code: str, username: str, password: str) -> AccountProfile:
        """
        Verify the code and create the account with an expired subscription.

        Raises:
            OtpError: the code was rejected; nothing was created.
            RegistrationFailedError: the code was consumed but the account
                could not be created.
        """
        username = validate_username(username)
        validate_password(password)
        await self.otp.verify(email, code)

        try:
            account = await self.accounts.create_with_subscription(
                username=username,
                email=email,
                credential_hash=get_password_hash(password),
                now=self._clock(),
            )
        except SignalGateError as e:
            logger.error(f"Registration for {email} failed after verification: {e.message}")
            get_metrics_collector().increment_counter("registrations_total", tags={"outcome": "failed"})
            raise RegistrationFailedError(cause=e) from e

        get_metrics_collector().increment_counter("registrations_total", tags={"outcome": "created"})
        return await self.get_profile(account.id)

    async def resend_code(self, email: str) -> datetime:
        return await self.otp.issue(email)

    # Login

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Exchange credentials for a session token.

        Unknown email and wrong password fail identically.
        """
        metrics = get_metrics_collector()
        account = await self.accounts.get_by_email(email)
        matches, needs_rehash = (False, False)
        if account is not None:
            matches, needs_rehash = verify_password(password, account.credential_hash)

        if not matches:
            metrics.increment_counter("logins_total", tags={"outcome": "failed"})
            raise AuthenticationError("Invalid credentials")

        if needs_rehash:
            await self.accounts.update_credential(account.id, get_password_hash(password))
            logger.info(f"Upgraded stored credential for account {account.id}")

        subscription = await self.subscriptions.get(account.id)
        status = subscription_evaluator.evaluate(subscription, self._clock())
        metrics.increment_counter("logins_total", tags={"outcome": "success"})

        return {
            "token": self.tokens.issue(account.id, account.role),
            "user": {
                "id": account.id,
                "username": account.username,
                "role": account.role.value,
                "subscription_status": status.value,
            },
        }

    # Password reset

    async def start_password_reset(self, email: str) -> datetime:
        if await self.accounts.get_by_email(email) is None:
            raise NotFoundError("User")
        return await self.otp.issue(email)

    async def complete_password_reset(self, email: str, code: str, new_password: str) -> None:
        validate_password(new_password)
        await self.otp.verify(email, code)

        try:
            account = await self.accounts.get_by_email(email)
            if account is None:
                raise NotFoundError("User")
            updated = await self.accounts.update_credential(account.id, get_password_hash(new_password))
            if not updated:
                raise NotFoundError("User")
        except SignalGateError as e:
            logger.error(f"Password reset for {email} failed after verification: {e.message}")
            raise PasswordResetFailedError(cause=e) from e
        logger.info(f"Password reset for account {account.id}")

    # Profiles

    def _profile(self, account: Account, subscription: Optional[Subscription]) -> AccountProfile:
        status = subscription_evaluator.evaluate(subscription, self._clock())
        return AccountProfile(
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
            subscription_status=status.value,
            subscription_expiry=subscription.end_date if subscription else None,
            created_at=account.created_at,
        )

    async def get_profile(self, account_id: int) -> AccountProfile:
        account = await self.accounts.get_by_id(account_id)
        if account is None:
            raise NotFoundError("User")
        subscription = await self.subscriptions.get(account_id)
        return self._profile(account, subscription)

    # Administration

    async def list_users(self) -> List[AccountProfile]:
        rows = await self.accounts.list_with_subscriptions()
        return [self._profile(account, subscription) for account, subscription in rows]

    async def _require_account(self, account_id: int) -> Account:
        account = await self.accounts.get_by_id(account_id)
        if account is None:
            raise NotFoundError("User")
        return account

    async def grant_subscription(self, account_id: int, duration_days: int) -> AccountProfile:
        await self._require_account(account_id)
        now = self._clock()
        status, end_date = subscription_evaluator.grant_window(duration_days, now)
        await self.subscriptions.upsert(account_id, status, end_date, now)
        return await self.get_profile(account_id)

    async def revoke_subscription(self, account_id: int) -> AccountProfile:
        await self._require_account(account_id)
        now = self._clock()
        status, end_date = subscription_evaluator.revoke_window(now)
        await self.subscriptions.upsert(account_id, status, end_date, now)
        return await self.get_profile(account_id)

    async def set_subscription(self, account_id: int, status: str, expiry_days: Optional[int]) -> AccountProfile:
        """Older ``{status, expiry_days}`` form of grant/revoke."""
        await self._require_account(account_id)
        now = self._clock()
        new_status, end_date = subscription_evaluator.from_legacy(status, expiry_days, now)
        await self.subscriptions.upsert(account_id, new_status, end_date, now)
        return await self.get_profile(account_id)

    async def set_role(self, account_id: int, role: Any) -> AccountProfile:
        try:
            new_role = UserRole(role)
        except ValueError as e:
            raise ValidationError(
                f"Unknown role: {role}", details={"allowed": [r.value for r in UserRole]}
            ) from e

        if not await self.accounts.update_role(account_id, new_role):
            raise NotFoundError("User")
        logger.info(f"Account {account_id} role set to {new_role.value}")
        return await self.get_profile(account_id)

    async def bootstrap_admin(self, config: BootstrapConfig) -> Optional[Account]:
        """Create (or promote) the configured first administrator."""
        if not (config.admin_email and config.admin_username and config.admin_password):
            return None

        existing = await self.accounts.get_by_email(config.admin_email)
        if existing is not None:
            if existing.role != UserRole.ADMIN:
                await self.accounts.update_role(existing.id, UserRole.ADMIN)
                logger.info(f"Promoted bootstrap account {existing.id} to admin")
            return existing

        account = await self.accounts.create_with_subscription(
            username=validate_username(config.admin_username),
            email=config.admin_email,
            credential_hash=get_password_hash(config.admin_password),
            now=self._clock(),
            role=UserRole.ADMIN,
        )
        logger.info(f"Created bootstrap admin account {account.id}")
        return account
