"""
Service wiring.

``ServiceContainer.from_settings`` builds every repository and service from
one ``Settings`` object. The API keeps the container on ``app.state`` and
drives ``startup``/``shutdown`` from its lifespan.
"""
from dataclasses import dataclass
from typing import Optional

from signal_gate.config.settings import Settings
from signal_gate.repositories.account_repository import AccountRepository
from signal_gate.repositories.code_store import CodeStore, InMemoryCodeStore, RedisCodeStore
from signal_gate.repositories.database import Database
from signal_gate.repositories.signal_repository import SignalRepository
from signal_gate.repositories.subscription_repository import SubscriptionRepository
from signal_gate.services.access_control import AccessControl
from signal_gate.services.account_service import AccountService
from signal_gate.services.approval_notifier import ApprovalNotifier
from signal_gate.services.chat_service import ChatClient, ChatService, GeminiChatClient
from signal_gate.services.email_service import EmailSender, build_email_sender
from signal_gate.services.otp_service import OTPService
from signal_gate.services.signal_service import SignalService
from signal_gate.services.token_service import TokenService
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    code_store: CodeStore
    email_sender: EmailSender
    chat_client: ChatClient
    tokens: TokenService
    access_control: AccessControl
    notifier: ApprovalNotifier
    signals: SignalService
    otp: OTPService
    accounts: AccountService
    chat: ChatService

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        email_sender: Optional[EmailSender] = None,
        chat_client: Optional[ChatClient] = None,
        code_store: Optional[CodeStore] = None,
        clock: Clock = utc_now,
    ) -> "ServiceContainer":
        """Build the object graph. Collaborators may be passed in to replace the defaults."""
        database = Database(settings.database)
        account_repo = AccountRepository(database)
        subscription_repo = SubscriptionRepository(database)
        signal_repo = SignalRepository(database)

        if code_store is None:
            if settings.redis.enabled:
                code_store = RedisCodeStore(settings.redis, clock=clock)
            else:
                code_store = InMemoryCodeStore(clock=clock)
        email_sender = email_sender or build_email_sender(settings.email)
        chat_client = chat_client or GeminiChatClient(settings.chat)

        tokens = TokenService(settings.api, clock=clock)
        access_control = AccessControl(subscription_repo, clock=clock)
        notifier = ApprovalNotifier(signal_repo, subscription_repo, email_sender, clock=clock)
        otp = OTPService(settings.otp, code_store, email_sender, clock=clock)

        return cls(
            settings=settings,
            database=database,
            code_store=code_store,
            email_sender=email_sender,
            chat_client=chat_client,
            tokens=tokens,
            access_control=access_control,
            notifier=notifier,
            signals=SignalService(settings.signals, signal_repo, access_control, notifier, clock=clock),
            otp=otp,
            accounts=AccountService(account_repo, subscription_repo, otp, tokens, clock=clock),
            chat=ChatService(settings.chat, chat_client),
        )

    async def startup(self) -> None:
        if self.settings.database.create_tables:
            await self.database.create_tables()
        await self.accounts.bootstrap_admin(self.settings.bootstrap)

    async def shutdown(self) -> None:
        """Let pending notifications finish, then release connections."""
        await self.notifier.drain()
        await self.email_sender.close()
        await self.chat_client.close()
        await self.code_store.close()
        await self.database.dispose()
        logger.info("Services shut down")
