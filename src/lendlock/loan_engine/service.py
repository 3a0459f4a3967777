"""
Loan Engine service: builds the store, notification sink and engine from settings.
"""

from typing import Optional

from lendlock.config import Settings
from lendlock.logging import get_logger
from .engine import LoanEngine
from .notifications import NotificationSink, create_notification_sink
from .storage import LoanStore, create_storage

logger = get_logger(__name__)


class LoanEngineService:
    """Owns the collaborators of the loan engine and their lifecycle."""

    def __init__(
        self,
        config: Settings,
        store: Optional[LoanStore] = None,
        sink: Optional[NotificationSink] = None,
    ):
        self.config = config

        self.store = store or create_storage(
            config.store.backend.value,
            redis_url=config.store.redis_url,
            loans_key=config.store.loans_key,
        )
        self.sink = sink or create_notification_sink(
            config.notifications.backend.value,
            bootstrap_servers=config.kafka.bootstrap_servers,
            request_timeout_ms=config.kafka.producer_timeout_ms,
            client_id=config.kafka.client_id,
            webhook_url=config.notifications.webhook_url,
            webhook_timeout=config.notifications.webhook_timeout,
        )

        self.engine = LoanEngine(
            store=self.store,
            sink=self.sink,
            agreement_letter_url_template=config.loans.agreement_letter_url_template,
            generate_letter_channel=config.notifications.channel_generate_agreement_letter,
            email_letter_channel=config.notifications.channel_email_agreement_letter,
        )

        self.running = False

    async def start(self):
        """Start the loan engine service."""
        logger.info(
            "Starting Loan Engine service...",
            store=type(self.store).__name__,
            sink=type(self.sink).__name__,
        )
        await self.sink.start()
        self.running = True

    async def stop(self):
        """Stop the loan engine service."""
        logger.info("Stopping Loan Engine service...")
        self.running = False
        await self.sink.stop()
        await self.store.close()

    async def is_store_reachable(self) -> bool:
        return await self.store.ping()
