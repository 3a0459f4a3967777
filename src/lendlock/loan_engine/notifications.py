"""
Outbound notification sinks for loan events.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from lendlock.logging import get_logger
from lendlock.shared.loan_errors import NotificationError

logger = get_logger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def encode_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, cls=DecimalEncoder).encode("utf-8")


class NotificationSink(ABC):
    """Fire-and-forget dispatch of named events."""

    async def start(self) -> None:
        """Open connections to the downstream system."""
        pass

    async def stop(self) -> None:
        """Close connections to the downstream system."""
        pass

    @abstractmethod
    async def send(self, channel: str, payload: Dict[str, Any]) -> None:
        """Dispatch a payload on a channel.

        Raises:
            NotificationError: If the message could not be handed over
        """
        pass


class LogNotificationSink(NotificationSink):
    """Sink that only logs messages, for local development."""

    async def send(self, channel: str, payload: Dict[str, Any]) -> None:
        logger.info("Message sent", channel=channel, payload=encode_payload(payload).decode("utf-8"))


class KafkaNotificationSink(NotificationSink):
    """Publishes each channel to the Kafka topic of the same name."""

    def __init__(self, bootstrap_servers: str, request_timeout_ms: int = 10000, client_id: str = "lendlock"):
        self.bootstrap_servers = bootstrap_servers
        self.request_timeout_ms = request_timeout_ms
        self.client_id = client_id
        self.producer: Optional[AIOKafkaProducer] = None
        self._is_connected = False

    async def start(self) -> None:
        """Start the Kafka producer."""
        try:
            self.producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                value_serializer=encode_payload,
                acks="all",
                enable_idempotence=True,
                request_timeout_ms=self.request_timeout_ms,
                retry_backoff_ms=100,
            )
            await self.producer.start()
            self._is_connected = True
            logger.info("Kafka producer started successfully", bootstrap_servers=self.bootstrap_servers)

        except Exception as e:
            logger.error(f"Failed to start Kafka producer: {e}")
            self._is_connected = False
            raise

    async def stop(self) -> None:
        """Stop the Kafka producer."""
        if self.producer:
            try:
                await self.producer.stop()
                logger.info("Kafka producer stopped")
            except KafkaError as e:
                logger.error(f"Error stopping Kafka producer: {e}")
            finally:
                self._is_connected = False

    async def send(self, channel: str, payload: Dict[str, Any]) -> None:
        if not self._is_connected or self.producer is None:
            raise NotificationError("Kafka producer not connected", channel, payload.get("loan_id"))

        key = str(payload["loan_id"]).encode("utf-8") if "loan_id" in payload else None
        try:
            await self.producer.send_and_wait(channel, value=payload, key=key)
        except KafkaError as e:
            logger.error("Kafka error publishing notification", channel=channel, error=str(e))
            raise NotificationError(f"Failed to publish notification: {e}", channel, payload.get("loan_id")) from e

        logger.info("Published notification", channel=channel, loan_id=payload.get("loan_id"))


class WebhookNotificationSink(NotificationSink):
    """Posts each message as JSON to ``{base_url}/{channel}``."""

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        self.client = httpx.AsyncClient(timeout=self.timeout)

    async def stop(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def send(self, channel: str, payload: Dict[str, Any]) -> None:
        if self.client is None:
            raise NotificationError("Webhook client not started", channel, payload.get("loan_id"))

        url = f"{self.base_url}/{channel}"
        try:
            response = await self.client.post(
                url,
                content=encode_payload(payload),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Webhook notification failed", channel=channel, url=url, error=str(e))
            raise NotificationError(f"Failed to post notification: {e}", channel, payload.get("loan_id")) from e

        logger.info("Posted notification", channel=channel, loan_id=payload.get("loan_id"), status=response.status_code)


def create_notification_sink(backend: str, **options: Any) -> NotificationSink:
    """Factory function to create appropriate notification sink."""
    if backend.lower() == "log":
        return LogNotificationSink()
    elif backend.lower() == "kafka":
        return KafkaNotificationSink(
            bootstrap_servers=options["bootstrap_servers"],
            request_timeout_ms=options.get("request_timeout_ms", 10000),
            client_id=options.get("client_id", "lendlock"),
        )
    elif backend.lower() == "webhook":
        return WebhookNotificationSink(options["webhook_url"], options.get("webhook_timeout", 5.0))
    else:
        raise ValueError(f"Unsupported notification backend: {backend}")
