"""Delivery providers.

A provider hands one rendered message to a vendor. Any failure is raised as
DeliveryError; there are no partial-success states and no retries here.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import httpx
import structlog

from restock_service.config import Settings
from restock_service.errors import DeliveryError

logger = structlog.get_logger()

POSTMARK_API_URL = "https://api.postmarkapp.com/email"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

# Most recent messages a mock provider keeps in memory
MOCK_MAX_RECORDS = 1000


class NotificationChannel(str, Enum):
    """Delivery transport. WhatsApp demand is delivered over SMS."""

    EMAIL = "EMAIL"
    SMS = "SMS"


@dataclass
class OutboundMessage:
    to: str
    body: str
    subject: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class DeliveryProvider(Protocol):
    name: str

    async def send(self, message: OutboundMessage) -> dict[str, Any]: ...


class MockDeliveryProvider:
    """
    Records messages instead of sending them.

    Used in development, in tests, and whenever live delivery is switched off.
    Only the latest ``max_records`` messages are kept in ``sent``. When
    ``storage_path`` is given each message is also written there as JSON
    for later inspection.
    """

    def __init__(
        self,
        name: str = "mock",
        storage_path: str | None = None,
        max_records: int = MOCK_MAX_RECORDS,
    ):
        self.name = name
        self.storage_path = Path(storage_path) if storage_path else None
        if self.storage_path:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        self.max_records = max_records
        self.sent: list[dict[str, Any]] = []

    async def send(self, message: OutboundMessage) -> dict[str, Any]:
        message_id = str(uuid4())
        timestamp = datetime.now(timezone.utc)
        record = {
            "message_id": message_id,
            "provider": self.name,
            **asdict(message),
            "sent_at": timestamp.isoformat(),
        }
        self.sent.append(record)
        if len(self.sent) > self.max_records:
            del self.sent[: len(self.sent) - self.max_records]

        if self.storage_path:
            filepath = self.storage_path / f"{timestamp.strftime('%Y%m%d_%H%M%S')}_{message_id}.json"
            filepath.write_text(json.dumps(record, indent=2))

        logger.info(
            "Mock notification recorded",
            provider=self.name,
            message_id=message_id,
            to=message.to,
            subject=message.subject,
        )
        return {"message_id": message_id, "status": "recorded"}


class PostmarkEmailProvider:
    """Email delivery through the Postmark HTTP API."""

    name = "postmark"

    def __init__(self, server_token: str, from_address: str, timeout: float = 10.0):
        self.server_token = server_token
        self.from_address = from_address
        self.timeout = timeout

    async def send(self, message: OutboundMessage) -> dict[str, Any]:
        payload = {
            "From": self.from_address,
            "To": message.to,
            "Subject": message.subject or "",
            "TextBody": message.body,
            "MessageStream": "outbound",
        }
        headers = {
            "Accept": "application/json",
            "X-Postmark-Server-Token": self.server_token,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(POSTMARK_API_URL, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Postmark delivery failed: {e}", provider=self.name) from e

        data = response.json()
        return {"message_id": data.get("MessageID"), "status": "sent"}


class TwilioSmsProvider:
    """SMS delivery through the Twilio Messages API."""

    name = "twilio"

    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout: float = 10.0):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    async def send(self, message: OutboundMessage) -> dict[str, Any]:
        url = TWILIO_API_URL.format(sid=self.account_sid)
        form = {"To": message.to, "From": self.from_number, "Body": message.body}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url, data=form, auth=(self.account_sid, self.auth_token)
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Twilio delivery failed: {e}", provider=self.name) from e

        data = response.json()
        return {"message_id": data.get("sid"), "status": data.get("status", "queued")}


def build_providers(settings: Settings) -> dict[NotificationChannel, DeliveryProvider]:
    """Provider per notification channel according to settings.

    Live vendors are only used when ``notifications_enabled`` is set; otherwise
    every channel gets a recording mock so nothing leaves the process.
    """
    mock_path = settings.mock_delivery_path or None
    email: DeliveryProvider = MockDeliveryProvider("mock-email", mock_path)
    sms: DeliveryProvider = MockDeliveryProvider("mock-sms", mock_path)

    if settings.notifications_enabled:
        if settings.email_provider == "postmark":
            email = PostmarkEmailProvider(
                settings.postmark_server_token,
                settings.postmark_from_address,
                timeout=settings.delivery_timeout_seconds,
            )
        if settings.sms_provider == "twilio":
            sms = TwilioSmsProvider(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                settings.twilio_from_number,
                timeout=settings.delivery_timeout_seconds,
            )
    else:
        logger.info("Live notification delivery disabled, using mock providers")

    return {NotificationChannel.EMAIL: email, NotificationChannel.SMS: sms}
