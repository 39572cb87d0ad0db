"""Notification dispatch.

Single entry point for every outbound customer message, manual or automatic.
Routing is an exact table lookup: a channel without a route or a provider is
rejected, never sent through some other channel.
"""

from collections.abc import Mapping
from typing import Any

import structlog

from restock_service.errors import UnsupportedChannel
from restock_service.infrastructure.database.models import DemandChannel
from restock_service.services.delivery import (
    DeliveryProvider,
    NotificationChannel,
    OutboundMessage,
)
from restock_service.services.templates import NotificationTemplate, render

logger = structlog.get_logger()

CHANNEL_ROUTES: dict[DemandChannel, NotificationChannel] = {
    DemandChannel.EMAIL: NotificationChannel.EMAIL,
    DemandChannel.WHATSAPP: NotificationChannel.SMS,
}


def check_routes(routes: Mapping[DemandChannel, NotificationChannel]) -> None:
    """Every demand channel must have a route."""
    missing = set(DemandChannel) - set(routes)
    if missing:
        raise RuntimeError(f"Unrouted demand channels: {sorted(c.value for c in missing)}")


check_routes(CHANNEL_ROUTES)


class NotificationDispatcher:
    """Routes a message to the provider for its channel and sends it."""

    def __init__(self, providers: Mapping[NotificationChannel, DeliveryProvider]):
        self.providers = dict(providers)

    def resolve_provider(self, channel: DemandChannel | str) -> DeliveryProvider:
        try:
            route = CHANNEL_ROUTES[DemandChannel(channel)]
        except (KeyError, ValueError):
            raise UnsupportedChannel(f"Unsupported notification channel: {channel}") from None

        provider = self.providers.get(route)
        if provider is None:
            raise UnsupportedChannel(f"No delivery provider configured for {route.value}")
        return provider

    async def send(
        self,
        channel: DemandChannel | str,
        contact: str,
        template: NotificationTemplate,
        data: dict[str, Any],
        log_context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Render ``template`` and deliver it to ``contact`` over ``channel``.

        Args:
            channel: Demand channel of the request being notified
            contact: Email address or phone number
            template: Template to render
            data: Template data
            log_context: Extra ids bound to every log line for this send

        Returns:
            The provider's send result

        Raises:
            UnsupportedChannel: No route or provider for the channel
            DeliveryError: The provider failed; propagated unchanged
        """
        provider = self.resolve_provider(channel)
        rendered = render(template, data)
        log = logger.bind(
            channel=getattr(channel, "value", channel),
            provider=provider.name,
            **(log_context or {}),
        )

        message = OutboundMessage(
            to=contact,
            subject=rendered.subject,
            body=rendered.body,
            metadata={"template": template.value},
        )
        try:
            result = await provider.send(message)
        except Exception as e:
            log.error("Notification send failed", error=str(e))
            raise

        log.info("Notification sent", message_id=result.get("message_id"))
        return result
