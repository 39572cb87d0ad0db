"""Unit tests for templates, the dispatcher and provider selection."""

import pytest

from restock_service.config import Settings
from restock_service.errors import DeliveryError, UnsupportedChannel
from restock_service.infrastructure.database.models import DemandChannel
from restock_service.services.delivery import (
    MockDeliveryProvider,
    NotificationChannel,
    PostmarkEmailProvider,
    TwilioSmsProvider,
    build_providers,
)
from restock_service.services.notifications import (
    CHANNEL_ROUTES,
    NotificationDispatcher,
    check_routes,
)
from restock_service.services.templates import NotificationTemplate, render

from fakes import FailingProvider

TEMPLATE_DATA = {
    "product_name": "Linen Shirt",
    "recovery_url": "https://shop.example/recover/abc",
    "customer_name": "Jane",
}


class TestTemplates:
    def test_restock_available(self) -> None:
        rendered = render(NotificationTemplate.RESTOCK_AVAILABLE, TEMPLATE_DATA)
        assert rendered.subject == "Good news! Linen Shirt is back in stock"
        assert "Hi Jane," in rendered.body
        assert "https://shop.example/recover/abc" in rendered.body

    def test_missing_name_uses_plain_greeting(self) -> None:
        rendered = render(NotificationTemplate.RESTOCK_AVAILABLE, {"product_name": "Cap"})
        assert rendered.body.startswith("Hi,")

    def test_unknown_template(self) -> None:
        with pytest.raises(ValueError):
            render("WEEKLY_DIGEST", {})


class TestDispatcher:
    def test_every_demand_channel_is_routed(self) -> None:
        assert set(CHANNEL_ROUTES) == set(DemandChannel)
        check_routes(CHANNEL_ROUTES)

    def test_incomplete_route_table_is_rejected(self) -> None:
        with pytest.raises(RuntimeError, match="WHATSAPP"):
            check_routes({DemandChannel.EMAIL: NotificationChannel.EMAIL})

    @pytest.mark.asyncio
    async def test_email_goes_to_email_provider(
        self,
        dispatcher: NotificationDispatcher,
        email_provider: MockDeliveryProvider,
        sms_provider: MockDeliveryProvider,
    ) -> None:
        result = await dispatcher.send(
            DemandChannel.EMAIL, "jane@example.com", NotificationTemplate.RESTOCK_AVAILABLE, TEMPLATE_DATA
        )
        assert result["message_id"]
        assert len(email_provider.sent) == 1
        assert email_provider.sent[0]["to"] == "jane@example.com"
        assert email_provider.sent[0]["subject"].startswith("Good news!")
        assert sms_provider.sent == []

    @pytest.mark.asyncio
    async def test_whatsapp_goes_to_sms_provider(
        self,
        dispatcher: NotificationDispatcher,
        email_provider: MockDeliveryProvider,
        sms_provider: MockDeliveryProvider,
    ) -> None:
        await dispatcher.send(
            "WHATSAPP", "+15551234567", NotificationTemplate.RESTOCK_AVAILABLE, TEMPLATE_DATA
        )
        assert len(sms_provider.sent) == 1
        assert email_provider.sent == []

    @pytest.mark.asyncio
    async def test_unknown_channel_has_no_fallback(
        self, dispatcher: NotificationDispatcher, email_provider: MockDeliveryProvider
    ) -> None:
        with pytest.raises(UnsupportedChannel):
            await dispatcher.send("PUSH", "x", NotificationTemplate.RESTOCK_AVAILABLE, TEMPLATE_DATA)
        assert email_provider.sent == []

    @pytest.mark.asyncio
    async def test_missing_provider(self, email_provider: MockDeliveryProvider) -> None:
        dispatcher = NotificationDispatcher({NotificationChannel.EMAIL: email_provider})
        with pytest.raises(UnsupportedChannel):
            await dispatcher.send(
                DemandChannel.WHATSAPP, "+15551234567", NotificationTemplate.RESTOCK_AVAILABLE, TEMPLATE_DATA
            )

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self) -> None:
        failing = FailingProvider()
        dispatcher = NotificationDispatcher({NotificationChannel.EMAIL: failing})
        with pytest.raises(DeliveryError):
            await dispatcher.send(
                DemandChannel.EMAIL, "jane@example.com", NotificationTemplate.RESTOCK_AVAILABLE, TEMPLATE_DATA
            )
        assert failing.attempts == ["jane@example.com"]


class TestBuildProviders:
    def test_mocks_when_delivery_disabled(self) -> None:
        providers = build_providers(Settings(notifications_enabled=False, email_provider="postmark"))
        assert isinstance(providers[NotificationChannel.EMAIL], MockDeliveryProvider)
        assert isinstance(providers[NotificationChannel.SMS], MockDeliveryProvider)

    def test_live_vendors_when_enabled(self) -> None:
        providers = build_providers(
            Settings(
                notifications_enabled=True,
                email_provider="postmark",
                sms_provider="twilio",
                postmark_server_token="pm-token",
                twilio_account_sid="AC123",
                twilio_auth_token="secret",
                twilio_from_number="+15550000000",
            )
        )
        assert isinstance(providers[NotificationChannel.EMAIL], PostmarkEmailProvider)
        assert isinstance(providers[NotificationChannel.SMS], TwilioSmsProvider)

    @pytest.mark.asyncio
    async def test_mock_provider_writes_files(self, tmp_path) -> None:
        provider = MockDeliveryProvider("file-mock", str(tmp_path))
        dispatcher = NotificationDispatcher({NotificationChannel.EMAIL: provider})
        await dispatcher.send(
            DemandChannel.EMAIL, "jane@example.com", NotificationTemplate.RESTOCK_AVAILABLE, TEMPLATE_DATA
        )
        assert len(list(tmp_path.glob("*.json"))) == 1

    @pytest.mark.asyncio
    async def test_mock_provider_keeps_only_latest_records(self) -> None:
        provider = MockDeliveryProvider("bounded", max_records=3)
        dispatcher = NotificationDispatcher({NotificationChannel.EMAIL: provider})

        for i in range(5):
            await dispatcher.send(
                DemandChannel.EMAIL,
                f"customer{i}@example.com",
                NotificationTemplate.RESTOCK_AVAILABLE,
                TEMPLATE_DATA,
            )

        assert [record["to"] for record in provider.sent] == [
            "customer2@example.com",
            "customer3@example.com",
            "customer4@example.com",
        ]
