"""HTTP tests for the widget, merchant, recovery and webhook endpoints."""

import base64
import hashlib
import hmac

import orjson
import pytest
from httpx import AsyncClient

from restock_service.api.security import widget_signature_payload
from restock_service.config import get_settings
from restock_service.infrastructure.database.models import (
    DemandRequest,
    DemandStatus,
    PlanTier,
    Shop,
    Variant,
)
from restock_service.services.recovery import RecoveryService

SHOP = "acme.myshopify.com"
MERCHANT = {"X-Shop-Domain": SHOP}


def use_secret(monkeypatch: pytest.MonkeyPatch, secret: str) -> None:
    monkeypatch.setenv("SHOPIFY_API_SECRET", secret)
    get_settings.cache_clear()


class TestWidget:
    @pytest.mark.asyncio
    async def test_subscribe_then_duplicate(self, client: AsyncClient, seed_catalog) -> None:
        await seed_catalog()
        body = {"shop": SHOP, "variant_id": "40001", "contact": "Jane@Example.com", "channel": "email"}

        first = await client.post("/api/v1/restock/subscribe", json=body)
        second = await client.post("/api/v1/restock/subscribe", json=body)

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert first.json()["message"] == "Waitlist request created"
        assert second.json()["created"] is False
        assert second.json()["message"] == "Already on waitlist"
        assert second.json()["demand_request_id"] == first.json()["demand_request_id"]

    @pytest.mark.asyncio
    async def test_subscribe_rejects_bad_contact(self, client: AsyncClient, seed_catalog) -> None:
        await seed_catalog()
        response = await client.post(
            "/api/v1/restock/subscribe",
            json={"shop": SHOP, "variant_id": "40001", "contact": "not-an-email", "channel": "email"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidContact"

    @pytest.mark.asyncio
    async def test_subscribe_rejects_unknown_channel(self, client: AsyncClient, seed_catalog) -> None:
        await seed_catalog()
        response = await client.post(
            "/api/v1/restock/subscribe",
            json={"shop": SHOP, "variant_id": "40001", "contact": "a@example.com", "channel": "pigeon"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_subscribe_unknown_variant(self, client: AsyncClient, seed_catalog) -> None:
        await seed_catalog()
        response = await client.post(
            "/api/v1/restock/subscribe",
            json={"shop": SHOP, "variant_id": "nope", "contact": "a@example.com", "channel": "email"},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_widget_data(self, client: AsyncClient, seed_catalog, add_request) -> None:
        catalog = await seed_catalog(inventory=0, auto_notify=True)
        await add_request(catalog.variant.id, "a@example.com")
        await add_request(catalog.variant.id, "b@example.com", status=DemandStatus.NOTIFIED)
        await add_request(catalog.variant.id, "c@example.com", status=DemandStatus.CONVERTED)

        response = await client.get("/api/v1/widget-data", params={"shop": "acme", "variant_id": "40001"})

        assert response.status_code == 200
        assert response.json() == {
            "variant_id": catalog.variant.id,
            "stock_remaining": 0,
            "demand_count": 2,
            "restock_expected": None,
            "widget_config": {"auto_notify_on_restock": True},
        }

    @pytest.mark.asyncio
    async def test_widget_signature_enforced_when_secret_set(
        self, client: AsyncClient, seed_catalog, monkeypatch
    ) -> None:
        await seed_catalog()
        use_secret(monkeypatch, "shh")
        params = {"shop": SHOP, "variant_id": "40001"}
        signature = hmac.new(b"shh", widget_signature_payload(params).encode(), hashlib.sha256).hexdigest()

        unsigned = await client.get("/api/v1/widget-data", params=params)
        signed = await client.get("/api/v1/widget-data", params={**params, "hmac": signature})

        assert unsigned.status_code == 401
        assert signed.status_code == 200

    @pytest.mark.asyncio
    async def test_widget_signature_with_non_ascii_is_unauthorized(
        self, client: AsyncClient, seed_catalog, monkeypatch
    ) -> None:
        await seed_catalog()
        use_secret(monkeypatch, "shh")

        response = await client.get(
            "/api/v1/widget-data", params={"shop": SHOP, "variant_id": "40001", "hmac": "é"}
        )
        assert response.status_code == 401


class TestMerchant:
    @pytest.mark.asyncio
    async def test_unknown_shop_header(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/plan/usage", headers={"X-Shop-Domain": "ghost.myshopify.com"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_manual_notify(self, client: AsyncClient, seed_catalog, add_request, email_provider, fetch) -> None:
        catalog = await seed_catalog()
        request = await add_request(catalog.variant.id, "jane@example.com")

        response = await client.post(f"/api/v1/demand/{request.id}/notify", headers=MERCHANT)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["message"] == "Notification sent"
        assert len(email_provider.sent) == 1
        assert (await fetch(DemandRequest, request.id)).status == DemandStatus.NOTIFIED

        again = await client.post(f"/api/v1/demand/{request.id}/notify", headers=MERCHANT)
        assert again.status_code == 400
        assert again.json()["error"] == "AlreadyNotified"

    @pytest.mark.asyncio
    async def test_manual_notify_over_quota(self, client: AsyncClient, seed_catalog, add_request, email_provider) -> None:
        catalog = await seed_catalog(used=50)
        request = await add_request(catalog.variant.id, "jane@example.com")

        response = await client.post(f"/api/v1/demand/{request.id}/notify", headers=MERCHANT)

        assert response.status_code == 403
        assert response.json()["error"] == "QuotaExceeded"
        assert email_provider.sent == []

    @pytest.mark.asyncio
    async def test_cannot_notify_another_shops_request(self, client: AsyncClient, seed_catalog, add_request) -> None:
        await seed_catalog()
        other = await seed_catalog(
            domain="other.myshopify.com", shopify_variant_id="50001", shopify_product_id="80001"
        )
        request = await add_request(other.variant.id, "jane@example.com")

        response = await client.post(f"/api/v1/demand/{request.id}/notify", headers=MERCHANT)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_product_waitlist(self, client: AsyncClient, seed_catalog, add_request) -> None:
        catalog = await seed_catalog()
        await add_request(catalog.variant.id, "john.doe@gmail.com")
        await add_request(catalog.variant.id, "amy@example.com", status=DemandStatus.NOTIFIED)

        response = await client.get("/api/v1/demand/product/70001", headers=MERCHANT)

        assert response.status_code == 200
        data = response.json()
        assert data["product"]["title"] == "Linen Shirt"
        assert data["summary"]["total_waiting"] == 1
        assert data["summary"]["total_notified"] == 1
        assert "jo***@gmail.com" in {item["contact_masked"] for item in data["waitlist"]}

    @pytest.mark.asyncio
    async def test_plan_usage_and_upgrade(self, client: AsyncClient, seed_catalog) -> None:
        await seed_catalog(used=12)

        usage = await client.get("/api/v1/plan/usage", headers=MERCHANT)
        assert usage.status_code == 200
        assert usage.json()["tier"] == "FREE"
        assert usage.json()["remaining"] == 38
        assert usage.json()["can_auto_notify"] is False

        upgraded = await client.put("/api/v1/plan/tier", json={"tier": "PRO"}, headers=MERCHANT)
        assert upgraded.status_code == 200
        assert upgraded.json()["monthly_notify_limit"] == 10000
        assert upgraded.json()["can_auto_notify"] is True

    @pytest.mark.asyncio
    async def test_settings_default_and_update(self, client: AsyncClient, seed_catalog) -> None:
        await seed_catalog()

        current = await client.get("/api/v1/settings", headers=MERCHANT)
        assert current.json() == {"auto_notify_on_restock": False}

        updated = await client.put("/api/v1/settings", json={"auto_notify_on_restock": True}, headers=MERCHANT)
        assert updated.json() == {"auto_notify_on_restock": True}


class TestRecovery:
    @pytest.mark.asyncio
    async def test_resolve_and_attribute(self, client: AsyncClient, session, seed_catalog, add_request, fetch) -> None:
        catalog = await seed_catalog()
        request = await add_request(catalog.variant.id, "jane@example.com", status=DemandStatus.NOTIFIED)
        link = await RecoveryService(session).issue(request.id)

        resolved = await client.get(f"/api/v1/recover/{link.token}")
        assert resolved.status_code == 200
        assert resolved.json()["demand_request_id"] == request.id

        attributed = await client.post(
            "/api/v1/attributions",
            json={"order_id": "1001", "revenue": "49.90", "token": link.token},
            headers=MERCHANT,
        )
        assert attributed.status_code == 200
        assert attributed.json()["attributed"] is True
        assert attributed.json()["recovery_link_id"] == link.id
        assert (await fetch(DemandRequest, request.id)).status == DemandStatus.CONVERTED

    @pytest.mark.asyncio
    async def test_unknown_token(self, client: AsyncClient) -> None:
        response = await client.get(f"/api/v1/recover/{'f' * 64}")
        assert response.status_code == 404


class TestWebhooks:
    @staticmethod
    def _headers(topic: str, body: bytes, secret: str | None = None) -> dict[str, str]:
        headers = {
            "X-Shopify-Topic": topic,
            "X-Shopify-Shop-Domain": SHOP,
            "Content-Type": "application/json",
        }
        if secret is not None:
            digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
            headers["X-Shopify-Hmac-Sha256"] = base64.b64encode(digest).decode()
        return headers

    @pytest.mark.asyncio
    async def test_inventory_webhook_runs_restock_in_background(
        self, client: AsyncClient, seed_catalog, add_request, email_provider, fetch
    ) -> None:
        catalog = await seed_catalog(tier=PlanTier.PRO, auto_notify=True, inventory=0)
        request = await add_request(catalog.variant.id, "jane@example.com")
        body = orjson.dumps({"inventory_item_id": 40001, "available": 6})

        response = await client.post(
            "/api/v1/webhooks", content=body, headers=self._headers("inventory_levels/update", body)
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "queued": False}
        assert (await fetch(Variant, catalog.variant.id)).inventory_quantity == 6
        assert (await fetch(DemandRequest, request.id)).status == DemandStatus.NOTIFIED
        assert len(email_provider.sent) == 1

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, client: AsyncClient, seed_catalog, monkeypatch, fetch) -> None:
        catalog = await seed_catalog()
        use_secret(monkeypatch, "shh")
        body = b"{}"

        forged = await client.post("/api/v1/webhooks", content=body, headers=self._headers("app/uninstalled", body, "wrong"))
        assert forged.status_code == 401
        assert (await fetch(Shop, catalog.shop.id)).is_active is True

        genuine = await client.post("/api/v1/webhooks", content=body, headers=self._headers("app/uninstalled", body, "shh"))
        assert genuine.status_code == 200
        assert (await fetch(Shop, catalog.shop.id)).is_active is False

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: AsyncClient) -> None:
        body = b"{not json"
        response = await client.post(
            "/api/v1/webhooks", content=body, headers=self._headers("inventory_levels/update", body)
        )
        assert response.status_code == 400
