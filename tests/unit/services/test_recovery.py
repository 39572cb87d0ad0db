"""Unit tests for recovery links and order attribution."""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from restock_service.errors import LinkExpired, NotFound
from restock_service.infrastructure.database.models import DemandRequest, DemandStatus
from restock_service.services.recovery import RecoveryService, generate_token
from shared.clock import utcnow


@pytest_asyncio.fixture
async def notified(seed_catalog, add_request):
    catalog = await seed_catalog()
    request = await add_request(catalog.variant.id, "jane@example.com", status=DemandStatus.NOTIFIED)
    return catalog, request


class TestTokens:
    def test_token_is_256_bits_hex(self) -> None:
        token = generate_token()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self) -> None:
        assert len({generate_token() for _ in range(100)}) == 100


class TestIssueAndResolve:
    @pytest.mark.asyncio
    async def test_issue_sets_seven_day_expiry(self, session, notified) -> None:
        _, request = notified
        before = utcnow()

        link = await RecoveryService(session).issue(request.id)

        assert link.demand_request_id == request.id
        assert before + timedelta(days=7) <= link.expires_at <= utcnow() + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_injected_clock_sets_expiry_and_resolution(self, session, notified) -> None:
        _, request = notified
        fixed = utcnow().replace(microsecond=0) - timedelta(days=10)
        service = RecoveryService(session, clock=lambda: fixed)

        link = await service.issue(request.id)

        assert link.created_at == fixed
        assert link.expires_at == fixed + timedelta(days=7)
        # Expired by wall time but live by the service's clock
        assert (await service.resolve(link.token)).id == link.id
        with pytest.raises(LinkExpired):
            await RecoveryService(session).resolve(link.token)

    @pytest.mark.asyncio
    async def test_build_url(self, session) -> None:
        service = RecoveryService(session, frontend_url="https://restock.example.com/")
        assert service.build_url("abc") == "https://restock.example.com/recover/abc"

    @pytest.mark.asyncio
    async def test_resolve_live_link(self, session, notified) -> None:
        _, request = notified
        service = RecoveryService(session)
        link = await service.issue(request.id)

        resolved = await service.resolve(link.token)
        assert resolved.id == link.id

    @pytest.mark.asyncio
    async def test_resolve_unknown_token(self, session) -> None:
        with pytest.raises(NotFound):
            await RecoveryService(session).resolve("0" * 64)

    @pytest.mark.asyncio
    async def test_resolve_expired_link(self, session, notified) -> None:
        _, request = notified
        service = RecoveryService(session)
        link = await service.issue(request.id)

        with pytest.raises(LinkExpired):
            await service.resolve(link.token, at=utcnow() + timedelta(days=8))

    @pytest.mark.asyncio
    async def test_renotify_keeps_old_links_and_newest_is_latest(self, session, notified) -> None:
        _, request = notified
        service = RecoveryService(session)
        first = await service.issue(request.id)
        second = await service.issue(request.id)

        assert first.token != second.token
        assert (await service.resolve(first.token)).id == first.id
        latest = await service.latest_link_for(request.id)
        assert latest.id == second.id


class TestAttribution:
    @pytest.mark.asyncio
    async def test_credited_order_converts_request(self, session, notified, fetch) -> None:
        catalog, request = notified
        service = RecoveryService(session)
        link = await service.issue(request.id)

        attribution = await service.attribute_order(catalog.shop.id, "order-1", "59.999", token=link.token)

        assert attribution.recovery_link_id == link.id
        assert attribution.revenue == Decimal("60.00")
        assert (await fetch(DemandRequest, request.id)).status == DemandStatus.CONVERTED

    @pytest.mark.asyncio
    async def test_same_order_is_recorded_once(self, session, notified) -> None:
        catalog, request = notified
        service = RecoveryService(session)
        link = await service.issue(request.id)

        first = await service.attribute_order(catalog.shop.id, "order-2", 20, token=link.token)
        second = await service.attribute_order(catalog.shop.id, "order-2", 999, token=link.token)

        assert second.id == first.id
        assert second.revenue == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_order_after_expiry_is_unattributed(self, session, notified, fetch) -> None:
        catalog, request = notified
        service = RecoveryService(session)
        link = await service.issue(request.id)

        attribution = await service.attribute_order(
            catalog.shop.id, "order-3", 15, token=link.token, ordered_at=utcnow() + timedelta(days=10)
        )

        assert attribution.recovery_link_id is None
        assert (await fetch(DemandRequest, request.id)).status == DemandStatus.NOTIFIED

    @pytest.mark.asyncio
    async def test_token_of_another_shop_is_unattributed(self, session, seed_catalog, notified) -> None:
        _, request = notified
        other = await seed_catalog(
            domain="other.myshopify.com", shopify_variant_id="50001", shopify_product_id="80001"
        )
        service = RecoveryService(session)
        link = await service.issue(request.id)

        attribution = await service.attribute_order(other.shop.id, "order-4", 10, token=link.token)
        assert attribution.recovery_link_id is None

    @pytest.mark.asyncio
    async def test_order_without_token(self, session, notified) -> None:
        catalog, _ = notified
        attribution = await RecoveryService(session).attribute_order(catalog.shop.id, "order-5", "12.5")

        assert attribution.recovery_link_id is None
        assert attribution.revenue == Decimal("12.50")

    @pytest.mark.asyncio
    async def test_pending_request_is_not_converted(self, session, seed_catalog, add_request, fetch) -> None:
        catalog = await seed_catalog()
        request = await add_request(catalog.variant.id, "pending@example.com")
        service = RecoveryService(session)
        link = await service.issue(request.id)

        attribution = await service.attribute_order(catalog.shop.id, "order-6", 30, token=link.token)

        assert attribution.recovery_link_id == link.id
        assert (await fetch(DemandRequest, request.id)).status == DemandStatus.PENDING
