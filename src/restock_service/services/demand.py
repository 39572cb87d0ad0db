"""
Demand lifecycle: wait-list entries and the notify protocol.

A demand request moves PENDING -> NOTIFIED -> CONVERTED and never backwards.
``notify`` persists NOTIFIED only after the delivery provider accepted the
message, and an atomic claim on the row guarantees that at most one caller
ever reaches the provider for a given request.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restock_service.config import Settings, get_settings
from restock_service.errors import (
    AlreadyConverted,
    AlreadyNotified,
    BusinessError,
    NotFound,
    NotifyInProgress,
)
from restock_service.infrastructure.database.models import (
    DemandChannel,
    DemandRequest,
    DemandStatus,
    OrderAttribution,
    Product,
    RecoveryLink,
    Variant,
)
from restock_service.infrastructure.redis import CacheService, widget_cache_key
from restock_service.services.contacts import (
    customer_name_from_contact,
    mask_contact,
    normalize_channel,
    validate_contact,
)
from restock_service.services.notifications import NotificationDispatcher
from restock_service.services.plan import PlanService
from restock_service.services.recovery import RecoveryService
from restock_service.services.shop_settings import ShopSettingsService
from restock_service.services.shops import ShopService
from restock_service.services.templates import NotificationTemplate
from shared.clock import utcnow

logger = structlog.get_logger()

CENT = Decimal("0.01")


@dataclass
class CreateRequestResult:
    created: bool
    message: str
    demand_request: DemandRequest


@dataclass
class NotifyResult:
    success: bool
    recovery_link_id: str
    message: str


@dataclass
class WaitlistItem:
    id: str
    channel: DemandChannel
    status: DemandStatus
    contact_masked: str
    requested_at: datetime
    recovered_revenue: Decimal | None = None


@dataclass
class ProductWaitlist:
    product_id: str
    title: str
    image_url: str | None
    waitlist: list[WaitlistItem] = field(default_factory=list)
    total_waiting: int = 0
    total_notified: int = 0
    total_recovered_revenue: Decimal = Decimal("0.00")


class DemandService:
    """Wait-list management and customer notification."""

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
        cache: CacheService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = settings or get_settings()
        self.session = session
        self.dispatcher = dispatcher
        self.cache = cache or CacheService(None)
        self.clock = clock
        self.claim_ttl = timedelta(seconds=settings.notify_claim_ttl_seconds)
        self.widget_cache_ttl = settings.widget_cache_ttl_seconds

        self.shops = ShopService(session)
        self.shop_settings = ShopSettingsService(session)
        self.plans = PlanService(
            session,
            clock=clock,
            free_limit=settings.free_monthly_notify_limit,
            pro_limit=settings.pro_monthly_notify_limit,
        )
        self.recovery = RecoveryService(
            session,
            frontend_url=settings.frontend_url,
            ttl_days=settings.recovery_link_ttl_days,
            clock=clock,
        )

    # =========================================================================
    # Wait-list entries
    # =========================================================================

    async def create_request(
        self,
        shop_domain: str,
        variant_id: str,
        contact: str,
        channel: str | DemandChannel,
    ) -> CreateRequestResult:
        """
        Add a contact to a variant's wait-list.

        Idempotent per (variant, contact): when a PENDING entry already exists
        it is returned with ``created=False``.

        Raises:
            NotFound: Unknown shop, or variant not in that shop
            UnsupportedChannel: Channel is not email or a phone channel
            InvalidContact: Contact does not match the channel's format
        """
        variant = await self._resolve_variant(shop_domain, variant_id)
        channel = normalize_channel(channel)
        contact = validate_contact(contact, channel)

        existing = await self._find_pending(variant.id, contact)
        if existing is not None:
            return CreateRequestResult(False, "Already on waitlist", existing)

        demand_request = DemandRequest(
            variant_id=variant.id,
            contact=contact,
            channel=channel,
            status=DemandStatus.PENDING,
        )
        self.session.add(demand_request)
        try:
            await self.session.commit()
        except IntegrityError:
            # A concurrent subscribe for the same contact won the unique index
            await self.session.rollback()
            winner = await self._find_pending(variant.id, contact)
            if winner is None:
                raise
            return CreateRequestResult(False, "Already on waitlist", winner)

        await self.cache.delete(widget_cache_key(variant.id))
        logger.info(
            "Demand request created",
            demand_request_id=demand_request.id,
            variant_id=variant.id,
            channel=channel.value,
        )
        return CreateRequestResult(True, "Waitlist request created", demand_request)

    # =========================================================================
    # Notify
    # =========================================================================

    async def notify(self, demand_request_id: str) -> NotifyResult:
        """
        Notify the customer behind a demand request that the variant is back.

        Order of operations:
            1. Claim the PENDING row atomically; losers get AlreadyNotified,
               AlreadyConverted or NotifyInProgress
            2. Check the shop's monthly quota
            3. Issue a recovery link
            4. Send through the dispatcher
            5. Mark NOTIFIED and release the claim
            6. Count the notification against the quota

        A failure in steps 2-4 releases the claim and propagates; the request
        stays PENDING and can be notified again later.
        """
        request = await self._load_request(demand_request_id)
        if request is None:
            raise NotFound(f"Demand request not found: {demand_request_id}")
        self._ensure_pending(request)

        claimed_at = self.clock()
        claimed = await self.session.execute(
            update(DemandRequest)
            .where(
                DemandRequest.id == demand_request_id,
                DemandRequest.status == DemandStatus.PENDING,
                or_(
                    DemandRequest.notify_claimed_at.is_(None),
                    DemandRequest.notify_claimed_at < claimed_at - self.claim_ttl,
                ),
            )
            .values(notify_claimed_at=claimed_at)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        # Everything below works from this row only
        request = await self._load_request(demand_request_id)
        if request is None:
            raise NotFound(f"Demand request not found: {demand_request_id}")
        if claimed.rowcount != 1:
            self._ensure_pending(request)
            raise NotifyInProgress("A notification for this request is already in progress")

        variant, product = await self._variant_with_product(request.variant_id)
        shop_id = product.shop_id
        log_context = {
            "shop_id": shop_id,
            "product_id": product.id,
            "variant_id": variant.id,
            "demand_request_id": request.id,
        }

        try:
            await self.plans.check_limit(shop_id)
            link = await self.recovery.issue(request.id)
            await self.dispatcher.send(
                request.channel,
                request.contact,
                NotificationTemplate.RESTOCK_AVAILABLE,
                {
                    "product_name": product.title,
                    "recovery_url": self.recovery.build_url(link.token),
                    "customer_name": customer_name_from_contact(request.contact),
                },
                log_context=log_context,
            )
        except BusinessError:
            await self._release_claim(request.id, claimed_at)
            raise
        except Exception as e:
            await self._release_claim(request.id, claimed_at)
            logger.error(
                "Notify failed, request left PENDING",
                channel=request.channel.value,
                error=str(e),
                **log_context,
            )
            raise

        committed = await self.session.execute(
            update(DemandRequest)
            .where(
                DemandRequest.id == request.id,
                DemandRequest.status == DemandStatus.PENDING,
            )
            .values(
                status=DemandStatus.NOTIFIED,
                notified_at=self.clock(),
                notify_claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        if committed.rowcount != 1:
            logger.warning("Request left PENDING before NOTIFIED was recorded", **log_context)

        # The message went out either way, so it counts
        await self.plans.increment(shop_id)
        await self.cache.delete(widget_cache_key(variant.id))

        logger.info("Customer notified", recovery_link_id=link.id, **log_context)
        return NotifyResult(
            success=True,
            recovery_link_id=link.id,
            message="Notification sent",
        )

    # =========================================================================
    # Read models
    # =========================================================================

    async def get_widget_data(self, shop_domain: str, variant_id: str) -> dict[str, Any]:
        """Storefront widget payload for a variant, cached briefly."""
        variant = await self._resolve_variant(shop_domain, variant_id)
        cache_key = widget_cache_key(variant.id)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        result = await self.session.execute(
            select(func.count(DemandRequest.id)).where(
                DemandRequest.variant_id == variant.id,
                DemandRequest.status.in_([DemandStatus.PENDING, DemandStatus.NOTIFIED]),
            )
        )
        product = await self.session.get(Product, variant.product_id)

        data = {
            "variant_id": variant.id,
            "stock_remaining": variant.inventory_quantity,
            "demand_count": result.scalar_one(),
            "restock_expected": None,
            "widget_config": {
                "auto_notify_on_restock": await self.shop_settings.auto_notify_enabled(product.shop_id),
            },
        }
        await self.cache.set(cache_key, data, ttl_seconds=self.widget_cache_ttl)
        return data

    async def get_product_waitlist(self, shop_id: str, product_id: str) -> ProductWaitlist:
        """All wait-list entries across a product's variants, newest first.

        Recovered revenue per entry is the attributed revenue of its most
        recent recovery link.
        """
        product = await self.shops.get_product(shop_id, product_id)
        if product is None:
            raise NotFound(f"Product not found: {product_id}")

        result = await self.session.execute(
            select(DemandRequest)
            .join(Variant, Variant.id == DemandRequest.variant_id)
            .where(Variant.product_id == product.id)
            .order_by(DemandRequest.created_at.desc())
            .execution_options(populate_existing=True)
        )
        requests = list(result.scalars().all())

        revenue_by_request = await self._revenue_by_latest_link([r.id for r in requests])

        waitlist = ProductWaitlist(
            product_id=product.id,
            title=product.title,
            image_url=product.image_url,
        )
        for req in requests:
            revenue = revenue_by_request.get(req.id)
            waitlist.waitlist.append(
                WaitlistItem(
                    id=req.id,
                    channel=req.channel,
                    status=req.status,
                    contact_masked=mask_contact(req.contact, req.channel),
                    requested_at=req.created_at,
                    recovered_revenue=revenue.quantize(CENT) if revenue is not None else None,
                )
            )
            if req.status == DemandStatus.PENDING:
                waitlist.total_waiting += 1
            elif req.status == DemandStatus.NOTIFIED:
                waitlist.total_notified += 1
            if revenue is not None:
                waitlist.total_recovered_revenue += revenue

        waitlist.total_recovered_revenue = waitlist.total_recovered_revenue.quantize(CENT)
        return waitlist

    async def ensure_owned(self, shop_id: str, demand_request_id: str) -> None:
        """Raise NotFound unless the request belongs to one of the shop's products."""
        result = await self.session.execute(
            select(DemandRequest.id)
            .join(Variant, Variant.id == DemandRequest.variant_id)
            .join(Product, Product.id == Variant.product_id)
            .where(DemandRequest.id == demand_request_id, Product.shop_id == shop_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFound(f"Demand request not found: {demand_request_id}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _resolve_variant(self, shop_domain: str, variant_ref: str) -> Variant:
        shop = await self.shops.get_by_domain(shop_domain)
        if shop is None:
            raise NotFound(f"Shop not found: {shop_domain}")
        variant = await self.shops.find_variant(shop.id, variant_ref)
        if variant is None:
            raise NotFound(f"Variant not found for shop: {variant_ref}")
        return variant

    async def _find_pending(self, variant_id: str, contact: str) -> DemandRequest | None:
        result = await self.session.execute(
            select(DemandRequest).where(
                DemandRequest.variant_id == variant_id,
                DemandRequest.contact == contact,
                DemandRequest.status == DemandStatus.PENDING,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _load_request(self, demand_request_id: str) -> DemandRequest | None:
        result = await self.session.execute(
            select(DemandRequest)
            .where(DemandRequest.id == demand_request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _variant_with_product(self, variant_id: str) -> tuple[Variant, Product]:
        result = await self.session.execute(
            select(Variant, Product)
            .join(Product, Product.id == Variant.product_id)
            .where(Variant.id == variant_id)
        )
        variant, product = result.one()
        return variant, product

    async def _release_claim(self, demand_request_id: str, claimed_at: datetime) -> None:
        await self.session.rollback()
        await self.session.execute(
            update(DemandRequest)
            .where(
                DemandRequest.id == demand_request_id,
                DemandRequest.notify_claimed_at == claimed_at,
            )
            .values(notify_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def _revenue_by_latest_link(self, request_ids: list[str]) -> dict[str, Decimal]:
        if not request_ids:
            return {}

        links = await self.session.execute(
            select(RecoveryLink.id, RecoveryLink.demand_request_id)
            .where(RecoveryLink.demand_request_id.in_(request_ids))
            .order_by(RecoveryLink.created_at)
        )
        # Later links overwrite earlier ones
        latest_link = {request_id: link_id for link_id, request_id in links.all()}
        if not latest_link:
            return {}

        revenue = await self.session.execute(
            select(OrderAttribution.recovery_link_id, func.sum(OrderAttribution.revenue))
            .where(OrderAttribution.recovery_link_id.in_(list(latest_link.values())))
            .group_by(OrderAttribution.recovery_link_id)
        )
        revenue_by_link = {link_id: Decimal(str(total)) for link_id, total in revenue.all()}

        return {
            request_id: revenue_by_link[link_id]
            for request_id, link_id in latest_link.items()
            if link_id in revenue_by_link
        }

    @staticmethod
    def _ensure_pending(request: DemandRequest) -> None:
        if request.status == DemandStatus.NOTIFIED:
            raise AlreadyNotified("Customer has already been notified")
        if request.status == DemandStatus.CONVERTED:
            raise AlreadyConverted("Customer has already converted")
