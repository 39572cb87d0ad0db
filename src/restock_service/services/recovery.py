"""Recovery links and revenue attribution.

A recovery link is the attribution anchor: it is minted once per successful
notify() call, never mutated, and simply stops resolving after it expires.
Re-notifying a request mints a new link and leaves the old ones inert.
"""

import secrets
from datetime import datetime, timedelta
from typing import Callable
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restock_service.errors import LinkExpired, NotFound
from restock_service.infrastructure.database.models import (
    DemandRequest,
    DemandStatus,
    OrderAttribution,
    Product,
    RecoveryLink,
    Variant,
)
from shared.clock import as_naive_utc, utcnow
from shared.constants import RECOVERY_LINK_TTL_DAYS, RECOVERY_TOKEN_BYTES

logger = structlog.get_logger()


def generate_token() -> str:
    """256-bit random token, hex encoded."""
    return secrets.token_hex(RECOVERY_TOKEN_BYTES)


class RecoveryService:
    """Issues recovery links and records order attribution."""

    def __init__(
        self,
        session: AsyncSession,
        frontend_url: str = "http://localhost:3000",
        ttl_days: int = RECOVERY_LINK_TTL_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.frontend_url = frontend_url.rstrip("/")
        self.ttl_days = ttl_days
        self.clock = clock

    async def issue(self, demand_request_id: str) -> RecoveryLink:
        """Persist a new link for ``demand_request_id`` and return it."""
        now = self.clock()
        link = RecoveryLink(
            demand_request_id=demand_request_id,
            token=generate_token(),
            expires_at=now + timedelta(days=self.ttl_days),
            created_at=now,
        )
        self.session.add(link)
        await self.session.commit()

        logger.debug(
            "Recovery link issued",
            demand_request_id=demand_request_id,
            recovery_link_id=link.id,
            expires_at=link.expires_at.isoformat(),
        )
        return link

    def build_url(self, token: str) -> str:
        return f"{self.frontend_url}/recover/{token}"

    async def resolve(self, token: str, at: datetime | None = None) -> RecoveryLink:
        """Return the link for ``token`` if it exists and has not expired."""
        result = await self.session.execute(
            select(RecoveryLink).where(RecoveryLink.token == token)
        )
        link = result.scalar_one_or_none()
        if link is None:
            raise NotFound("Recovery link not found")
        if link.expires_at <= (at or self.clock()):
            raise LinkExpired("Recovery link has expired")
        return link

    async def latest_link_for(self, demand_request_id: str) -> RecoveryLink | None:
        """Most recent link of a request; the only one treated as active."""
        result = await self.session.execute(
            select(RecoveryLink)
            .where(RecoveryLink.demand_request_id == demand_request_id)
            .order_by(RecoveryLink.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def attribute_order(
        self,
        shop_id: str,
        order_id: str,
        revenue: Decimal | float | str,
        token: str | None = None,
        ordered_at: datetime | None = None,
    ) -> OrderAttribution:
        """
        Record revenue for an order, crediting a recovery link when possible.

        Matching an order to a token is the caller's job. Here the token only
        has to resolve to a link of this shop that had not expired when the
        order was placed; otherwise the order is stored unattributed. Each
        order is recorded once; repeated calls return the first record.

        A credited order moves its demand request NOTIFIED -> CONVERTED.
        """
        existing = await self._get_attribution(order_id)
        if existing is not None:
            return existing

        ordered_at = as_naive_utc(ordered_at) if ordered_at else self.clock()
        link = await self._link_for_order(shop_id, token, ordered_at) if token else None

        attribution = OrderAttribution(
            order_id=order_id,
            shop_id=shop_id,
            recovery_link_id=link.id if link else None,
            revenue=Decimal(str(revenue)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        )
        self.session.add(attribution)
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost the race to a concurrent delivery of the same order
            await self.session.rollback()
            existing = await self._get_attribution(order_id)
            if existing is None:
                raise
            return existing

        if link is not None:
            await self.session.execute(
                update(DemandRequest)
                .where(
                    DemandRequest.id == link.demand_request_id,
                    DemandRequest.status == DemandStatus.NOTIFIED,
                )
                .values(status=DemandStatus.CONVERTED)
            )
        await self.session.commit()

        logger.info(
            "Order attributed" if link else "Order recorded without attribution",
            shop_id=shop_id,
            order_id=order_id,
            recovery_link_id=attribution.recovery_link_id,
            revenue=str(attribution.revenue),
        )
        return attribution

    async def _get_attribution(self, order_id: str) -> OrderAttribution | None:
        result = await self.session.execute(
            select(OrderAttribution).where(OrderAttribution.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def _link_for_order(
        self, shop_id: str, token: str, ordered_at: datetime
    ) -> RecoveryLink | None:
        result = await self.session.execute(
            select(RecoveryLink)
            .join(DemandRequest, DemandRequest.id == RecoveryLink.demand_request_id)
            .join(Variant, Variant.id == DemandRequest.variant_id)
            .join(Product, Product.id == Variant.product_id)
            .where(RecoveryLink.token == token, Product.shop_id == shop_id)
        )
        link = result.scalar_one_or_none()
        if link is None:
            logger.debug("Attribution token did not match a link of this shop", shop_id=shop_id)
            return None
        if link.expires_at <= ordered_at:
            logger.debug("Attribution token expired before order", recovery_link_id=link.id)
            return None
        return link
