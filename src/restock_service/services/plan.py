"""Plan tiers and monthly notification quota.

Server-side enforcement only. Usage resets lazily: there is no scheduled job,
every read or write path first moves a plan whose window started before the
current UTC month into the current month with usage zeroed.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restock_service.errors import QuotaExceeded
from restock_service.infrastructure.database.models import PlanTier, ShopPlan
from shared.clock import start_of_month, utcnow
from shared.constants import FREE_MONTHLY_NOTIFY_LIMIT, PRO_MONTHLY_NOTIFY_LIMIT

logger = structlog.get_logger()


@dataclass
class PlanUsage:
    shop_id: str
    tier: PlanTier
    monthly_notify_limit: int
    notifications_used_this_month: int
    usage_reset_at: datetime | None

    @property
    def remaining(self) -> int:
        return max(self.monthly_notify_limit - self.notifications_used_this_month, 0)


class PlanService:
    """Per-shop plan state and quota gate."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        free_limit: int = FREE_MONTHLY_NOTIFY_LIMIT,
        pro_limit: int = PRO_MONTHLY_NOTIFY_LIMIT,
    ):
        self.session = session
        self.clock = clock
        self.free_limit = free_limit
        self.pro_limit = pro_limit

    async def get_or_create(self, shop_id: str) -> ShopPlan:
        """Return the shop's plan, creating a FREE plan on first access."""
        plan = await self._load(shop_id)
        if plan is None:
            plan = ShopPlan(
                shop_id=shop_id,
                tier=PlanTier.FREE,
                monthly_notify_limit=self.free_limit,
                notifications_used_this_month=0,
                usage_reset_at=start_of_month(self.clock()),
            )
            self.session.add(plan)
            try:
                await self.session.commit()
                logger.info("Created default FREE plan", shop_id=shop_id)
            except IntegrityError:
                await self.session.rollback()
                plan = await self._load(shop_id)
                if plan is None:
                    raise

        return await self._reset_if_new_month(plan)

    async def check_limit(self, shop_id: str) -> ShopPlan:
        """Raise QuotaExceeded if the shop has used its monthly allowance."""
        plan = await self.get_or_create(shop_id)
        if plan.notifications_used_this_month >= plan.monthly_notify_limit:
            logger.warning(
                "Notify blocked, monthly limit reached",
                shop_id=shop_id,
                used=plan.notifications_used_this_month,
                limit=plan.monthly_notify_limit,
            )
            raise QuotaExceeded(plan.notifications_used_this_month, plan.monthly_notify_limit)
        return plan

    async def increment(self, shop_id: str) -> ShopPlan:
        """Count one delivered notification. Call only after a confirmed send."""
        await self.get_or_create(shop_id)
        await self.session.execute(
            update(ShopPlan)
            .where(ShopPlan.shop_id == shop_id)
            .values(notifications_used_this_month=ShopPlan.notifications_used_this_month + 1)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        plan = await self._load(shop_id)
        logger.info(
            "Incremented notification usage",
            shop_id=shop_id,
            used=plan.notifications_used_this_month,
            limit=plan.monthly_notify_limit,
        )
        return plan

    async def can_auto_notify(self, shop_id: str) -> bool:
        """Automatic (webhook-triggered) notification is a PRO feature."""
        plan = await self.get_or_create(shop_id)
        return plan.tier == PlanTier.PRO

    async def update_tier(self, shop_id: str, tier: PlanTier) -> ShopPlan:
        plan = await self.get_or_create(shop_id)
        plan.tier = tier
        plan.monthly_notify_limit = self.pro_limit if tier == PlanTier.PRO else self.free_limit
        await self.session.commit()
        logger.info("Plan tier updated", shop_id=shop_id, tier=tier.value)
        return plan

    async def get_usage(self, shop_id: str) -> PlanUsage:
        plan = await self.get_or_create(shop_id)
        return PlanUsage(
            shop_id=plan.shop_id,
            tier=plan.tier,
            monthly_notify_limit=plan.monthly_notify_limit,
            notifications_used_this_month=plan.notifications_used_this_month,
            usage_reset_at=plan.usage_reset_at,
        )

    async def _reset_if_new_month(self, plan: ShopPlan) -> ShopPlan:
        month_start = start_of_month(self.clock())
        if plan.usage_reset_at is not None and plan.usage_reset_at >= month_start:
            return plan

        # Conditional so concurrent resets in the same month apply once
        await self.session.execute(
            update(ShopPlan)
            .where(
                ShopPlan.shop_id == plan.shop_id,
                or_(ShopPlan.usage_reset_at.is_(None), ShopPlan.usage_reset_at < month_start),
            )
            .values(notifications_used_this_month=0, usage_reset_at=month_start)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        logger.info("Reset monthly usage", shop_id=plan.shop_id, usage_reset_at=month_start.isoformat())
        return await self._load(plan.shop_id)

    async def _load(self, shop_id: str) -> ShopPlan | None:
        result = await self.session.execute(
            select(ShopPlan)
            .where(ShopPlan.shop_id == shop_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
