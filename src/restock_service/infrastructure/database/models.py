"""SQLAlchemy models for the restock service.

Ownership cascades (shop -> product -> variant -> demand request -> recovery
link) are enforced by foreign keys with ON DELETE CASCADE rather than ORM
relationships, so no attribute access ever triggers an implicit async load.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from shared.clock import utcnow


def _uuid() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""


# =============================================================================
# Enums
# =============================================================================


class DemandChannel(str, PyEnum):
    """Channel a customer asked to be notified on."""

    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"


class DemandStatus(str, PyEnum):
    """Wait-list lifecycle. Transitions only move forward."""

    PENDING = "PENDING"
    NOTIFIED = "NOTIFIED"
    CONVERTED = "CONVERTED"


class PlanTier(str, PyEnum):
    """Shop plan tier."""

    FREE = "FREE"
    PRO = "PRO"


# =============================================================================
# Shops
# =============================================================================


class Shop(Base):
    """Installed shop (tenant)."""

    __tablename__ = "shops"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    shopify_domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    access_token: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    installed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class ShopSettings(Base):
    """Per-shop merchant settings."""

    __tablename__ = "shop_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    shop_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shops.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    auto_notify_on_restock: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class ShopPlan(Base):
    """Plan tier and monthly notification usage for a shop.

    ``notifications_used_this_month`` counts against the month starting at
    ``usage_reset_at``; it is reset lazily on first access in a later month.
    """

    __tablename__ = "shop_plans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    shop_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    tier: Mapped[PlanTier] = mapped_column(
        Enum(PlanTier, name="plan_tier"), default=PlanTier.FREE, nullable=False
    )
    monthly_notify_limit: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    notifications_used_this_month: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    usage_reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


# =============================================================================
# Catalog
# =============================================================================


class Product(Base):
    """Product synced from the shop."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    shop_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shopify_product_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Variant(Base):
    """Purchasable SKU. Demand is tracked per variant."""

    __tablename__ = "variants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shopify_variant_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    inventory_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


# =============================================================================
# Demand
# =============================================================================


class DemandRequest(Base):
    """A customer's wait-list entry for one variant."""

    __tablename__ = "demand_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    variant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("variants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contact: Mapped[str] = mapped_column(String(255), nullable=False)
    channel: Mapped[DemandChannel] = mapped_column(
        Enum(DemandChannel, name="demand_channel"), nullable=False
    )
    status: Mapped[DemandStatus] = mapped_column(
        Enum(DemandStatus, name="demand_status"),
        default=DemandStatus.PENDING,
        nullable=False,
        index=True,
    )
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # Set while a notify() call owns the request; cleared on commit or failure
    notify_claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_demand_requests_variant_status", "variant_id", "status"),
        # One active wait-list entry per contact and variant
        Index(
            "uq_demand_requests_pending_variant_contact",
            "variant_id",
            "contact",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )


class RecoveryLink(Base):
    """Single-use, expiring link sent with a notification."""

    __tablename__ = "recovery_links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    demand_request_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("demand_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class OrderAttribution(Base):
    """Revenue from one order, optionally credited to a recovery link."""

    __tablename__ = "order_attributions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    order_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    shop_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recovery_link_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recovery_links.id", ondelete="SET NULL"), index=True
    )
    revenue: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
