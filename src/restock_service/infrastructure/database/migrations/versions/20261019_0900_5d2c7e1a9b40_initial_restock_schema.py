"""Initial restock schema

Revision ID: 5d2c7e1a9b40
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5d2c7e1a9b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create shops table
    op.create_table('shops',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('shopify_domain', sa.String(length=255), nullable=False),
    sa.Column('access_token', sa.String(length=255), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('installed_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shopify_domain')
    )

    # Create shop_settings table
    op.create_table('shop_settings',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('shop_id', sa.String(length=36), nullable=False),
    sa.Column('auto_notify_on_restock', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shop_id')
    )

    # Create shop_plans table
    op.create_table('shop_plans',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('shop_id', sa.String(length=36), nullable=False),
    sa.Column('tier', sa.Enum('FREE', 'PRO', name='plan_tier'), nullable=False),
    sa.Column('monthly_notify_limit', sa.Integer(), nullable=False),
    sa.Column('notifications_used_this_month', sa.Integer(), nullable=False),
    sa.Column('usage_reset_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_shop_plans_shop_id'), 'shop_plans', ['shop_id'], unique=True)

    # Create products table
    op.create_table('products',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('shop_id', sa.String(length=36), nullable=False),
    sa.Column('shopify_product_id', sa.String(length=64), nullable=False),
    sa.Column('title', sa.String(length=500), nullable=False),
    sa.Column('image_url', sa.String(length=1000), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shopify_product_id')
    )
    op.create_index(op.f('ix_products_shop_id'), 'products', ['shop_id'], unique=False)

    # Create variants table
    op.create_table('variants',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('product_id', sa.String(length=36), nullable=False),
    sa.Column('shopify_variant_id', sa.String(length=64), nullable=False),
    sa.Column('inventory_quantity', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shopify_variant_id')
    )
    op.create_index(op.f('ix_variants_product_id'), 'variants', ['product_id'], unique=False)

    # Create demand_requests table
    op.create_table('demand_requests',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('variant_id', sa.String(length=36), nullable=False),
    sa.Column('contact', sa.String(length=255), nullable=False),
    sa.Column('channel', sa.Enum('EMAIL', 'WHATSAPP', name='demand_channel'), nullable=False),
    sa.Column('status', sa.Enum('PENDING', 'NOTIFIED', 'CONVERTED', name='demand_status'), nullable=False),
    sa.Column('notified_at', sa.DateTime(), nullable=True),
    sa.Column('notify_claimed_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['variant_id'], ['variants.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_demand_requests_variant_id'), 'demand_requests', ['variant_id'], unique=False)
    op.create_index(op.f('ix_demand_requests_status'), 'demand_requests', ['status'], unique=False)
    op.create_index('ix_demand_requests_variant_status', 'demand_requests', ['variant_id', 'status'], unique=False)
    # One PENDING entry per contact and variant
    op.create_index(
        'uq_demand_requests_pending_variant_contact',
        'demand_requests',
        ['variant_id', 'contact'],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )

    # Create recovery_links table
    op.create_table('recovery_links',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('demand_request_id', sa.String(length=36), nullable=False),
    sa.Column('token', sa.String(length=64), nullable=False),
    sa.Column('expires_at', sa.DateTime(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['demand_request_id'], ['demand_requests.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_recovery_links_demand_request_id'), 'recovery_links', ['demand_request_id'], unique=False)
    op.create_index(op.f('ix_recovery_links_token'), 'recovery_links', ['token'], unique=True)

    # Create order_attributions table
    op.create_table('order_attributions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('order_id', sa.String(length=64), nullable=False),
    sa.Column('shop_id', sa.String(length=36), nullable=False),
    sa.Column('recovery_link_id', sa.String(length=36), nullable=True),
    sa.Column('revenue', sa.Numeric(precision=10, scale=2), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['recovery_link_id'], ['recovery_links.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('order_id')
    )
    op.create_index(op.f('ix_order_attributions_shop_id'), 'order_attributions', ['shop_id'], unique=False)
    op.create_index(op.f('ix_order_attributions_recovery_link_id'), 'order_attributions', ['recovery_link_id'], unique=False)


def downgrade() -> None:
    op.drop_table('order_attributions')
    op.drop_table('recovery_links')
    op.drop_index('uq_demand_requests_pending_variant_contact', table_name='demand_requests')
    op.drop_table('demand_requests')
    op.drop_table('variants')
    op.drop_table('products')
    op.drop_table('shop_plans')
    op.drop_table('shop_settings')
    op.drop_table('shops')
    sa.Enum(name='demand_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='demand_channel').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='plan_tier').drop(op.get_bind(), checkfirst=True)
