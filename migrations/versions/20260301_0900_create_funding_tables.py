"""Create shops, oauth_states and funding_products tables

Revision ID: 20260301_0900
Revises:
Create Date: 2026-03-01 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20260301_0900'
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        'shops',
        sa.Column('mall_id', sa.String(length=100), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refresh_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scopes', JSONType, nullable=True),
        sa.Column('user_id', sa.String(length=100), nullable=True),
        sa.Column('shop_no', sa.String(length=20), nullable=False, server_default='1'),
        sa.Column('shop_name', sa.String(length=255), nullable=True),
        sa.Column('primary_domain', sa.String(length=255), nullable=True),
        sa.Column('base_domain', sa.String(length=255), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('country_code', sa.String(length=10), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('mall_id'),
    )

    op.create_table(
        'oauth_states',
        sa.Column('state', sa.String(length=255), nullable=False),
        sa.Column('mall_id', sa.String(length=100), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('state'),
    )
    op.create_index('ix_oauth_states_mall_id', 'oauth_states', ['mall_id'], unique=False)
    op.create_index('ix_oauth_states_expires', 'oauth_states', ['expires_at'], unique=False)

    op.create_table(
        'funding_products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('mall_id', sa.String(length=100), nullable=False),
        sa.Column('product_no', sa.String(length=50), nullable=False),
        sa.Column('product_name', sa.String(length=500), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('initial_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('price_steps', JSONType, nullable=False),
        sa.Column('display_multiplier', sa.Numeric(10, 4), nullable=False, server_default='1.0'),
        sa.Column('include_cancellations', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('manual_sales_override', sa.Integer(), nullable=True),
        sa.Column('current_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_funding_products_mall_id', 'funding_products', ['mall_id'], unique=False)
    op.create_index('idx_funding_mall_product', 'funding_products', ['mall_id', 'product_no'], unique=True)
    op.create_index('idx_funding_mall_created', 'funding_products', ['mall_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_funding_mall_created', table_name='funding_products')
    op.drop_index('idx_funding_mall_product', table_name='funding_products')
    op.drop_index('ix_funding_products_mall_id', table_name='funding_products')
    op.drop_table('funding_products')

    op.drop_index('ix_oauth_states_expires', table_name='oauth_states')
    op.drop_index('ix_oauth_states_mall_id', table_name='oauth_states')
    op.drop_table('oauth_states')

    op.drop_table('shops')
