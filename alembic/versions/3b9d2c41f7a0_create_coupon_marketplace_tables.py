"""Create coupon marketplace tables

Revision ID: 3b9d2c41f7a0
Revises:
Create Date: 2026-10-18 10:12:31.408215

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b9d2c41f7a0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

discount_type = sa.Enum('fixed', 'percentage', name='discounttype')
claimed_coupon_status = sa.Enum('claimed', 'used', 'expired', 'cancelled', name='claimedcouponstatus')
user_role = sa.Enum('consumer', 'business', 'admin', name='userrole')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('email', sa.String(length=100), nullable=False),
                    sa.Column('name', sa.String(length=100), nullable=False),
                    sa.Column('business_name', sa.String(length=150), nullable=True, comment='商家名称'),
                    sa.Column('profile_image_url', sa.String(length=255), nullable=True),
                    sa.Column('role', user_role, nullable=False),
                    sa.Column('is_active', sa.Boolean(), nullable=True),
                    sa.Column('created_at', sa.DateTime(), nullable=True),
                    sa.Column('updated_at', sa.DateTime(), nullable=True),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    op.create_table('products',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False, comment='所属商家'),
                    sa.Column('name', sa.String(length=200), nullable=False),
                    sa.Column('description', sa.Text(), nullable=True),
                    sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
                    sa.Column('image', sa.String(length=255), nullable=True, comment='商品图片路径'),
                    sa.Column('is_active', sa.Boolean(), nullable=True),
                    sa.Column('created_at', sa.DateTime(), nullable=True),
                    sa.Column('updated_at', sa.DateTime(), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_products_id'), 'products', ['id'], unique=False)
    op.create_index(op.f('ix_products_user_id'), 'products', ['user_id'], unique=False)

    op.create_table('coupons',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False, comment='所属商家'),
                    sa.Column('title', sa.String(length=255), nullable=False),
                    sa.Column('code', sa.String(length=20), nullable=False, comment='优惠券码'),
                    sa.Column('description', sa.Text(), nullable=True),
                    sa.Column('banner_image_url', sa.String(length=255), nullable=True),
                    sa.Column('discount_type', discount_type, nullable=False),
                    sa.Column('discount_amount', sa.Numeric(precision=10, scale=2), nullable=True,
                              comment='固定减免金额'),
                    sa.Column('discount_percentage', sa.Numeric(precision=5, scale=2), nullable=True,
                              comment='折扣百分比'),
                    sa.Column('minimum_amount', sa.Numeric(precision=10, scale=2), nullable=True,
                              comment='最低消费金额'),
                    sa.Column('usage_limit', sa.Integer(), nullable=True, comment='总领取上限, 为空表示不限'),
                    sa.Column('used_count', sa.Integer(), nullable=False, comment='累计领取次数'),
                    sa.Column('per_user_limit', sa.Integer(), nullable=True, comment='每位用户领取上限'),
                    sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('is_active', sa.Boolean(), nullable=False),
                    sa.Column('is_featured', sa.Boolean(), nullable=False),
                    sa.Column('terms_conditions', sa.JSON(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('code')
                    )
    op.create_index(op.f('ix_coupons_id'), 'coupons', ['id'], unique=False)
    op.create_index('ix_coupons_user_active', 'coupons', ['user_id', 'is_active'], unique=False)
    op.create_index('ix_coupons_code_active', 'coupons', ['code', 'is_active'], unique=False)
    op.create_index('ix_coupons_expires_active', 'coupons', ['expires_at', 'is_active'], unique=False)
    op.create_index('ix_coupons_featured_active', 'coupons', ['is_featured', 'is_active'], unique=False)

    op.create_table('coupon_products',
                    sa.Column('coupon_id', sa.Integer(), nullable=False),
                    sa.Column('product_id', sa.Integer(), nullable=False),
                    sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
                    sa.PrimaryKeyConstraint('coupon_id', 'product_id')
                    )

    op.create_table('claimed_coupons',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False, comment='领取的消费者'),
                    sa.Column('coupon_id', sa.Integer(), nullable=False),
                    sa.Column('business_id', sa.Integer(), nullable=False, comment='所属商家'),
                    sa.Column('product_id', sa.Integer(), nullable=True),
                    sa.Column('coupon_code', sa.String(length=20), nullable=False),
                    sa.Column('coupon_title', sa.String(length=255), nullable=False),
                    sa.Column('coupon_description', sa.Text(), nullable=True),
                    sa.Column('discount_type', discount_type, nullable=False),
                    sa.Column('discount_amount', sa.Numeric(precision=10, scale=2), nullable=True),
                    sa.Column('discount_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
                    sa.Column('minimum_amount', sa.Numeric(precision=10, scale=2), nullable=True),
                    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('status', claimed_coupon_status, nullable=False),
                    sa.Column('active_claim', sa.Boolean(), nullable=True),
                    sa.Column('used_at', sa.DateTime(timezone=True), nullable=True, comment='核销时间'),
                    sa.Column('usage_notes', sa.Text(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, comment='领取时间'),
                    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
                    sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ),
                    sa.ForeignKeyConstraint(['business_id'], ['users.id'], ondelete='RESTRICT'),
                    sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('user_id', 'coupon_id', 'active_claim', name='uq_claimed_coupons_active_claim')
                    )
    op.create_index(op.f('ix_claimed_coupons_id'), 'claimed_coupons', ['id'], unique=False)
    op.create_index(op.f('ix_claimed_coupons_coupon_code'), 'claimed_coupons', ['coupon_code'], unique=False)
    op.create_index('ix_claimed_coupons_user_status', 'claimed_coupons', ['user_id', 'status'], unique=False)
    op.create_index('ix_claimed_coupons_coupon_status', 'claimed_coupons', ['coupon_id', 'status'], unique=False)
    op.create_index('ix_claimed_coupons_business_status', 'claimed_coupons', ['business_id', 'status'],
                    unique=False)
    op.create_index('ix_claimed_coupons_status_created', 'claimed_coupons', ['status', 'created_at'], unique=False)

    op.create_table('notifications',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('title', sa.String(length=255), nullable=False),
                    sa.Column('message', sa.Text(), nullable=False),
                    sa.Column('type', sa.String(length=20), nullable=False, comment='info/success/warning/error'),
                    sa.Column('data', sa.JSON(), nullable=True),
                    sa.Column('channel', sa.String(length=30), nullable=False),
                    sa.Column('urgent', sa.Boolean(), nullable=False),
                    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)

    op.create_table('notification_users',
                    sa.Column('notification_id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(['notification_id'], ['notifications.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
                    sa.PrimaryKeyConstraint('notification_id', 'user_id')
                    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('notification_users')
    op.drop_index(op.f('ix_notifications_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_claimed_coupons_status_created', table_name='claimed_coupons')
    op.drop_index('ix_claimed_coupons_business_status', table_name='claimed_coupons')
    op.drop_index('ix_claimed_coupons_coupon_status', table_name='claimed_coupons')
    op.drop_index('ix_claimed_coupons_user_status', table_name='claimed_coupons')
    op.drop_index(op.f('ix_claimed_coupons_coupon_code'), table_name='claimed_coupons')
    op.drop_index(op.f('ix_claimed_coupons_id'), table_name='claimed_coupons')
    op.drop_table('claimed_coupons')
    op.drop_table('coupon_products')
    op.drop_index('ix_coupons_featured_active', table_name='coupons')
    op.drop_index('ix_coupons_expires_active', table_name='coupons')
    op.drop_index('ix_coupons_code_active', table_name='coupons')
    op.drop_index('ix_coupons_user_active', table_name='coupons')
    op.drop_index(op.f('ix_coupons_id'), table_name='coupons')
    op.drop_table('coupons')
    op.drop_index(op.f('ix_products_user_id'), table_name='products')
    op.drop_index(op.f('ix_products_id'), table_name='products')
    op.drop_table('products')
    op.drop_index(op.f('ix_users_role'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
    discount_type.drop(op.get_bind(), checkfirst=True)
    claimed_coupon_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
