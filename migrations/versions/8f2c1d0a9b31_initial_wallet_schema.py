"""Initial wallet schema

Revision ID: 8f2c1d0a9b31
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8f2c1d0a9b31'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('display_id', sa.String(length=12), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('balance', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(length=12), nullable=False),
        sa.Column('referred_by_id', sa.Integer(), nullable=True),
        sa.Column('has_made_first_recharge', sa.Boolean(), nullable=False),
        sa.Column('withdrawal_account', sa.String(length=30), nullable=True),
        sa.Column('withdrawal_full_name', sa.String(length=150), nullable=True),
        sa.Column('withdrawal_id_number', sa.String(length=30), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['referred_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('display_id'),
        sa.UniqueConstraint('phone'),
        sa.UniqueConstraint('referral_code'),
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('idx_user_phone', ['phone'], unique=False)
        batch_op.create_index('idx_user_referral_code', ['referral_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_users_role'), ['role'], unique=False)
        batch_op.create_index(batch_op.f('ix_users_referred_by_id'), ['referred_by_id'], unique=False)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('daily_yield', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('purchase_limit', sa.Integer(), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('is_time_limited', sa.Boolean(), nullable=False),
        sa.Column('time_limit_hours', sa.Integer(), nullable=True),
        sa.Column('time_limit_set_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'purchased_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('daily_yield', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('purchase_date', sa.DateTime(), nullable=False),
        sa.Column('last_yield_date', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('purchased_products', schema=None) as batch_op:
        batch_op.create_index('idx_purchased_user_status', ['user_id', 'status'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchased_products_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchased_products_product_id'), ['product_id'], unique=False)

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transactions_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_date'), ['date'], unique=False)

    op.create_table(
        'temp_recharges',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('temp_recharges', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_temp_recharges_user_id'), ['user_id'], unique=False)

    op.create_table(
        'recharge_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=120), nullable=False),
        sa.Column('approved_reference', sa.String(length=120), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_phone', sa.String(length=20), nullable=True),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['processed_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('approved_reference'),
    )
    with op.batch_alter_table('recharge_requests', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_recharge_requests_reference'), ['reference'], unique=False)
        batch_op.create_index(batch_op.f('ix_recharge_requests_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_recharge_requests_status'), ['status'], unique=False)

    op.create_table(
        'withdrawal_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_phone', sa.String(length=20), nullable=True),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('fee', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('net_amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('nequi_account', sa.String(length=30), nullable=False),
        sa.Column('full_name', sa.String(length=150), nullable=False),
        sa.Column('id_number', sa.String(length=30), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['processed_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('withdrawal_requests', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_withdrawal_requests_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_withdrawal_requests_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_withdrawal_requests_requested_at'), ['requested_at'], unique=False)

    op.create_table(
        'gift_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=40), nullable=False),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('usage_limit', sa.Integer(), nullable=False),
        sa.Column('expires_in_minutes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('redeemed_count', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('gift_codes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_gift_codes_code'), ['code'], unique=True)

    op.create_table(
        'gift_code_redemptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gift_code_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['gift_code_id'], ['gift_codes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gift_code_id', 'user_id', name='uq_gift_code_user'),
    )
    with op.batch_alter_table('gift_code_redemptions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_gift_code_redemptions_gift_code_id'), ['gift_code_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gift_code_redemptions_user_id'), ['user_id'], unique=False)

    op.create_table(
        'config',
        sa.Column('key', sa.String(length=50), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('key'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('target_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['target_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_logs_actor_id'), ['actor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_target_user_id'), ['target_user_id'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('config')
    op.drop_table('gift_code_redemptions')
    op.drop_table('gift_codes')
    op.drop_table('withdrawal_requests')
    op.drop_table('recharge_requests')
    op.drop_table('temp_recharges')
    op.drop_table('transactions')
    op.drop_table('purchased_products')
    op.drop_table('products')
    op.drop_table('users')
