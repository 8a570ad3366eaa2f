"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-09-14 10:20:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _token_table(name: str) -> None:
    op.create_table(name,
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('access_token', sa.Text(), nullable=False),
    sa.Column('refresh_token', sa.Text(), nullable=True),
    sa.Column('token_type', sa.String(length=20), nullable=False),
    sa.Column('scopes', sa.String(length=255), nullable=True),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('refresh_token_expires_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f(f'ix_{name}_id'), name, ['id'], unique=False)
    op.create_index(op.f(f'ix_{name}_site_code'), name, ['site_code'], unique=True)


def upgrade() -> None:
    # Create stores table
    op.create_table('stores',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('unit_code', sa.String(length=50), nullable=True),
    sa.Column('site_name', sa.String(length=255), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_stores_id'), 'stores', ['id'], unique=False)
    op.create_index(op.f('ix_stores_site_code'), 'stores', ['site_code'], unique=True)

    # Interactive and batch credential slots share one layout
    _token_table('oauth_tokens')
    _token_table('oauth_tokens_batch')

    # Create sync_orders table
    op.create_table('sync_orders',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('order_no', sa.BigInteger(), nullable=False),
    sa.Column('unit_code', sa.String(length=50), nullable=True),
    sa.Column('order_status', sa.String(length=50), nullable=True),
    sa.Column('order_type', sa.String(length=50), nullable=True),
    sa.Column('sale_channel', sa.String(length=50), nullable=True),
    sa.Column('device', sa.String(length=50), nullable=True),
    sa.Column('country', sa.String(length=10), nullable=True),
    sa.Column('currency', sa.String(length=10), nullable=True),
    sa.Column('total_price', sa.BigInteger(), nullable=False),
    sa.Column('total_payment_price', sa.BigInteger(), nullable=False),
    sa.Column('total_delivery_price', sa.BigInteger(), nullable=False),
    sa.Column('total_discount_price', sa.BigInteger(), nullable=False),
    sa.Column('orderer_name', sa.String(length=100), nullable=True),
    sa.Column('orderer_email', sa.String(length=255), nullable=True),
    sa.Column('orderer_call', sa.String(length=50), nullable=True),
    sa.Column('order_time', sa.DateTime(timezone=True), nullable=True),
    sa.Column('admin_url', sa.String(length=500), nullable=True),
    sa.Column('is_member', sa.String(length=1), nullable=True),
    sa.Column('member_code', sa.String(length=100), nullable=True),
    sa.Column('member_uid', sa.String(length=255), nullable=True),
    sa.Column('member_gender', sa.String(length=10), nullable=True),
    sa.Column('member_birth', sa.String(length=20), nullable=True),
    sa.Column('member_join_time', sa.String(length=50), nullable=True),
    sa.Column('member_point', sa.Integer(), nullable=True),
    sa.Column('member_grade', sa.String(length=50), nullable=True),
    sa.Column('member_social_login', sa.String(length=20), nullable=True),
    sa.Column('member_sms_agree', sa.String(length=1), nullable=True),
    sa.Column('member_email_agree', sa.String(length=1), nullable=True),
    sa.Column('payment_no', sa.String(length=100), nullable=True),
    sa.Column('payment_status', sa.String(length=50), nullable=True),
    sa.Column('payment_method', sa.String(length=50), nullable=True),
    sa.Column('pg_name', sa.String(length=50), nullable=True),
    sa.Column('paid_price', sa.BigInteger(), nullable=False),
    sa.Column('payment_complete_time', sa.String(length=50), nullable=True),
    sa.Column('order_section_status', sa.String(length=50), nullable=True),
    sa.Column('delivery_type', sa.String(length=50), nullable=True),
    sa.Column('receiver_name', sa.String(length=100), nullable=True),
    sa.Column('receiver_call', sa.String(length=50), nullable=True),
    sa.Column('delivery_zipcode', sa.String(length=20), nullable=True),
    sa.Column('delivery_addr1', sa.String(length=500), nullable=True),
    sa.Column('delivery_addr2', sa.String(length=500), nullable=True),
    sa.Column('delivery_city', sa.String(length=100), nullable=True),
    sa.Column('delivery_state', sa.String(length=100), nullable=True),
    sa.Column('delivery_country', sa.String(length=100), nullable=True),
    sa.Column('delivery_memo', sa.Text(), nullable=True),
    sa.Column('prod_no', sa.Integer(), nullable=True),
    sa.Column('prod_name', sa.String(length=500), nullable=True),
    sa.Column('prod_code', sa.String(length=100), nullable=True),
    sa.Column('prod_status', sa.String(length=50), nullable=True),
    sa.Column('prod_type', sa.String(length=50), nullable=True),
    sa.Column('item_price', sa.BigInteger(), nullable=False),
    sa.Column('item_qty', sa.Integer(), nullable=False),
    sa.Column('prod_brand', sa.String(length=255), nullable=True),
    sa.Column('prod_event_words', sa.String(length=500), nullable=True),
    sa.Column('prod_review_count', sa.Integer(), nullable=False),
    sa.Column('prod_is_badge_best', sa.String(length=1), nullable=True),
    sa.Column('prod_is_badge_hot', sa.String(length=1), nullable=True),
    sa.Column('prod_is_badge_new', sa.String(length=1), nullable=True),
    sa.Column('prod_simple_content', sa.Text(), nullable=True),
    sa.Column('prod_image_url', sa.String(length=1000), nullable=True),
    sa.Column('option_info', sa.JSON(), nullable=True),
    sa.Column('form_data', sa.JSON(), nullable=True),
    sa.Column('all_products', sa.JSON(), nullable=True),
    sa.Column('opt_gender', sa.String(length=20), nullable=True),
    sa.Column('opt_birth_year', sa.String(length=4), nullable=True),
    sa.Column('opt_age', sa.Integer(), nullable=True),
    sa.Column('opt_job', sa.String(length=255), nullable=True),
    sa.Column('opt_preferred_date', sa.String(length=255), nullable=True),
    sa.Column('order_event_date_dt', sa.DateTime(), nullable=True),
    sa.Column('management_status', sa.String(length=50), nullable=False),
    sa.Column('carryover_round', sa.Integer(), nullable=True),
    sa.Column('notification_sent', sa.Boolean(), nullable=False),
    sa.Column('notification_sent_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_realtime_check', sa.DateTime(timezone=True), nullable=True),
    sa.Column('is_manual_order', sa.Boolean(), nullable=False),
    sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_orders_id'), 'sync_orders', ['id'], unique=False)
    op.create_index(op.f('ix_sync_orders_order_time'), 'sync_orders', ['order_time'], unique=False)
    op.create_index(op.f('ix_sync_orders_payment_status'), 'sync_orders', ['payment_status'], unique=False)
    op.create_index(op.f('ix_sync_orders_prod_no'), 'sync_orders', ['prod_no'], unique=False)
    op.create_index(op.f('ix_sync_orders_order_event_date_dt'), 'sync_orders', ['order_event_date_dt'], unique=False)
    op.create_index(op.f('ix_sync_orders_management_status'), 'sync_orders', ['management_status'], unique=False)
    op.create_index('idx_sync_orders_site_order_no', 'sync_orders', ['site_code', 'order_no'], unique=True)
    op.create_index('idx_sync_orders_site_status', 'sync_orders', ['site_code', 'management_status'], unique=False)

    # Create sync_order_status_history table
    op.create_table('sync_order_status_history',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('sync_order_id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('previous_status', sa.String(length=50), nullable=True),
    sa.Column('new_status', sa.String(length=50), nullable=False),
    sa.Column('carryover_round', sa.Integer(), nullable=True),
    sa.Column('changed_by', sa.String(length=100), nullable=False),
    sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.ForeignKeyConstraint(['sync_order_id'], ['sync_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_order_status_history_id'), 'sync_order_status_history', ['id'], unique=False)
    op.create_index(op.f('ix_sync_order_status_history_sync_order_id'), 'sync_order_status_history', ['sync_order_id'], unique=False)
    op.create_index(op.f('ix_sync_order_status_history_site_code'), 'sync_order_status_history', ['site_code'], unique=False)

    # Create sync_categories table
    op.create_table('sync_categories',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('category_code', sa.String(length=100), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=True),
    sa.Column('parent_code', sa.String(length=100), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_categories_id'), 'sync_categories', ['id'], unique=False)
    op.create_index('idx_sync_categories_site_code', 'sync_categories', ['site_code', 'category_code'], unique=True)

    # Create sync_order_categories table
    op.create_table('sync_order_categories',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('sync_order_id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('category_code', sa.String(length=100), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.ForeignKeyConstraint(['sync_order_id'], ['sync_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_order_categories_id'), 'sync_order_categories', ['id'], unique=False)
    op.create_index(op.f('ix_sync_order_categories_sync_order_id'), 'sync_order_categories', ['sync_order_id'], unique=False)
    op.create_index(op.f('ix_sync_order_categories_site_code'), 'sync_order_categories', ['site_code'], unique=False)

    # Create sync_runs table
    op.create_table('sync_runs',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('sync_type', sa.String(length=20), nullable=False),
    sa.Column('trigger_type', sa.String(length=50), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=False),
    sa.Column('window_start', sa.DateTime(timezone=True), nullable=True),
    sa.Column('window_end', sa.DateTime(timezone=True), nullable=True),
    sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
    sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
    sa.Column('entries_fetched', sa.Integer(), nullable=False),
    sa.Column('entries_synced', sa.Integer(), nullable=False),
    sa.Column('entries_failed', sa.Integer(), nullable=False),
    sa.Column('entries_new', sa.Integer(), nullable=False),
    sa.Column('entries_updated', sa.Integer(), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_runs_id'), 'sync_runs', ['id'], unique=False)
    op.create_index(op.f('ix_sync_runs_site_code'), 'sync_runs', ['site_code'], unique=False)
    op.create_index('idx_sync_runs_site_status', 'sync_runs', ['site_code', 'status'], unique=False)

    # Create scheduler_states table
    op.create_table('scheduler_states',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=False),
    sa.Column('scheduler_type', sa.String(length=50), nullable=False),
    sa.Column('is_enabled', sa.Boolean(), nullable=False),
    sa.Column('run_interval_minutes', sa.Integer(), nullable=False),
    sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_success_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_error_message', sa.Text(), nullable=True),
    sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scheduler_states_id'), 'scheduler_states', ['id'], unique=False)
    op.create_index('idx_scheduler_states_site_type', 'scheduler_states', ['site_code', 'scheduler_type'], unique=True)

    # Create audit_logs table
    op.create_table('audit_logs',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('site_code', sa.String(length=50), nullable=True),
    sa.Column('entity_type', sa.String(length=50), nullable=True),
    sa.Column('entity_id', sa.Integer(), nullable=True),
    sa.Column('actor', sa.String(length=100), nullable=True),
    sa.Column('details', sa.JSON(), nullable=True),
    sa.Column('ip_address', sa.String(length=45), nullable=True),
    sa.Column('user_agent', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)
    op.create_index('idx_audit_logs_site_action', 'audit_logs', ['site_code', 'action'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_audit_logs_site_action', table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_created_at'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_id'), table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('idx_scheduler_states_site_type', table_name='scheduler_states')
    op.drop_index(op.f('ix_scheduler_states_id'), table_name='scheduler_states')
    op.drop_table('scheduler_states')

    op.drop_index('idx_sync_runs_site_status', table_name='sync_runs')
    op.drop_index(op.f('ix_sync_runs_site_code'), table_name='sync_runs')
    op.drop_index(op.f('ix_sync_runs_id'), table_name='sync_runs')
    op.drop_table('sync_runs')

    op.drop_index(op.f('ix_sync_order_categories_site_code'), table_name='sync_order_categories')
    op.drop_index(op.f('ix_sync_order_categories_sync_order_id'), table_name='sync_order_categories')
    op.drop_index(op.f('ix_sync_order_categories_id'), table_name='sync_order_categories')
    op.drop_table('sync_order_categories')

    op.drop_index('idx_sync_categories_site_code', table_name='sync_categories')
    op.drop_index(op.f('ix_sync_categories_id'), table_name='sync_categories')
    op.drop_table('sync_categories')

    op.drop_index(op.f('ix_sync_order_status_history_site_code'), table_name='sync_order_status_history')
    op.drop_index(op.f('ix_sync_order_status_history_sync_order_id'), table_name='sync_order_status_history')
    op.drop_index(op.f('ix_sync_order_status_history_id'), table_name='sync_order_status_history')
    op.drop_table('sync_order_status_history')

    op.drop_index('idx_sync_orders_site_status', table_name='sync_orders')
    op.drop_index('idx_sync_orders_site_order_no', table_name='sync_orders')
    op.drop_index(op.f('ix_sync_orders_management_status'), table_name='sync_orders')
    op.drop_index(op.f('ix_sync_orders_order_event_date_dt'), table_name='sync_orders')
    op.drop_index(op.f('ix_sync_orders_prod_no'), table_name='sync_orders')
    op.drop_index(op.f('ix_sync_orders_payment_status'), table_name='sync_orders')
    op.drop_index(op.f('ix_sync_orders_order_time'), table_name='sync_orders')
    op.drop_index(op.f('ix_sync_orders_id'), table_name='sync_orders')
    op.drop_table('sync_orders')

    for name in ('oauth_tokens_batch', 'oauth_tokens'):
        op.drop_index(op.f(f'ix_{name}_site_code'), table_name=name)
        op.drop_index(op.f(f'ix_{name}_id'), table_name=name)
        op.drop_table(name)

    op.drop_index(op.f('ix_stores_site_code'), table_name='stores')
    op.drop_index(op.f('ix_stores_id'), table_name='stores')
    op.drop_table('stores')
