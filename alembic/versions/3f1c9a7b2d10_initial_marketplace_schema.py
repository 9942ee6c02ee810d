"""initial marketplace schema

Revision ID: 3f1c9a7b2d10
Revises:
Create Date: 2025-01-06 10:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7b2d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


userrole_enum = sa.Enum('BUYER', 'VENDOR', name='userrole')
paymentstatus_enum = sa.Enum('PENDING', 'COMPLETED', 'FAILED', name='paymentstatus')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('role', userrole_enum, nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verification_token', sa.String(length=255), nullable=True, unique=True),
        sa.Column('password_reset_token_hash', sa.String(length=64), nullable=True),
        sa.Column('password_reset_expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_password_reset_token_hash', 'users', ['password_reset_token_hash'])

    op.create_table(
        'buyer_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('payment_details', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_buyer_profiles_id', 'buyer_profiles', ['id'])

    op.create_table(
        'vendor_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('contact_info', sa.String(length=255), nullable=True),
        sa.Column('logo_url', sa.String(length=1024), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_vendor_profiles_id', 'vendor_profiles', ['id'])

    op.create_table(
        'buyer_dashboards',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('total_spent', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_bookings', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_buyer_dashboards_id', 'buyer_dashboards', ['id'])

    op.create_table(
        'listings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('availability', sa.JSON(), nullable=False),
        sa.Column('amenities', sa.JSON(), nullable=False),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_listings_id', 'listings', ['id'])
    op.create_index('ix_listings_vendor_id', 'listings', ['vendor_id'])
    op.create_index('ix_listings_location', 'listings', ['location'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_status', paymentstatus_enum, nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=True, unique=True),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True, unique=True),
        sa.Column('receipt_email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('listing_id', sa.Integer(), sa.ForeignKey('listings.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('payment_id', sa.Integer(), sa.ForeignKey('payments.id'), nullable=False, unique=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('ix_bookings_listing_id', 'bookings', ['listing_id'])
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])

    op.create_table(
        'processed_webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.String(length=255), nullable=False, unique=True),
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('processed_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_processed_webhook_events_id', 'processed_webhook_events', ['id'])

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('topic', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_outbox_events_id', 'outbox_events', ['id'])
    op.create_index('ix_outbox_events_status', 'outbox_events', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    # --- Drop dependants first ---
    op.drop_table('outbox_events')
    op.drop_table('processed_webhook_events')
    op.drop_table('bookings')
    op.drop_table('payments')
    op.drop_table('listings')
    op.drop_table('buyer_dashboards')
    op.drop_table('vendor_profiles')
    op.drop_table('buyer_profiles')
    op.drop_table('users')

    # --- Then the ENUM types ---
    paymentstatus_enum.drop(op.get_bind(), checkfirst=True)
    userrole_enum.drop(op.get_bind(), checkfirst=True)
