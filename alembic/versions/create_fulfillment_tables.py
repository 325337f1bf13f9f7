"""Create ticket fulfillment tables.

Revision ID: create_fulfillment_tables
Revises:
Create Date: 2025-11-10
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_fulfillment_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tickets',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('ticket_type', sa.String(30), nullable=False),
        sa.Column('ticket_category', sa.String(30), nullable=False),
        sa.Column('ticket_stage', sa.String(30), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('company', sa.String(255), nullable=True),
        sa.Column('job_title', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=False),
        sa.Column('stripe_session_id', sa.String(255), nullable=False, index=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('attendee_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_paid', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='CHF'),
        sa.Column('status', sa.String(20), nullable=False, server_default='confirmed'),
        sa.Column('qr_code_url', sa.String(), nullable=True),
        sa.Column('coupon_code', sa.String(100), nullable=True),
        sa.Column('partnership_coupon_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('partnership_voucher_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('partnership_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        # A redelivered checkout session cannot create a second set of tickets
        sa.UniqueConstraint('stripe_session_id', 'attendee_index',
                            name='uq_tickets_session_attendee'),
    )

    op.create_table(
        'ticket_upgrades',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('ticket_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('tickets.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending_payment'),
        sa.Column('upgrade_mode', sa.String(30), nullable=False, server_default='stripe'),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('stripe_checkout_session_id', sa.String(255), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'partnership_coupons',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('partnership_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('code', sa.String(100), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'partnership_vouchers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('partnership_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('code', sa.String(100), nullable=False, unique=True),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_redeemed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('redeemed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('redeemed_by_email', sa.String(255), nullable=True),
        sa.Column('redeemed_session_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'scheduled_abandonment_emails',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('resend_email_id', sa.String(255), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('scheduled_abandonment_emails')
    op.drop_table('partnership_vouchers')
    op.drop_table('partnership_coupons')
    op.drop_table('ticket_upgrades')
    op.drop_table('tickets')
