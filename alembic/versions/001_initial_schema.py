"""Initial schema creation

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create lease_agreements table
    op.create_table(
        'lease_agreements',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('unit_id', sa.String(64), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('landlord_id', sa.String(64), nullable=True),
        sa.Column('organization_id', sa.String(64), nullable=False),
        sa.Column('property_id', sa.String(64), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('first_payment_date', sa.Date(), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('lease_type', sa.Enum('fixed_term', 'periodic', name='leasetype'), nullable=False),
        sa.Column('charge_type', sa.Enum('rent', 'other', name='leasechargetype'), nullable=False),
        sa.Column(
            'payment_frequency',
            sa.Enum('weekly', 'biweekly', 'monthly', 'quarterly', 'yearly', name='paymentfrequency'),
            nullable=False,
        ),
        sa.Column(
            'status',
            sa.Enum('pending', 'active', 'terminated', 'expired', 'suspended', name='leasestatus'),
            nullable=False,
        ),
        sa.Column('esignatures', sa.JSON(), nullable=True),
        sa.Column('signed_document_url', sa.String(256), nullable=True),
        sa.Column('contract_hash', sa.String(256), nullable=True),
        sa.Column('terms', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_lease_agreements_unit_id', 'lease_agreements', ['unit_id'])
    op.create_index('ix_lease_agreements_tenant_id', 'lease_agreements', ['tenant_id'])
    op.create_index('ix_lease_agreements_landlord_id', 'lease_agreements', ['landlord_id'])
    op.create_index('ix_lease_agreements_organization_id', 'lease_agreements', ['organization_id'])
    op.create_index('ix_lease_agreements_property_id', 'lease_agreements', ['property_id'])
    op.create_index('ix_lease_agreements_status', 'lease_agreements', ['status'])
    op.create_index('idx_lease_unit_status', 'lease_agreements', ['unit_id', 'status'])
    op.create_index('idx_lease_property', 'lease_agreements', ['property_id', 'deleted_at'])
    op.create_index('idx_lease_status_end', 'lease_agreements', ['status', 'end_date'])

    # Create lease_payment_types table
    op.create_table(
        'lease_payment_types',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.String(32), nullable=False),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('organization_id', sa.String(64), nullable=True),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'code', name='uq_payment_type_org_code')
    )
    op.create_index('ix_lease_payment_types_code', 'lease_payment_types', ['code'])

    # Create lease_payments table
    op.create_table(
        'lease_payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('lease_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('unit_id', sa.String(64), nullable=False),
        sa.Column('property_id', sa.String(64), nullable=False),
        sa.Column('organization_id', sa.String(64), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.Column('type_code', sa.String(32), nullable=False),
        sa.Column('provider', sa.String(32), nullable=True),
        sa.Column('provider_transaction_id', sa.String(128), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['lease_id'], ['lease_agreements.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_lease_payments_lease_id', 'lease_payments', ['lease_id'])
    op.create_index('ix_lease_payments_tenant_id', 'lease_payments', ['tenant_id'])
    op.create_index('ix_lease_payments_property_id', 'lease_payments', ['property_id'])
    op.create_index('ix_lease_payments_paid_at', 'lease_payments', ['paid_at'])
    op.create_index('ix_lease_payments_type_code', 'lease_payments', ['type_code'])
    op.create_index('ix_lease_payments_provider_transaction_id', 'lease_payments', ['provider_transaction_id'])
    op.create_index('idx_payment_lease_paid_at', 'lease_payments', ['lease_id', 'paid_at'])
    op.create_index('idx_payment_property_paid_at', 'lease_payments', ['property_id', 'paid_at'])

    # Create payment_idempotency_records table
    op.create_table(
        'payment_idempotency_records',
        sa.Column('dedup_key', sa.String(255), nullable=False),
        sa.Column('payment_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('source', sa.String(32), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['lease_payments.id'], ),
        sa.PrimaryKeyConstraint('dedup_key')
    )
    op.create_index('ix_payment_idempotency_records_source', 'payment_idempotency_records', ['source'])
    op.create_index('ix_payment_idempotency_records_expires_at', 'payment_idempotency_records', ['expires_at'])
    op.create_index('idx_idempotency_source_created', 'payment_idempotency_records', ['source', 'created_at'])

    # Create gateway_checkouts table
    op.create_table(
        'gateway_checkouts',
        sa.Column('checkout_id', sa.String(128), nullable=False),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('lease_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('phone', sa.String(32), nullable=False),
        sa.Column('status', sa.Enum('pending', 'completed', 'failed', name='checkoutstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['lease_id'], ['lease_agreements.id'], ),
        sa.PrimaryKeyConstraint('checkout_id')
    )
    op.create_index('ix_gateway_checkouts_lease_id', 'gateway_checkouts', ['lease_id'])
    op.create_index('ix_gateway_checkouts_status', 'gateway_checkouts', ['status'])

    # Create lease_events table
    op.create_table(
        'lease_events',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('lease_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('event_payload', sa.JSON(), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['lease_id'], ['lease_agreements.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_lease_events_lease_id', 'lease_events', ['lease_id'])
    op.create_index('ix_lease_events_event_type', 'lease_events', ['event_type'])
    op.create_index('idx_lease_events', 'lease_events', ['lease_id', 'created_at'])
    op.create_index('idx_event_type_created', 'lease_events', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_table('lease_events')
    op.drop_table('gateway_checkouts')
    op.drop_table('payment_idempotency_records')
    op.drop_table('lease_payments')
    op.drop_table('lease_payment_types')
    op.drop_table('lease_agreements')
    sa.Enum(name='checkoutstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='leasestatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='paymentfrequency').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='leasechargetype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='leasetype').drop(op.get_bind(), checkfirst=True)
