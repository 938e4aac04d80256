"""Record the lease on payment dedup records

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 15:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        'payment_idempotency_records',
        sa.Column('lease_id', postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.execute(
        "UPDATE payment_idempotency_records AS r SET lease_id = p.lease_id "
        "FROM lease_payments AS p WHERE p.id = r.payment_id"
    )
    # Keys are scoped by source from here on
    op.execute(
        "UPDATE payment_idempotency_records "
        "SET dedup_key = source || ':' || dedup_key"
    )
    op.alter_column('payment_idempotency_records', 'lease_id', nullable=False)
    op.create_foreign_key(
        'fk_idempotency_lease',
        'payment_idempotency_records',
        'lease_agreements',
        ['lease_id'],
        ['id'],
    )


def downgrade() -> None:
    op.drop_constraint('fk_idempotency_lease', 'payment_idempotency_records', type_='foreignkey')
    op.drop_column('payment_idempotency_records', 'lease_id')
    op.execute(
        "UPDATE payment_idempotency_records "
        "SET dedup_key = substr(dedup_key, length(source) + 2)"
    )
