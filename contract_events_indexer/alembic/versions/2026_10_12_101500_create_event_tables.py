"""create_event_tables

Revision ID: 2026_10_12_101500
Revises:
Create Date: 2026-10-12 10:15:03.418227

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '2026_10_12_101500'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'abi_event_records',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('event_signature_hash', sa.String(length=66), nullable=False),
        sa.Column('event_name', sa.Text(), nullable=False),
        sa.Column('abi_event_json', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_signature_hash', name='uq_abi_event_records_signature_hash'),
    )

    op.create_table(
        'blockchain_events',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('tx_hash', sa.String(length=66), nullable=False),
        sa.Column('tx_index', sa.Integer(), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('block_hash', sa.String(length=66), nullable=False),
        sa.Column('log_index', sa.Integer(), nullable=False),
        sa.Column('removed', sa.Boolean(), nullable=False),
        sa.Column('contract_address', sa.String(length=42), nullable=False),
        sa.Column('event_signature', sa.String(length=66), nullable=True),
        sa.Column('event_name', sa.String(length=255), nullable=True),
        sa.Column('event_full_signature', sa.Text(), nullable=True),
        sa.Column('other_topics', postgresql.ARRAY(sa.Text()), nullable=False),
        sa.Column('raw_data', sa.Text(), nullable=False),
        sa.Column('decoded_params', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            'insert_time',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tx_hash', 'log_index', name='idx_tx_log'),
    )
    op.create_index('ix_blockchain_events_block_number', 'blockchain_events', ['block_number'])
    op.create_index('ix_blockchain_events_block_hash', 'blockchain_events', ['block_hash'])
    op.create_index('ix_blockchain_events_contract_address', 'blockchain_events', ['contract_address'])
    op.create_index('ix_blockchain_events_event_signature', 'blockchain_events', ['event_signature'])
    op.create_index('ix_blockchain_events_event_name', 'blockchain_events', ['event_name'])

    op.create_table(
        'cursors',
        sa.Column('id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('count', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('cursors')
    op.drop_index('ix_blockchain_events_event_name', table_name='blockchain_events')
    op.drop_index('ix_blockchain_events_event_signature', table_name='blockchain_events')
    op.drop_index('ix_blockchain_events_contract_address', table_name='blockchain_events')
    op.drop_index('ix_blockchain_events_block_hash', table_name='blockchain_events')
    op.drop_index('ix_blockchain_events_block_number', table_name='blockchain_events')
    op.drop_table('blockchain_events')
    op.drop_table('abi_event_records')
