"""Initial deposit engine schema.

Targets PostgreSQL. SQLite development databases are created by init_db,
which stores amounts as text.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_DEPOSIT_PREDICATE = "status NOT IN ('completed', 'failed', 'reversed')"


def upgrade() -> None:
    # Asset configs table
    op.create_table(
        'asset_configs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('currency', sa.String(20), nullable=False),
        sa.Column('network', sa.String(40), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('min_deposit', sa.Numeric(36, 18), nullable=False),
        sa.Column('fee_percent', sa.Numeric(36, 18), nullable=False),
        sa.Column('required_confirmations', sa.Integer(), nullable=False),
        sa.Column('amount_precision', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('required_confirmations >= 1', name='ck_asset_configs_confirmations'),
    )
    op.create_index(
        'ix_asset_configs_currency_network', 'asset_configs', ['currency', 'network'], unique=True
    )

    # Wallet assignments table
    op.create_table(
        'wallet_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('memo', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['asset_configs.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wallet_assignments_user_id', 'wallet_assignments', ['user_id'])
    op.create_index('ix_wallet_assignments_asset_user', 'wallet_assignments', ['asset_id', 'user_id'])

    # Accounts table (mirror of the core ledger)
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('account_number', sa.String(34), nullable=False),
        sa.Column('balance', sa.Numeric(36, 18), nullable=False),
        sa.Column('min_deposit', sa.Numeric(36, 18), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_number'),
    )
    op.create_index('ix_accounts_user_id', 'accounts', ['user_id'])

    # Deposits table
    op.create_table(
        'deposits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('wallet_assignment_id', sa.Integer(), nullable=True),
        sa.Column('destination_address', sa.String(255), nullable=False),
        sa.Column('destination_memo', sa.String(255), nullable=True),
        sa.Column('gross_amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('fee_amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('net_amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('fee_percent', sa.Numeric(36, 18), nullable=False),
        sa.Column('required_confirmations', sa.Integer(), nullable=False),
        sa.Column('confirmations', sa.Integer(), nullable=False),
        sa.Column('tx_reference', sa.String(255), nullable=True),
        sa.Column('proof_pointer', sa.String(500), nullable=True),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('purpose', sa.String(20), nullable=False),
        sa.Column('status_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['asset_id'], ['asset_configs.id']),
        sa.ForeignKeyConstraint(['wallet_assignment_id'], ['wallet_assignments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'tx_reference IS NOT NULL OR proof_pointer IS NOT NULL', name='ck_deposits_evidence'
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'awaiting_confirmations', 'confirmed', 'completed', "
            "'failed', 'reversed', 'on_hold')",
            name='ck_deposits_status',
        ),
        sa.CheckConstraint("purpose IN ('general', 'activation')", name='ck_deposits_purpose'),
    )
    op.create_index('ix_deposits_destination_address', 'deposits', ['destination_address'])
    op.create_index('ix_deposits_tx_reference', 'deposits', ['tx_reference'])
    op.create_index('ix_deposits_user_created', 'deposits', ['user_id', 'created_at'])
    # At most one open deposit per (account, purpose)
    op.create_index(
        'uq_deposits_open_account_purpose',
        'deposits',
        ['account_id', 'purpose'],
        unique=True,
        sqlite_where=sa.text(OPEN_DEPOSIT_PREDICATE),
        postgresql_where=sa.text(OPEN_DEPOSIT_PREDICATE),
    )

    # Deposit transitions table (audit trail)
    op.create_table(
        'deposit_transitions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('deposit_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(30), nullable=True),
        sa.Column('to_status', sa.String(30), nullable=False),
        sa.Column('confirmations', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('actor', sa.String(50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['deposit_id'], ['deposits.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deposit_transitions_deposit_id', 'deposit_transitions', ['deposit_id'])

    # Ledger instructions table (outbox)
    op.create_table(
        'ledger_instructions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('deposit_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(10), nullable=False),
        sa.Column('amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('currency', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['deposit_id'], ['deposits.id']),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_ledger_instructions_deposit_kind', 'ledger_instructions', ['deposit_id', 'kind'], unique=True
    )


def downgrade() -> None:
    op.drop_table('ledger_instructions')
    op.drop_table('deposit_transitions')
    op.drop_table('deposits')
    op.drop_table('accounts')
    op.drop_table('wallet_assignments')
    op.drop_table('asset_configs')
