"""create mapping tables

Revision ID: 5f3a1c9e2b7d
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5f3a1c9e2b7d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _mapping_columns() -> list:
    """Columns every mapping table carries besides its keys."""
    return [
        sa.Column('label', sa.String(length=20), nullable=True,
                  comment='Migration run label (ISO timestamp)'),
        sa.Column('mapping_type', sa.String(length=20), nullable=False,
                  comment='MIGRATED, NOMIS_CREATED or DPS_CREATED'),
        sa.Column('when_created', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'),
                  nullable=False),
    ]


def _owned_child_table(name: str, dps_column: str, nomis_columns: list, unique_name: str) -> None:
    op.create_table(
        name,
        sa.Column(dps_column, sa.String(length=64), nullable=False),
        *nomis_columns,
        sa.Column('dps_court_case_id', sa.String(length=64), nullable=True,
                  comment='Court case mapping owning this row'),
        *_mapping_columns(),
        sa.PrimaryKeyConstraint(dps_column),
        sa.UniqueConstraint(*[column.name for column in nomis_columns], name=unique_name),
    )
    op.create_index(f'ix_{name}_dps_court_case_id', name, ['dps_court_case_id'])
    op.create_index(f'ix_{name}_label', name, ['label'])


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'court_case_mappings',
        sa.Column('dps_court_case_id', sa.String(length=64), nullable=False),
        sa.Column('nomis_court_case_id', sa.BigInteger(), nullable=False),
        *_mapping_columns(),
        sa.PrimaryKeyConstraint('dps_court_case_id'),
        sa.UniqueConstraint('nomis_court_case_id', name='court_case_mappings_nomis_court_case_id_key'),
    )
    op.create_index('ix_court_case_mappings_label', 'court_case_mappings', ['label'])

    _owned_child_table(
        'court_appearance_mappings',
        'dps_court_appearance_id',
        [sa.Column('nomis_court_appearance_id', sa.BigInteger(), nullable=False)],
        'court_appearance_mappings_nomis_court_appearance_id_key',
    )
    _owned_child_table(
        'court_charge_mappings',
        'dps_court_charge_id',
        [sa.Column('nomis_court_charge_id', sa.BigInteger(), nullable=False)],
        'court_charge_mappings_nomis_court_charge_id_key',
    )
    _owned_child_table(
        'sentence_mappings',
        'dps_sentence_id',
        [
            sa.Column('nomis_booking_id', sa.BigInteger(), nullable=False),
            sa.Column('nomis_sentence_sequence', sa.Integer(), nullable=False),
        ],
        'uq_sentence_mappings_nomis',
    )
    _owned_child_table(
        'sentence_term_mappings',
        'dps_term_id',
        [
            sa.Column('nomis_booking_id', sa.BigInteger(), nullable=False),
            sa.Column('nomis_sentence_sequence', sa.Integer(), nullable=False),
            sa.Column('nomis_term_sequence', sa.Integer(), nullable=False),
        ],
        'uq_sentence_term_mappings_nomis',
    )

    # Prisoner keyed mappings
    op.create_table(
        'csra_mappings',
        sa.Column('dps_csra_id', sa.String(length=64), nullable=False),
        sa.Column('nomis_booking_id', sa.BigInteger(), nullable=False),
        sa.Column('nomis_sequence', sa.Integer(), nullable=False),
        sa.Column('offender_no', sa.String(length=10), nullable=False),
        *_mapping_columns(),
        sa.PrimaryKeyConstraint('dps_csra_id'),
        sa.UniqueConstraint('nomis_booking_id', 'nomis_sequence', name='uq_csra_mappings_nomis'),
    )
    op.create_table(
        'alert_mappings',
        sa.Column('dps_alert_id', sa.String(length=64), nullable=False),
        sa.Column('nomis_booking_id', sa.BigInteger(), nullable=False),
        sa.Column('nomis_alert_sequence', sa.Integer(), nullable=False),
        sa.Column('offender_no', sa.String(length=10), nullable=False),
        *_mapping_columns(),
        sa.PrimaryKeyConstraint('dps_alert_id'),
        sa.UniqueConstraint('nomis_booking_id', 'nomis_alert_sequence', name='uq_alert_mappings_nomis'),
    )
    op.create_table(
        'transaction_mappings',
        sa.Column('dps_transaction_id', sa.String(length=64), nullable=False),
        sa.Column('nomis_transaction_id', sa.BigInteger(), nullable=False),
        sa.Column('offender_no', sa.String(length=10), nullable=False),
        sa.Column('nomis_booking_id', sa.BigInteger(), nullable=True),
        *_mapping_columns(),
        sa.PrimaryKeyConstraint('dps_transaction_id'),
        sa.UniqueConstraint('nomis_transaction_id', name='transaction_mappings_nomis_transaction_id_key'),
    )
    for table in ('csra_mappings', 'alert_mappings', 'transaction_mappings'):
        op.create_index(f'ix_{table}_offender_no', table, ['offender_no'])
        op.create_index(f'ix_{table}_nomis_booking_id', table, ['nomis_booking_id'])
        op.create_index(f'ix_{table}_label', table, ['label'])

    op.create_table(
        'group_migrations',
        sa.Column('kind', sa.String(length=40), nullable=False),
        sa.Column('group_key', sa.String(length=40), nullable=False),
        sa.Column('label', sa.String(length=20), nullable=False),
        sa.Column('mappings_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('when_created', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'),
                  nullable=False),
        sa.PrimaryKeyConstraint('kind', 'group_key'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('group_migrations')
    for table in (
        'transaction_mappings',
        'alert_mappings',
        'csra_mappings',
        'sentence_term_mappings',
        'sentence_mappings',
        'court_charge_mappings',
        'court_appearance_mappings',
        'court_case_mappings',
    ):
        op.drop_table(table)
