"""add extracted_data table

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'e1f2a3b4c5d6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'extracted_data',
        sa.Column('id', postgresql.UUID(as_uuid=True),
                  server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('file_path', sa.Text(), nullable=False),
        sa.Column('extracted_info', postgresql.JSONB(astext_type=sa.Text()),
                  nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_extracted_data_file_path', 'extracted_data', ['file_path'])


def downgrade() -> None:
    op.drop_index('ix_extracted_data_file_path', table_name='extracted_data')
    op.drop_table('extracted_data')
