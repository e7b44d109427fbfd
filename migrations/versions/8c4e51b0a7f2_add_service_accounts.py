"""add service accounts

Revision ID: 8c4e51b0a7f2
Revises: 1f0c2a7d9b31
Create Date: 2026-10-06 16:40:02.915377

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8c4e51b0a7f2'
down_revision = '1f0c2a7d9b31'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('service_accounts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('space_id', sa.String(length=36), nullable=True),
    sa.Column('kind', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['space_id'], ['spaces.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_service_accounts_space_id'), 'service_accounts', ['space_id'], unique=False)
    op.create_table('service_tokens',
    sa.Column('issued_at', sa.BigInteger(), autoincrement=False, nullable=False),
    sa.Column('nonce', sa.BigInteger(), autoincrement=False, nullable=False),
    sa.Column('service_id', sa.String(length=36), nullable=False),
    sa.ForeignKeyConstraint(['service_id'], ['service_accounts.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('issued_at', 'nonce')
    )
    op.create_index(op.f('ix_service_tokens_service_id'), 'service_tokens', ['service_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_service_tokens_service_id'), table_name='service_tokens')
    op.drop_table('service_tokens')
    op.drop_index(op.f('ix_service_accounts_space_id'), table_name='service_accounts')
    op.drop_table('service_accounts')
