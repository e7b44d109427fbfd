"""initial schema

Revision ID: 1f0c2a7d9b31
Revises:
Create Date: 2026-09-28 10:12:44.208113

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1f0c2a7d9b31'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=31), nullable=False),
    sa.Column('invites', sa.Integer(), nullable=False),
    sa.Column('invited_by', sa.String(length=36), nullable=True),
    sa.Column('level', sa.Integer(), nullable=False),
    sa.Column('password_hash', sa.String(length=255), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['invited_by'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('invites',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invites_owner_id'), 'invites', ['owner_id'], unique=False)
    op.create_table('tokens',
    sa.Column('issued_at', sa.BigInteger(), autoincrement=False, nullable=False),
    sa.Column('nonce', sa.BigInteger(), autoincrement=False, nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('issued_at', 'nonce')
    )
    op.create_index(op.f('ix_tokens_user_id'), 'tokens', ['user_id'], unique=False)
    op.create_table('users_ssh_keys',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('key_type', sa.String(length=64), nullable=False),
    sa.Column('key_value', sa.Text(), nullable=False),
    sa.Column('fingerprint', sa.String(length=64), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('key_type', 'key_value', name='uq_ssh_key_type_value')
    )
    op.create_index(op.f('ix_users_ssh_keys_fingerprint'), 'users_ssh_keys', ['fingerprint'], unique=False)
    op.create_table('spaces',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_spaces_owner_id'), 'spaces', ['owner_id'], unique=False)
    op.create_table('space_accounts',
    sa.Column('space_id', sa.String(length=36), nullable=False),
    sa.Column('platform_id', sa.String(length=255), nullable=False),
    sa.Column('platform_name', sa.String(length=255), nullable=True),
    sa.Column('display_name', sa.String(length=255), nullable=True),
    sa.ForeignKeyConstraint(['space_id'], ['spaces.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('space_id', 'platform_id')
    )
    op.create_table('space_items',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('kind', sa.Integer(), nullable=False),
    sa.Column('serial', sa.String(length=255), nullable=False),
    sa.Column('owner_id', sa.String(length=255), nullable=True),
    sa.Column('space_id', sa.String(length=36), nullable=False),
    sa.ForeignKeyConstraint(['owner_id', 'space_id'], ['space_accounts.platform_id', 'space_accounts.space_id'], name='fk_item_owner_account', ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['space_id'], ['spaces.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('serial', 'space_id', name='uq_item_serial_space')
    )
    op.create_table('space_logs',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('space_id', sa.String(length=36), nullable=False),
    sa.Column('created_at', sa.BigInteger(), nullable=False),
    sa.Column('action', sa.Integer(), nullable=False),
    sa.Column('account_id', sa.String(length=255), nullable=True),
    sa.Column('item_id', sa.String(length=36), nullable=True),
    sa.ForeignKeyConstraint(['space_id'], ['spaces.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_space_logs_space_created', 'space_logs', ['space_id', 'created_at'], unique=False)
    op.create_index(op.f('ix_space_logs_account_id'), 'space_logs', ['account_id'], unique=False)
    op.create_index(op.f('ix_space_logs_item_id'), 'space_logs', ['item_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_space_logs_item_id'), table_name='space_logs')
    op.drop_index(op.f('ix_space_logs_account_id'), table_name='space_logs')
    op.drop_index('ix_space_logs_space_created', table_name='space_logs')
    op.drop_table('space_logs')
    op.drop_table('space_items')
    op.drop_table('space_accounts')
    op.drop_index(op.f('ix_spaces_owner_id'), table_name='spaces')
    op.drop_table('spaces')
    op.drop_index(op.f('ix_users_ssh_keys_fingerprint'), table_name='users_ssh_keys')
    op.drop_table('users_ssh_keys')
    op.drop_index(op.f('ix_tokens_user_id'), table_name='tokens')
    op.drop_table('tokens')
    op.drop_index(op.f('ix_invites_owner_id'), table_name='invites')
    op.drop_table('invites')
    op.drop_table('users')
