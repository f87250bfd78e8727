"""create document, archived_game and player_stats tables

Revision ID: 1a7c9e2b4d60
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c9e2b4d60'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing = set(sa.inspect(bind).get_table_names())

    if 'document' not in existing:
        op.create_table(
            'document',
            sa.Column('key', sa.String(length=64), primary_key=True),
            sa.Column('payload', sa.Text(), nullable=True),
            sa.Column('device_id', sa.String(length=64), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        )

    if 'archived_game' not in existing:
        op.create_table(
            'archived_game',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.String(length=32), nullable=True),
            sa.Column('winner', sa.String(length=64), nullable=True),
            sa.Column('scores', sa.Text(), nullable=False),
            sa.Column('players', sa.Text(), nullable=False),
            sa.Column('deck_size', sa.Integer(), nullable=True),
            sa.Column('max_cards', sa.Integer(), nullable=True),
            sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
            sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
            sa.Column('duration_minutes', sa.Integer(), nullable=True),
            sa.Column('total_rounds', sa.Integer(), nullable=True),
            sa.Column('rounds_played', sa.Integer(), nullable=True),
            sa.Column('rounds', sa.Text(), nullable=True),
            sa.Column('premature_end', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('ended_at_round', sa.Integer(), nullable=True),
            sa.Column('stats', sa.Text(), nullable=True),
            sa.Column('device_id', sa.String(length=64), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index('ix_archived_game_game_id', 'archived_game', ['game_id'], unique=True)
        op.create_index('ix_archived_game_created_at', 'archived_game', ['created_at'])

    if 'player_stats' not in existing:
        op.create_table(
            'player_stats',
            sa.Column('name', sa.String(length=64), primary_key=True),
            sa.Column('total_games', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_rounds', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('premature_end_games', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('best_score', sa.Integer(), nullable=True),
            sa.Column('last_played', sa.DateTime(timezone=True), nullable=True),
        )


def downgrade():
    op.drop_table('player_stats')
    op.drop_index('ix_archived_game_created_at', table_name='archived_game')
    op.drop_index('ix_archived_game_game_id', table_name='archived_game')
    op.drop_table('archived_game')
    op.drop_table('document')
