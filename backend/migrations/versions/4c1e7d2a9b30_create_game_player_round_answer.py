"""create game, player, round and answer tables

Revision ID: 4c1e7d2a9b30
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1e7d2a9b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'game' not in existing_tables:
        op.create_table(
            'game',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_code', sa.String(length=16), nullable=False),
            sa.Column('host_player_id', sa.Integer(), nullable=True),
            sa.Column('status', sa.String(length=32), nullable=False, server_default='waiting'),
            sa.Column('current_round', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('current_prompt', sa.Text(), nullable=True),
            sa.Column('players_answered', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('token_holder_id', sa.Integer(), nullable=True),
            sa.Column('winner_id', sa.Integer(), nullable=True),
            sa.Column('used_prompts', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_game_room_code', 'game', ['room_code'], unique=True)
        op.create_index('ix_game_created_at', 'game', ['created_at'])

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=False),
            sa.Column('is_host', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('connected', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('sid', sa.String(length=64), nullable=True),
            sa.Column('joined_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('game_id', 'display_name', name='uq_player_game_name'),
        )
        op.create_index('ix_player_game_id', 'player', ['game_id'])
        op.create_index('ix_player_sid', 'player', ['sid'])

    if 'round' not in existing_tables:
        op.create_table(
            'round',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('round_number', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=32), nullable=False, server_default='collecting-answers'),
            sa.Column('prompt', sa.Text(), nullable=True),
            sa.Column('majority_answer', sa.Text(), nullable=True),
            sa.Column('unique_player_id', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.UniqueConstraint('game_id', 'round_number', name='uq_round_game_number'),
        )
        op.create_index('ix_round_game_id', 'round', ['game_id'])

    if 'answer' not in existing_tables:
        op.create_table(
            'answer',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id'), nullable=False),
            sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
            sa.Column('original_text', sa.Text(), nullable=False),
            sa.Column('normalized_text', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('round_id', 'player_id', name='uq_answer_round_player'),
        )
        op.create_index('ix_answer_round_id', 'answer', ['round_id'])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    for table in ('answer', 'round', 'player', 'game'):
        if table in existing_tables:
            op.drop_table(table)
