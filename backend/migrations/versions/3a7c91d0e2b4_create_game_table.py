"""create game table for puzzle duels

Revision ID: 3a7c91d0e2b4
Revises:
Create Date: 2026-10-16 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a7c91d0e2b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if 'game' in set(insp.get_table_names()):
        raise RuntimeError(
            "A 'game' table already exists outside of migration control; drop it before upgrading"
        )

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_code', sa.String(length=6), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=True),
        sa.Column('mode', sa.String(length=32), nullable=False, server_default='CLASSIC'),
        sa.Column('rows', sa.Integer(), nullable=False),
        sa.Column('cols', sa.Integer(), nullable=False),
        sa.Column('time_limit', sa.Integer(), nullable=False, server_default='600'),
        sa.Column('image_ref', sa.String(length=256), nullable=True),
        sa.Column('player_a_name', sa.String(length=64), nullable=True),
        sa.Column('player_b_name', sa.String(length=64), nullable=True),
        sa.Column('player_a_score', sa.Integer(), nullable=True),
        sa.Column('player_a_accuracy', sa.Integer(), nullable=True),
        sa.Column('player_a_streak', sa.Integer(), nullable=True),
        sa.Column('player_b_score', sa.Integer(), nullable=True),
        sa.Column('player_b_accuracy', sa.Integer(), nullable=True),
        sa.Column('player_b_streak', sa.Integer(), nullable=True),
        sa.Column('winner', sa.String(length=16), nullable=True),
        sa.Column('snapshot', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('game', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_game_game_code'), ['game_code'], unique=True)


def downgrade():
    with op.batch_alter_table('game', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_game_game_code'))
    op.drop_table('game')
