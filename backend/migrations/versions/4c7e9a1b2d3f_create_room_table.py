"""create room table

Revision ID: 4c7e9a1b2d3f
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7e9a1b2d3f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # Fresh installs may already have the table from `flask db-reset`
    if 'room' in set(insp.get_table_names()):
        return

    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=4), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('document', sa.Text(), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.Float(), nullable=False),
    )
    op.create_index('ix_room_code', 'room', ['code'], unique=True)


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'room' not in set(insp.get_table_names()):
        return
    op.drop_index('ix_room_code', table_name='room')
    op.drop_table('room')
