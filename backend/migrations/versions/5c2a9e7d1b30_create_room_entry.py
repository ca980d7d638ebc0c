"""create room_entry key-value table

Revision ID: 5c2a9e7d1b30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e7d1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'room_entry' in set(insp.get_table_names()):
        return
    op.create_table(
        'room_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('path', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('room_entry') as batch_op:
        batch_op.create_index(batch_op.f('ix_room_entry_path'), ['path'], unique=True)


def downgrade():
    with op.batch_alter_table('room_entry') as batch_op:
        batch_op.drop_index(batch_op.f('ix_room_entry_path'))
    op.drop_table('room_entry')
