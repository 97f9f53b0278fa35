"""blood camps and user active flag

Revision ID: 8c4d1a7e5f02
Revises: 3b9e2f41c7a0
Create Date: 2026-10-18 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8c4d1a7e5f02'
down_revision = '3b9e2f41c7a0'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('users') as batch_op:
        batch_op.add_column(sa.Column('is_active', sa.Boolean(), nullable=False,
                                      server_default=sa.true()))

    op.create_table('blood_camps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('address', sa.String(200), nullable=False),
        sa.Column('city', sa.String(50), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('start_time', sa.String(10), nullable=False),
        sa.Column('end_time', sa.String(10), nullable=False),
        sa.Column('organizer_name', sa.String(50), nullable=False),
        sa.Column('organizer_phone', sa.String(20), nullable=False),
        sa.Column('organizer_email', sa.String(255), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('registered_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='UPCOMING'),
        sa.Column('blood_groups', sa.JSON(), nullable=False),
        sa.Column('requirements', sa.JSON(), nullable=False),
        sa.Column('notes', sa.String(200), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('capacity >= 1', name='ck_blood_camps_capacity'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_blood_camps_date_status', 'blood_camps', ['date', 'status'])
    op.create_index('ix_blood_camps_date_is_active', 'blood_camps', ['date', 'is_active'])
    op.create_index('ix_blood_camps_location', 'blood_camps', ['latitude', 'longitude'])


def downgrade():
    op.drop_table('blood_camps')
    with op.batch_alter_table('users') as batch_op:
        batch_op.drop_column('is_active')
