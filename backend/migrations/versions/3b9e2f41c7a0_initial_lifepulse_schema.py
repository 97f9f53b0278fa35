"""initial lifepulse schema

Revision ID: 3b9e2f41c7a0
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3b9e2f41c7a0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Users
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('blood_group', sa.String(3), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('availability', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('push_token', sa.String(500), nullable=True),
        sa.Column('total_donations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_donation_date', sa.DateTime(), nullable=True),
        sa.Column('last_eligibility_reminder_at', sa.DateTime(), nullable=True),
        sa.Column('emergency_contact_name', sa.String(50), nullable=True),
        sa.Column('emergency_contact_phone', sa.String(20), nullable=True),
        sa.Column('emergency_contact_relationship', sa.String(30), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('phone')
    )
    op.create_index('ix_users_role_blood_group_availability', 'users',
                    ['role', 'blood_group', 'availability'])
    op.create_index('ix_users_location', 'users', ['latitude', 'longitude'])

    # Blood requests
    op.create_table('blood_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('blood_group', sa.String(3), nullable=False),
        sa.Column('units', sa.Integer(), nullable=False),
        sa.Column('hospital_name', sa.String(100), nullable=False),
        sa.Column('hospital_address', sa.String(200), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('urgency', sa.String(10), nullable=False, server_default='MEDIUM'),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('required_by', sa.DateTime(), nullable=False),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('accepted_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('units >= 1 AND units <= 10', name='ck_blood_requests_units'),
        sa.CheckConstraint('accepted_count <= units', name='ck_blood_requests_capacity'),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_blood_requests_status_blood_group', 'blood_requests', ['status', 'blood_group'])
    op.create_index('ix_blood_requests_urgency_status', 'blood_requests', ['urgency', 'status'])
    op.create_index('ix_blood_requests_requester_status', 'blood_requests', ['requester_id', 'status'])
    op.create_index('ix_blood_requests_required_by', 'blood_requests', ['required_by'])
    op.create_index('ix_blood_requests_location', 'blood_requests', ['latitude', 'longitude'])

    # Donor acceptances
    op.create_table('donor_acceptances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('donor_id', sa.Integer(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['request_id'], ['blood_requests.id']),
        sa.ForeignKeyConstraint(['donor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id', 'donor_id', name='uq_donor_acceptances_request_donor')
    )
    op.create_index('ix_donor_acceptances_request_id', 'donor_acceptances', ['request_id'])
    op.create_index('ix_donor_acceptances_donor_id', 'donor_acceptances', ['donor_id'])

    # Chat messages
    op.create_table('chat_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['request_id'], ['blood_requests.id']),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_chat_messages_request_id', 'chat_messages', ['request_id'])

    # Rate limit entries
    op.create_table('rate_limit_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(255), nullable=False),
        sa.Column('endpoint', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rate_limit_entries_key', 'rate_limit_entries', ['key'])
    op.create_index('ix_rate_limit_entries_endpoint', 'rate_limit_entries', ['endpoint'])
    op.create_index('ix_rate_limit_key_endpoint_ts', 'rate_limit_entries',
                    ['key', 'endpoint', 'timestamp'])


def downgrade():
    op.drop_table('rate_limit_entries')
    op.drop_table('chat_messages')
    op.drop_table('donor_acceptances')
    op.drop_table('blood_requests')
    op.drop_table('users')
