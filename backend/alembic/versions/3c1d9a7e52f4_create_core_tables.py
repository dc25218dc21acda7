"""create core tables

Revision ID: 3c1d9a7e52f4
Revises:
Create Date: 2026-09-28 10:14:02.118530

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1d9a7e52f4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('firms',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('dropbox_connected', sa.Boolean(), nullable=False),
    sa.Column('dropbox_access_token', sa.Text(), nullable=True),
    sa.Column('dropbox_refresh_token', sa.Text(), nullable=True),
    sa.Column('dropbox_token_expires_at', sa.DateTime(), nullable=True),
    sa.Column('dropbox_account_id', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('profiles',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('email', sa.String(), nullable=True),
    sa.Column('full_name', sa.String(), nullable=True),
    sa.Column('firm_id', sa.String(length=36), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['firm_id'], ['firms.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_firm_id'), 'profiles', ['firm_id'], unique=False)
    op.create_table('firm_integrations',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('firm_id', sa.String(length=36), nullable=False),
    sa.Column('intuit_app_name', sa.String(), nullable=True),
    sa.Column('intuit_client_id', sa.String(), nullable=True),
    sa.Column('intuit_client_secret_encrypted', sa.Text(), nullable=True),
    sa.Column('intuit_environment', sa.String(), nullable=False),
    sa.Column('redirect_uri', sa.String(), nullable=True),
    sa.Column('is_configured', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['firm_id'], ['firms.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('firm_id')
    )
    op.create_table('clients',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('firm_id', sa.String(length=36), nullable=False),
    sa.Column('created_by', sa.String(length=36), nullable=True),
    sa.Column('client_name', sa.String(), nullable=False),
    sa.Column('realm_id', sa.String(), nullable=True),
    sa.Column('connection_status', sa.String(), nullable=False),
    sa.Column('dropbox_folder_url', sa.String(), nullable=True),
    sa.Column('dropbox_folder_path', sa.String(), nullable=True),
    sa.Column('sheet_url', sa.String(), nullable=True),
    sa.Column('status_color', sa.String(), nullable=True),
    sa.Column('action_items_count', sa.Integer(), nullable=True),
    sa.Column('last_sync_at', sa.DateTime(), nullable=True),
    sa.Column('last_review_at', sa.DateTime(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['created_by'], ['profiles.id'], ),
    sa.ForeignKeyConstraint(['firm_id'], ['firms.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('firm_id', 'realm_id', name='uix_firm_realm')
    )
    op.create_index(op.f('ix_clients_firm_id'), 'clients', ['firm_id'], unique=False)
    op.create_table('qbo_connections',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('client_id', sa.String(length=36), nullable=False),
    sa.Column('realm_id', sa.String(), nullable=False),
    sa.Column('access_token', sa.Text(), nullable=False),
    sa.Column('refresh_token', sa.Text(), nullable=False),
    sa.Column('token_expires_at', sa.DateTime(), nullable=True),
    sa.Column('refresh_token_updated_at', sa.DateTime(), nullable=True),
    sa.Column('connection_status', sa.String(), nullable=False),
    sa.Column('connection_method', sa.String(), nullable=False),
    sa.Column('environment', sa.String(), nullable=False),
    sa.Column('scope', sa.String(), nullable=True),
    sa.Column('last_error', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('client_id')
    )
    op.create_index(op.f('ix_qbo_connections_realm_id'), 'qbo_connections', ['realm_id'], unique=False)
    op.create_index(op.f('ix_qbo_connections_connection_status'), 'qbo_connections', ['connection_status'], unique=False)
    op.create_table('qbo_oauth_states',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('state', sa.String(), nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.Column('provider', sa.String(), nullable=False),
    sa.Column('environment', sa.String(), nullable=True),
    sa.Column('client_id', sa.String(length=36), nullable=True),
    sa.Column('code_verifier', sa.String(), nullable=True),
    sa.Column('expires_at', sa.DateTime(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_qbo_oauth_states_state'), 'qbo_oauth_states', ['state'], unique=True)
    op.create_index(op.f('ix_qbo_oauth_states_expires_at'), 'qbo_oauth_states', ['expires_at'], unique=False)
    op.create_table('reconciliation_runs',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('client_id', sa.String(length=36), nullable=False),
    sa.Column('triggered_by', sa.String(length=36), nullable=True),
    sa.Column('run_type', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('started_at', sa.DateTime(), nullable=False),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('result_url', sa.String(), nullable=True),
    sa.Column('action_items_count', sa.Integer(), nullable=True),
    sa.Column('status_color', sa.String(), nullable=True),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('retry_count', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_runs_client_status', 'reconciliation_runs', ['client_id', 'status'], unique=False)
    op.create_table('notification_logs',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('notification_type', sa.String(), nullable=False),
    sa.Column('event_type', sa.String(), nullable=True),
    sa.Column('recipient', sa.String(), nullable=False),
    sa.Column('subject', sa.String(), nullable=False),
    sa.Column('message', sa.Text(), nullable=True),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('client_id', sa.String(length=36), nullable=True),
    sa.Column('reconciliation_run_id', sa.String(length=36), nullable=True),
    sa.Column('user_id', sa.String(length=36), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notification_logs_event_type'), 'notification_logs', ['event_type'], unique=False)
    op.create_index(op.f('ix_notification_logs_created_at'), 'notification_logs', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_notification_logs_created_at'), table_name='notification_logs')
    op.drop_index(op.f('ix_notification_logs_event_type'), table_name='notification_logs')
    op.drop_table('notification_logs')
    op.drop_index('ix_runs_client_status', table_name='reconciliation_runs')
    op.drop_table('reconciliation_runs')
    op.drop_index(op.f('ix_qbo_oauth_states_expires_at'), table_name='qbo_oauth_states')
    op.drop_index(op.f('ix_qbo_oauth_states_state'), table_name='qbo_oauth_states')
    op.drop_table('qbo_oauth_states')
    op.drop_index(op.f('ix_qbo_connections_connection_status'), table_name='qbo_connections')
    op.drop_index(op.f('ix_qbo_connections_realm_id'), table_name='qbo_connections')
    op.drop_table('qbo_connections')
    op.drop_index(op.f('ix_clients_firm_id'), table_name='clients')
    op.drop_table('clients')
    op.drop_table('firm_integrations')
    op.drop_index(op.f('ix_profiles_firm_id'), table_name='profiles')
    op.drop_table('profiles')
    op.drop_table('firms')
