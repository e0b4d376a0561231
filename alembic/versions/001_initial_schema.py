"""initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='user'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'user_settings',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('visible_widgets', sa.JSON(), nullable=False),
        sa.Column('theme_variant', sa.String(length=64), nullable=False, server_default='default'),
        sa.Column('widget_order', sa.JSON(), nullable=False),
        sa.Column('google_calendar_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('location_tracking_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('display_name', sa.String(length=128), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_user_settings_user_id', 'user_settings', ['user_id'], unique=True)

    op.create_table(
        'dashboard_layouts',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('layout_name', sa.String(length=255), nullable=False),
        sa.Column('layout_data', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_dashboard_layouts_user_id', 'dashboard_layouts', ['user_id'])

    op.create_table(
        'dashboard_screens',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('layout_data', sa.JSON(), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('public_token', sa.String(length=64), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_dashboard_screens_user_id', 'dashboard_screens', ['user_id'])
    op.create_index('ix_dashboard_screens_public_token', 'dashboard_screens', ['public_token'], unique=True)

    op.create_table(
        'google_calendar_credentials',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('access_token', sa.String(length=2048), nullable=False),
        sa.Column('refresh_token', sa.String(length=2048), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('scope', sa.String(length=512), nullable=True),
        sa.Column('is_connected', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        'ix_google_calendar_credentials_user_id', 'google_calendar_credentials', ['user_id'], unique=True
    )

    op.create_table(
        'home_assistant_connections',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('base_url', sa.String(length=1024), nullable=False),
        sa.Column('access_token', sa.String(length=2048), nullable=False),
        sa.Column('connection_type', sa.String(length=16), nullable=False, server_default='local'),
        sa.Column('is_connected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_sync', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        'ix_home_assistant_connections_user_id', 'home_assistant_connections', ['user_id'], unique=True
    )

    op.create_table(
        'home_assistant_widgets',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('entity_id', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('widget_type', sa.String(length=32), nullable=False),
        sa.Column('position', sa.JSON(), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_home_assistant_widgets_user_id', 'home_assistant_widgets', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_home_assistant_widgets_user_id', table_name='home_assistant_widgets')
    op.drop_table('home_assistant_widgets')
    op.drop_index('ix_home_assistant_connections_user_id', table_name='home_assistant_connections')
    op.drop_table('home_assistant_connections')
    op.drop_index('ix_google_calendar_credentials_user_id', table_name='google_calendar_credentials')
    op.drop_table('google_calendar_credentials')
    op.drop_index('ix_dashboard_screens_public_token', table_name='dashboard_screens')
    op.drop_index('ix_dashboard_screens_user_id', table_name='dashboard_screens')
    op.drop_table('dashboard_screens')
    op.drop_index('ix_dashboard_layouts_user_id', table_name='dashboard_layouts')
    op.drop_table('dashboard_layouts')
    op.drop_index('ix_user_settings_user_id', table_name='user_settings')
    op.drop_table('user_settings')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
