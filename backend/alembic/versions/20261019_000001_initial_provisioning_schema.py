"""Initial provisioning schema (users, workspaces, connectors, shopify stores)

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 09:00:00.000000

WHAT:
    Creates the tables the provisioning API owns:
    - users: identities resolved from login email
    - workspaces: tenant containers with a globally unique short_id
    - workspace_connectors: one row per attached (workspace, connector)
    - shopify_stores: one row per installed (workspace, shop)

WHY:
    The unique constraints created here are the only arbiter for short-id
    collisions, concurrent connector attachment and duplicate store installs
    across API instances.

REFERENCES:
    - datasync/models.py
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20261019_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Connector type enum
    # =========================================================================
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE connectortypeenum AS ENUM ('shopify', 'meta', 'google');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    # =========================================================================
    # STEP 2: users
    # =========================================================================
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # =========================================================================
    # STEP 3: workspaces
    # =========================================================================
    # WHAT: short_id prefixes every dataset name, so it is unique and immutable
    op.create_table(
        'workspaces',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('short_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('owner_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_workspaces_short_id', 'workspaces', ['short_id'], unique=True)
    op.create_index('ix_workspaces_owner_user_id', 'workspaces', ['owner_user_id'])

    # =========================================================================
    # STEP 4: workspace_connectors
    # =========================================================================
    # NOTE: create_type=False since the enum is created via raw SQL above
    op.create_table(
        'workspace_connectors',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('workspace_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('connector_type', postgresql.ENUM(
            'shopify', 'meta', 'google',
            name='connectortypeenum', create_type=False
        ), nullable=False),
        sa.Column('dataset_id', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('workspace_id', 'connector_type', name='uq_workspace_connector_type'),
    )
    op.create_index('ix_workspace_connectors_workspace_id', 'workspace_connectors', ['workspace_id'])

    # =========================================================================
    # STEP 5: shopify_stores
    # =========================================================================
    # WHAT: secret_ref is the Secret Manager resource name, never the token
    op.create_table(
        'shopify_stores',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('workspace_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('shop_domain', sa.String(), nullable=False),
        sa.Column('secret_ref', sa.String(), nullable=False),
        sa.Column('installed_by_user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('workspace_id', 'shop_domain', name='uq_shopify_store_workspace_shop'),
    )
    op.create_index('ix_shopify_stores_workspace_id', 'shopify_stores', ['workspace_id'])


def downgrade() -> None:
    op.drop_index('ix_shopify_stores_workspace_id', table_name='shopify_stores')
    op.drop_table('shopify_stores')
    op.drop_index('ix_workspace_connectors_workspace_id', table_name='workspace_connectors')
    op.drop_table('workspace_connectors')
    op.drop_index('ix_workspaces_owner_user_id', table_name='workspaces')
    op.drop_index('ix_workspaces_short_id', table_name='workspaces')
    op.drop_table('workspaces')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.execute("DROP TYPE IF EXISTS connectortypeenum;")
