"""SQLAlchemy ORM models and enums.

This module defines the provisioning schema using UUID primary keys and
explicit relationships. Uniqueness constraints here are load-bearing: they
arbitrate workspace short-id collisions, concurrent connector attachment and
duplicate store installs across process instances.
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class ConnectorTypeEnum(str, enum.Enum):
    shopify = "shopify"  # Commerce platform (orders, products, customers)
    meta = "meta"        # Ad platform
    google = "google"    # Search/ads platform


# Core models ----------------------------------------------------

class User(Base):
    """User represents an authenticated identity.

    Created on first successful login and keyed on email. Repeat logins
    resolve to the same row.
    """
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)

    workspaces = relationship("Workspace", back_populates="owner")

    def __str__(self):
        return self.email


class Workspace(Base):
    """Workspace is the tenant container for connectors and datasets.

    short_id is the human-shareable identifier (``ws_xxxxxx``). It prefixes
    every dataset provisioned for the workspace, so it never changes.
    The owner is fixed at creation; there is no transfer.
    """
    __tablename__ = "workspaces"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    short_id = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    owner_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", back_populates="workspaces")
    connectors = relationship("WorkspaceConnector", back_populates="workspace", cascade="all, delete-orphan")
    shopify_stores = relationship("ShopifyStore", back_populates="workspace", cascade="all, delete-orphan")

    def __str__(self):
        return f"{self.name} ({self.short_id})"


class WorkspaceConnector(Base):
    """A connector attached to a workspace, with its provisioned dataset.

    At most one row per (workspace, connector_type). The unique constraint
    is what resolves two concurrent attach calls for the same pair.
    """
    __tablename__ = "workspace_connectors"
    __table_args__ = (
        UniqueConstraint("workspace_id", "connector_type", name="uq_workspace_connector_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workspace_id = Column(UUID(as_uuid=True), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    connector_type = Column(
        Enum(ConnectorTypeEnum, name="connectortypeenum", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
    )
    dataset_id = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    workspace = relationship("Workspace", back_populates="connectors")

    def __str__(self):
        return self.dataset_id


class ShopifyStore(Base):
    """A Shopify shop installed into a workspace via OAuth.

    secret_ref points at the Secret Manager container holding the access
    token; the token itself never touches this table.
    """
    __tablename__ = "shopify_stores"
    __table_args__ = (
        UniqueConstraint("workspace_id", "shop_domain", name="uq_shopify_store_workspace_shop"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workspace_id = Column(UUID(as_uuid=True), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    shop_domain = Column(String, nullable=False)
    secret_ref = Column(String, nullable=False)
    installed_by_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    workspace = relationship("Workspace", back_populates="shopify_stores")

    def __str__(self):
        return self.shop_domain
