"""Pydantic schemas for request/response payloads."""

from datetime import datetime
from uuid import UUID
from typing import Optional, List

from pydantic import BaseModel, Field

from .models import ConnectorTypeEnum


class ErrorResponse(BaseModel):
    """Standard error body returned by HTTPException."""

    detail: str = Field(description="Human-readable error message", example="workspace not found")


class HealthResponse(BaseModel):
    status: str = Field(description="Service status", example="ok")


# Identity ------------------------------------------------------------

class UserOut(BaseModel):
    id: UUID
    email: str

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    success: bool = True
    user: UserOut


# Workspaces ----------------------------------------------------------

class WorkspaceCreate(BaseModel):
    """Payload for workspace creation. Name defaults to "Untitled Workspace"."""

    name: Optional[str] = Field(default=None, max_length=200, example="Store A")


class WorkspaceOut(BaseModel):
    id: UUID
    short_id: str = Field(description="Shareable workspace id", example="ws_3fa9c1")
    name: str

    model_config = {"from_attributes": True}


class WorkspaceListResponse(BaseModel):
    workspaces: List[WorkspaceOut]
    total: int


# Connectors ----------------------------------------------------------

class ConnectorAttachmentOut(BaseModel):
    workspace: str = Field(description="Workspace short id", example="ws_3fa9c1")
    connector: ConnectorTypeEnum = Field(example="shopify")
    dataset: str = Field(description="Provisioned dataset id", example="ws_3fa9c1__shopify")


# Shopify stores ------------------------------------------------------

class ShopifyStoreOut(BaseModel):
    shop_domain: str = Field(example="acme.myshopify.com")
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ShopifyInstallResponse(BaseModel):
    success: bool = True
    shop: str
