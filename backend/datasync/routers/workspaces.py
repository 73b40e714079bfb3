"""Workspace management endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_current_user, get_provisioner
from ..errors import (
    AlreadyAttached,
    AuthorizationError,
    DependencyError,
    InvalidConnector,
    RegistryExhausted,
)
from ..models import ShopifyStore, User
from ..services import workspace_registry
from ..services.authorization import require_ownership
from ..services.connector_provisioner import ConnectorProvisioner, parse_connector_type
from ..telemetry import capture_exception


logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/workspaces",
    tags=["Workspaces"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        404: {"model": schemas.ErrorResponse, "description": "Not Found"},
        500: {"model": schemas.ErrorResponse, "description": "Internal Server Error"},
    }
)


@router.get(
    "",
    response_model=schemas.WorkspaceListResponse,
    summary="List workspaces",
    description="List the workspaces owned by the current user.",
)
def list_workspaces(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    workspaces = workspace_registry.list_owned(db, current_user)
    return schemas.WorkspaceListResponse(
        workspaces=[schemas.WorkspaceOut.model_validate(w) for w in workspaces],
        total=len(workspaces),
    )


@router.post(
    "",
    response_model=schemas.WorkspaceOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create workspace",
    description="Create a workspace owned by the current user with a fresh short id.",
)
def create_workspace(
    payload: Optional[schemas.WorkspaceCreate] = Body(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        workspace = workspace_registry.create(db, current_user, payload.name if payload else None)
    except RegistryExhausted as e:
        capture_exception(e, extra={"user_id": str(current_user.id)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="workspace creation failed",
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"[WORKSPACES] Workspace creation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="workspace creation failed",
        )

    return schemas.WorkspaceOut.model_validate(workspace)


@router.post(
    "/{short_id}/connectors/{connector_type}",
    response_model=schemas.ConnectorAttachmentOut,
    status_code=status.HTTP_201_CREATED,
    summary="Attach connector",
    description="""
    Attach a connector to a workspace owned by the current user.

    Provisions the BigQuery dataset `{short_id}__{connector_type}`, grants
    the ingest service account write access and records the attachment.
    Safe to retry after a 500: completed steps are detected and skipped.
    """,
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Invalid connector"},
        409: {"model": schemas.ErrorResponse, "description": "Connector already attached"},
    },
)
def attach_connector(
    short_id: str,
    connector_type: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provisioner: ConnectorProvisioner = Depends(get_provisioner),
):
    # Validation and authorization both happen before any provider call
    try:
        parse_connector_type(connector_type)
    except InvalidConnector:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid connector")

    try:
        workspace = require_ownership(db, current_user, short_id)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    try:
        attachment = provisioner.attach(db, workspace, connector_type)
    except AlreadyAttached as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except DependencyError as e:
        logger.error(
            "[WORKSPACES] Connector provisioning failed (workspace=%s connector=%s step=%s resource=%s): %s",
            workspace.short_id, connector_type, e.step, e.resource, e.message,
        )
        capture_exception(e, extra={"step": e.step, "resource": e.resource})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="connector provisioning failed",
        )

    return schemas.ConnectorAttachmentOut(
        workspace=workspace.short_id,
        connector=attachment.connector_type,
        dataset=attachment.dataset_id,
    )


@router.get(
    "/{workspace_ref}/stores",
    response_model=List[schemas.ShopifyStoreOut],
    summary="List installed Shopify stores",
    description="List Shopify stores installed into a workspace owned by the current user.",
)
def list_shopify_stores(
    workspace_ref: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        workspace = require_ownership(db, current_user, workspace_ref)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    stores = (
        db.query(ShopifyStore)
        .filter(ShopifyStore.workspace_id == workspace.id)
        .order_by(ShopifyStore.created_at)
        .all()
    )
    return [schemas.ShopifyStoreOut.model_validate(s) for s in stores]
