"""Shopify OAuth 2.0 install flow endpoints.

WHAT:
    Starts the Shopify install for a workspace the caller owns, and completes
    it on callback by storing the access token in Secret Manager and
    recording the installed store.

WHY:
    Shopify ingest jobs need a per-workspace, per-shop token. The workspace
    travels through Shopify inside the OAuth `state` parameter.

FLOW:
    GET /auth/shopify?shop=...&workspace=...
        ownership check -> issue nonce -> 307 to Shopify consent
    GET /auth/shopify/callback?shop=...&code=...&state=...
        decode state -> ownership check -> redeem nonce -> exchange code
        -> store token -> insert shopify_stores row

REFERENCES:
    - Shopify OAuth: https://shopify.dev/docs/apps/auth/oauth
    - datasync/services/oauth_state.py (state format and nonce store)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import schemas
from ..database import get_db
from ..deps import Settings, get_credential_vault, get_current_user, get_nonce_store, get_settings
from ..errors import AuthorizationError, CredentialExists, DependencyError, StateDecodeError
from ..models import ShopifyStore, User
from ..services import oauth_state
from ..services.authorization import require_ownership
from ..services.credential_vault import CredentialVault
from ..services.oauth_state import OAuthNonceStore
from ..services.shopify_oauth_client import (
    build_authorize_url,
    exchange_code_for_token,
    normalize_shop_domain,
    validate_shop_domain,
)
from ..telemetry import capture_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/shopify", tags=["Shopify OAuth"])


def _validate_shopify_config(settings: Settings) -> None:
    """Raise 503 when the Shopify app credentials are not configured."""
    missing = []
    if not settings.SHOPIFY_CLIENT_ID:
        missing.append("SHOPIFY_CLIENT_ID")
    if not settings.SHOPIFY_CLIENT_SECRET:
        missing.append("SHOPIFY_CLIENT_SECRET")
    if not settings.SHOPIFY_REDIRECT_URI:
        missing.append("SHOPIFY_REDIRECT_URI")

    if missing:
        logger.error("[SHOPIFY_OAUTH] Missing required settings: %s", missing)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Shopify integration not configured. Missing: {', '.join(missing)}"
        )


def _require_shop_domain(shop: str) -> str:
    shop_domain = normalize_shop_domain(shop)
    if not validate_shop_domain(shop_domain):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid Shopify store domain: {shop_domain}. Expected format: mystore.myshopify.com"
        )
    return shop_domain


@router.get("")
async def shopify_authorize(
    shop: Optional[str] = Query(None, description="Shopify store domain (e.g. 'mystore' or 'mystore.myshopify.com')"),
    workspace: Optional[str] = Query(None, description="Workspace id or short id"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    nonce_store: OAuthNonceStore = Depends(get_nonce_store),
    settings: Settings = Depends(get_settings),
):
    """Redirect the owner to the Shopify consent screen for `shop`."""
    if not shop or not workspace:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="shop and workspace required")

    _validate_shopify_config(settings)
    shop_domain = _require_shop_domain(shop)

    try:
        owned = require_ownership(db, current_user, workspace)
    except AuthorizationError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="unauthorized workspace")

    try:
        state = nonce_store.issue(str(owned.id))
    except DependencyError as e:
        logger.error(f"[SHOPIFY_OAUTH] Could not issue state for workspace {owned.id}: {e.message}")
        capture_exception(e, extra={"step": e.step, "resource": e.resource})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="shopify authorization failed")

    auth_url = build_authorize_url(
        shop_domain,
        state,
        client_id=settings.SHOPIFY_CLIENT_ID,
        redirect_uri=settings.SHOPIFY_REDIRECT_URI,
    )

    logger.info(f"[SHOPIFY_OAUTH] Redirecting user {current_user.id} to Shopify consent for {shop_domain}")
    return RedirectResponse(url=auth_url)


@router.get("/callback", response_model=schemas.ShopifyInstallResponse)
async def shopify_callback(
    shop: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    nonce_store: OAuthNonceStore = Depends(get_nonce_store),
    vault: CredentialVault = Depends(get_credential_vault),
    settings: Settings = Depends(get_settings),
):
    """Complete the Shopify install and record the store for the workspace."""
    if not shop or not code or not state:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid callback params")

    _validate_shopify_config(settings)
    shop_domain = _require_shop_domain(shop)

    try:
        decoded = oauth_state.decode(state)
    except StateDecodeError as e:
        logger.error(f"[SHOPIFY_OAUTH] Malformed state: {e.message}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    # Re-validate ownership before the nonce is spent
    try:
        workspace = require_ownership(db, current_user, decoded.workspace_id)
    except AuthorizationError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="unauthorized workspace")

    try:
        nonce_store.consume(state)
    except StateDecodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except DependencyError as e:
        logger.error(f"[SHOPIFY_OAUTH] Could not redeem state for workspace {workspace.id}: {e.message}")
        capture_exception(e, extra={"step": e.step, "resource": e.resource})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="shopify install failed")

    workspace_id = str(workspace.id)

    existing = (
        db.query(ShopifyStore)
        .filter(
            ShopifyStore.workspace_id == workspace.id,
            ShopifyStore.shop_domain == shop_domain,
        )
        .first()
    )
    if existing:
        logger.info(f"[SHOPIFY_OAUTH] {shop_domain} already installed in workspace {workspace_id}; ignoring")
        return schemas.ShopifyInstallResponse(success=True, shop=shop_domain)

    try:
        token = await exchange_code_for_token(
            shop_domain,
            code,
            client_id=settings.SHOPIFY_CLIENT_ID,
            client_secret=settings.SHOPIFY_CLIENT_SECRET,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )
        try:
            secret_ref = await run_in_threadpool(vault.store, workspace_id, shop_domain, token)
        except CredentialExists:
            # An earlier callback stored the token but did not record the
            # store. The secret already holds a version; reuse its reference.
            secret_ref = vault.reference_for(workspace_id, shop_domain)
    except DependencyError as e:
        logger.error(
            f"[SHOPIFY_OAUTH] Install failed for {shop_domain} in workspace {workspace_id} "
            f"(step={e.step} resource={e.resource}): {e.message}"
        )
        capture_exception(e, extra={"step": e.step, "resource": e.resource})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="shopify install failed")

    db.add(ShopifyStore(
        workspace_id=workspace.id,
        shop_domain=shop_domain,
        secret_ref=secret_ref,
        installed_by_user_id=current_user.id,
    ))
    try:
        db.commit()
    except IntegrityError:
        # Concurrent callback for the same (workspace, shop) recorded it first
        db.rollback()
        logger.info(f"[SHOPIFY_OAUTH] Duplicate install of {shop_domain} in workspace {workspace_id} ignored")

    logger.info(f"[SHOPIFY_OAUTH] Installed {shop_domain} in workspace {workspace_id}")
    return schemas.ShopifyInstallResponse(success=True, shop=shop_domain)
