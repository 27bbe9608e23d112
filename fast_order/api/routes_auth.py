from __future__ import annotations

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from fast_order.core import logging as logging_utils
from fast_order.services.credentials import CredentialStore, get_credential_store
from fast_order.services.qbo_client import (
    QuickBooksOAuthError,
    QuickBooksService,
    get_quickbooks_service,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("fast_order.api.auth")

OAUTH_STATE = "fast-order"


@router.get("/connect", status_code=status.HTTP_302_FOUND)
async def connect_oauth(
    qbo_service: QuickBooksService = Depends(get_quickbooks_service),
) -> RedirectResponse:
    auth_url = qbo_service.build_authorization_url(state=OAUTH_STATE)
    logger.info(
        "oauth_connect_redirect",
        extra={"environment": qbo_service.environment},
    )
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/callback", response_class=HTMLResponse)
async def oauth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    realmId: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
    store: CredentialStore = Depends(get_credential_store),
    qbo_service: QuickBooksService = Depends(get_quickbooks_service),
):
    if error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"OAuth error: {error_description or error}",
        )
    if not code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing authorization code",
        )
    realm_id = realmId or store.active_realm_id
    if not realm_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing realmId and no QB_REALM_ID configured",
        )
    if state != OAUTH_STATE:
        logger.warning("oauth_state_mismatch", extra={"state": state})
    logging_utils.set_request_context(realm_id=realm_id)

    try:
        token_bundle = await qbo_service.exchange_authorization_code(code=code, realm_id=realm_id)
    except QuickBooksOAuthError as exc:
        logger.error(
            "oauth_exchange_failed",
            extra={
                "realm_id": realm_id,
                "environment": qbo_service.environment,
                "status": exc.status_code,
            },
        )
        return PlainTextResponse(
            f"OAuth error: {exc}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    store.put(realm_id, token_bundle)
    logger.info(
        "oauth_callback_completed",
        extra={
            "realm_id": realm_id,
            "environment": qbo_service.environment,
            "scopes": token_bundle.scopes,
        },
    )
    return HTMLResponse(_render_connected_page(realm_id))


def _render_connected_page(realm_id: str) -> str:
    return (
        "<h3>Connected to QuickBooks ✅</h3>\n"
        f"<p>Realm ID: {html.escape(realm_id)}</p>\n"
        '<p><a href="/ingest">Go to the ingest order form</a></p>'
    )
