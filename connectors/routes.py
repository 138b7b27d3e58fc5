"""
OAuth routes — code exchange, explicit refresh, session removal.

Route prefix: /oauth
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from api.dependencies import get_credential_store, get_settings, get_token_manager
from auth.dependencies import resolve_user_key
from config.settings import Settings
from connectors.models import CredentialBundle
from connectors.store import CredentialStore
from connectors.token_manager import TokenManager
from utils.errors import ClientInputError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


class OAuthCallbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    redirect_uri: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("redirect_uri", "redirectUri")
    )
    client_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_id", "clientId")
    )
    client_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_secret", "clientSecret")
    )
    user_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("user_key", "userKey")
    )


class OAuthRefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("refresh_token", "refreshToken")
    )
    client_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_id", "clientId")
    )
    client_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_secret", "clientSecret")
    )
    user_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("user_key", "userKey")
    )


@router.post("/callback")
async def oauth_callback(
    body: OAuthCallbackRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    tokens: TokenManager = Depends(get_token_manager),
) -> Dict[str, Any]:
    """Exchange an authorization code, store the bundle, return its tokens."""
    if not body.code or not body.client_id or not body.client_secret:
        raise ClientInputError(
            "Missing authorization code or credentials", code="missing-fields"
        )
    user_key = resolve_user_key(request, settings, body.user_key)
    bundle = await tokens.exchange_code(
        user_key,
        body.code,
        client_id=body.client_id,
        client_secret=body.client_secret,
        redirect_uri=body.redirect_uri,
    )
    return bundle.to_token_response()


@router.post("/refresh")
async def oauth_refresh(
    body: OAuthRefreshRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    tokens: TokenManager = Depends(get_token_manager),
    store: CredentialStore = Depends(get_credential_store),
) -> Dict[str, Any]:
    """
    Refresh explicitly.  Missing body fields fall back to the stored
    bundle, so a stateless caller sends everything and a session caller
    may send nothing but its user key.
    """
    user_key = resolve_user_key(request, settings, body.user_key)
    stored = await store.get(user_key) or CredentialBundle()

    refresh_token = body.refresh_token or stored.refresh_token
    if not refresh_token:
        raise ClientInputError("Missing refresh_token", code="missing-fields")

    client_id = body.client_id or stored.client_id
    client_secret = body.client_secret or stored.client_secret
    if not client_id or not client_secret:
        raise ClientInputError("Missing client credentials", code="missing-fields")

    bundle = stored.model_copy(
        update={
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
    )
    refreshed = await tokens.refresh(user_key, bundle)
    return refreshed.to_token_response()


@router.delete("/session")
async def oauth_disconnect(
    request: Request,
    user_key: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    tokens: TokenManager = Depends(get_token_manager),
) -> Dict[str, Any]:
    """Revoke and forget the stored bundle for a user key."""
    key = resolve_user_key(request, settings, user_key)
    removed = await tokens.revoke(key)
    return {"status": "disconnected" if removed else "not_found", "user_key": key}
