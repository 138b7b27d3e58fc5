"""
GoogleOAuthProvider — authorization-code exchange and refresh against
Google's OAuth2 token endpoint.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from config.settings import Settings
from connectors.base import BaseOAuthProvider

logger = logging.getLogger(__name__)


class GoogleOAuthProvider(BaseOAuthProvider):
    """OAuth2 token endpoint client for Google APIs (Sheets, Gmail)."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._token_url = settings.google_token_url
        self._revoke_url = settings.google_revoke_url

    @property
    def provider_name(self) -> str:
        return "google"

    async def exchange_code(
        self,
        code: str,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Exchange auth code for tokens."""
        data = {
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "authorization_code",
        }
        if redirect_uri:
            data["redirect_uri"] = redirect_uri
        resp = await self._client.post(self._token_url, data=data)
        resp.raise_for_status()
        return resp.json()

    async def refresh_access_token(
        self,
        refresh_token: str,
        *,
        client_id: str,
        client_secret: str,
    ) -> Dict[str, Any]:
        """Use refresh token to get a new access token."""
        resp = await self._client.post(
            self._token_url,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        resp.raise_for_status()
        return resp.json()

    async def revoke_token(self, token: str) -> bool:
        """Revoke the token at Google."""
        try:
            resp = await self._client.post(self._revoke_url, params={"token": token})
        except httpx.RequestError as exc:
            logger.warning("Token revocation request failed: %s", exc)
            return False
        return resp.status_code == 200
