"""
Token manager — exchange / refresh / store per-user OAuth credentials.

This is the single place that talks to the provider's token endpoint and
the only writer of refreshed bundles, so every caller that refreshes also
persists.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from config.settings import Settings
from connectors.base import BaseOAuthProvider
from connectors.models import CredentialBundle, parse_expires_at
from connectors.store import CredentialStore
from utils.errors import AuthError, UpstreamError

logger = logging.getLogger(__name__)


def _error_details(exc: httpx.HTTPStatusError) -> str:
    try:
        body = exc.response.json()
    except ValueError:
        return exc.response.text or str(exc)
    if isinstance(body, dict):
        return str(body.get("error_description") or body.get("error") or body)
    return str(body)


class TokenManager:
    """Owns the token lifecycle against one OAuth provider and one store."""

    def __init__(
        self,
        provider: BaseOAuthProvider,
        store: CredentialStore,
        settings: Settings,
    ) -> None:
        self.provider = provider
        self.store = store
        self._default_lifetime = settings.default_token_lifetime_seconds

    def _expiry_from(self, token_data: Dict[str, Any]) -> datetime:
        """
        Absolute expiry from a token response.  Google's client libraries
        report ``expiry_date`` (epoch ms); the raw endpoint reports
        ``expires_in`` (seconds).
        """
        if token_data.get("expiry_date"):
            return parse_expires_at(token_data["expiry_date"])
        lifetime = token_data.get("expires_in")
        if lifetime is None:
            lifetime = self._default_lifetime
        return datetime.now(timezone.utc) + timedelta(seconds=int(lifetime))

    async def exchange_code(
        self,
        user_key: str,
        code: str,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: Optional[str] = None,
    ) -> CredentialBundle:
        """
        Authorization-code exchange.  Creates the user's bundle and stores it.

        Raises
        ------
        UpstreamError
            The provider rejected the code or could not be reached.
        """
        try:
            token_data = await self.provider.exchange_code(
                code,
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri,
            )
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Code exchange rejected for user_key=%s (HTTP %s)",
                user_key,
                exc.response.status_code,
            )
            raise UpstreamError(
                "OAuth exchange failed", code="exchange-failed", details=_error_details(exc)
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamError(
                "OAuth exchange failed", code="exchange-failed", details=str(exc)
            ) from exc

        if not token_data.get("access_token"):
            logger.warning("Code exchange for user_key=%s returned no access token", user_key)
            raise UpstreamError(
                "OAuth exchange failed",
                code="exchange-failed",
                details="Token response did not include an access_token",
            )

        bundle = CredentialBundle(
            client_id=client_id,
            client_secret=client_secret,
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_at=self._expiry_from(token_data),
            token_type=token_data.get("token_type") or "Bearer",
        )
        await self.store.set(user_key, bundle)
        logger.info("Stored new credentials for user_key=%s", user_key)
        return bundle

    async def refresh(self, user_key: str, bundle: CredentialBundle) -> CredentialBundle:
        """
        Obtain a fresh access token for ``bundle`` and persist the result.

        The refresh token is only replaced when the provider rotates it.

        Raises
        ------
        AuthError (requires_reauth)
            No refresh token, or the provider rejected it.
        UpstreamError
            The token endpoint could not be reached (retryable).
        """
        if not bundle.refresh_token:
            raise AuthError(
                "token-expired",
                "Access token expired and no refresh token is available",
                requires_reauth=True,
            )
        if not bundle.client_id or not bundle.client_secret:
            raise AuthError("credentials-missing", "Missing client credentials")

        try:
            token_data = await self.provider.refresh_access_token(
                bundle.refresh_token,
                client_id=bundle.client_id,
                client_secret=bundle.client_secret,
            )
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Token refresh rejected for user_key=%s (HTTP %s)",
                user_key,
                exc.response.status_code,
            )
            raise AuthError(
                "refresh-failed",
                "Token refresh failed",
                details=_error_details(exc),
                requires_reauth=True,
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("Token endpoint unreachable for user_key=%s: %s", user_key, exc)
            raise UpstreamError(
                "Token endpoint unreachable", code="refresh-unavailable", details=str(exc)
            ) from exc

        if not token_data.get("access_token"):
            logger.warning("Token refresh for user_key=%s returned no access token", user_key)
            raise AuthError(
                "refresh-failed",
                "Token refresh failed",
                details="Token response did not include an access_token",
                requires_reauth=True,
            )

        refreshed = bundle.model_copy(
            update={
                "access_token": token_data["access_token"],
                "refresh_token": token_data.get("refresh_token") or bundle.refresh_token,
                "expires_at": self._expiry_from(token_data),
                "token_type": token_data.get("token_type") or bundle.token_type or "Bearer",
            }
        )
        await self.store.set(user_key, refreshed)
        logger.info("Refreshed access token for user_key=%s", user_key)
        return refreshed

    async def revoke(self, user_key: str) -> bool:
        """Drop the stored bundle, revoking its token at the provider first."""
        bundle = await self.store.get(user_key)
        if bundle is None:
            return False
        token = bundle.refresh_token or bundle.access_token
        if token:
            revoked = await self.provider.revoke_token(token)
            if not revoked:
                logger.warning("Provider did not confirm revocation for user_key=%s", user_key)
        await self.store.delete(user_key)
        logger.info("Removed credentials for user_key=%s", user_key)
        return True
