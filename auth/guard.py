"""
AuthGuard — pre-request token validation with transparent refresh.

For a session-backed request the guard merges what the caller sent with
what the store holds, decides whether the access token is stale, refreshes
it through the ``TokenManager`` when it is, and hands back the effective
bundle.  Precedence is always request over store:

  • access token      — request wins over store
  • refresh token     — request wins over store
  • client id/secret  — request wins over store
  • expires_at        — a request value overrides the stored one for this
                        check only; it is never written back unless a
                        refresh happens, in which case the refreshed bundle
                        replaces the stored state entirely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from config.settings import Settings
from connectors.models import CredentialBundle
from connectors.store import CredentialStore
from connectors.token_manager import TokenManager
from utils.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass
class SuppliedCredentials:
    """Credential fields the caller sent with one request (all optional)."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: Optional[str] = None


@dataclass
class GuardResult:
    bundle: CredentialBundle
    refreshed: bool = False
    # set only when the provider issued a new refresh token
    rotated_refresh_token: Optional[str] = None


class AuthGuard:
    def __init__(
        self,
        token_manager: TokenManager,
        store: CredentialStore,
        settings: Settings,
    ) -> None:
        self._tokens = token_manager
        self._store = store
        self._buffer_seconds = settings.token_refresh_buffer_seconds
        self._refresh_on_missing_expiry = settings.refresh_on_missing_expiry

    def needs_refresh(self, bundle: CredentialBundle, *, now: Optional[datetime] = None) -> bool:
        if bundle.expires_at is None:
            if not self._refresh_on_missing_expiry:
                return False
            if not bundle.refresh_token:
                logger.warning(
                    "Token has no expiry and no refresh token; using it as-is"
                )
                return False
            return True
        return bundle.is_expired(self._buffer_seconds, now=now)

    async def authorize(self, user_key: str, supplied: SuppliedCredentials) -> GuardResult:
        """
        Resolve the effective bundle for ``user_key``, refreshing if stale.

        Raises
        ------
        AuthError
            ``credentials-missing``, ``token-missing``, ``token-expired`` or
            ``refresh-failed``.
        UpstreamError
            The token endpoint was unreachable during refresh.
        """
        stored = await self._store.get(user_key) or CredentialBundle()

        client_id = supplied.client_id or stored.client_id
        client_secret = supplied.client_secret or stored.client_secret
        if not client_id or not client_secret:
            raise AuthError("credentials-missing", "Missing client credentials for session")

        access_token = supplied.access_token or stored.access_token
        if not access_token:
            raise AuthError("token-missing", "Missing access token")

        effective = CredentialBundle(
            client_id=client_id,
            client_secret=client_secret,
            access_token=access_token,
            refresh_token=supplied.refresh_token or stored.refresh_token,
            expires_at=supplied.expires_at if supplied.expires_at is not None else stored.expires_at,
            token_type=supplied.token_type or stored.token_type,
        )

        if not self.needs_refresh(effective):
            return GuardResult(bundle=effective)

        logger.info("Access token stale for user_key=%s, refreshing", user_key)
        refreshed = await self._tokens.refresh(user_key, effective)
        rotated = refreshed.refresh_token if refreshed.refresh_token != effective.refresh_token else None
        return GuardResult(bundle=refreshed, refreshed=True, rotated_refresh_token=rotated)
