"""
BaseOAuthProvider — abstract interface for OAuth2 token endpoints.

Client credentials are passed on every call rather than read from config,
since the relay serves several registered OAuth applications at once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class BaseOAuthProvider(ABC):
    """Abstract base for all OAuth2 providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug: 'google'."""
        ...

    @abstractmethod
    async def exchange_code(
        self,
        code: str,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        Returns
        -------
        dict with keys:
            access_token, refresh_token (optional), expires_in (optional),
            token_type (optional)

        Raises
        ------
        httpx.HTTPStatusError
            The provider rejected the code.
        httpx.RequestError
            The provider could not be reached.
        """
        ...

    @abstractmethod
    async def refresh_access_token(
        self,
        refresh_token: str,
        *,
        client_id: str,
        client_secret: str,
    ) -> Dict[str, Any]:
        """
        Refresh an expired access token.

        Returns
        -------
        dict with keys: access_token, expires_in, (optional) refresh_token,
        (optional) token_type
        """
        ...

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke the token at the provider (optional).
        Returns True on success, False if provider doesn't support revocation.
        """
        return False
