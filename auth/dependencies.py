"""
Request-side helpers for the AuthGuard.

Pull the caller's credential material out of headers and body:

  • access token   — ``Authorization: Bearer <token>`` header, else body
  • refresh token  — ``X-Refresh-Token`` header, else body
  • user key       — explicit body value, else ``X-User-Key``, else default
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import Request, Response

from auth.guard import GuardResult, SuppliedCredentials
from config.settings import Settings
from connectors.models import parse_expires_at, to_epoch_ms
from utils.errors import ClientInputError


def bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        return token or None
    return None


def resolve_user_key(request: Request, settings: Settings, explicit: Optional[str] = None) -> str:
    return explicit or request.headers.get(settings.user_key_header) or settings.default_user_key


def supplied_credentials(
    request: Request,
    settings: Settings,
    credentials: Mapping[str, Any],
) -> SuppliedCredentials:
    """``credentials`` must already be alias-normalised."""
    try:
        expires_at = parse_expires_at(credentials.get("expires_at"))
    except (TypeError, ValueError, OverflowError):
        raise ClientInputError("expires_at is not a valid timestamp", code="invalid-input")
    return SuppliedCredentials(
        client_id=credentials.get("client_id"),
        client_secret=credentials.get("client_secret"),
        access_token=bearer_token(request) or credentials.get("access_token"),
        refresh_token=request.headers.get(settings.refresh_token_header)
        or credentials.get("refresh_token"),
        expires_at=expires_at,
        token_type=credentials.get("token_type"),
    )


def refreshed_token_headers(result: GuardResult, settings: Settings) -> dict:
    """
    Out-of-band channel for a transparently refreshed token: the new access
    token, its expiry in epoch ms, and the refresh token when it rotated.
    """
    if not result.refreshed:
        return {}
    headers = {settings.access_token_header: result.bundle.access_token}
    expires_ms = to_epoch_ms(result.bundle.expires_at)
    if expires_ms is not None:
        headers[settings.token_expires_at_header] = str(expires_ms)
    if result.rotated_refresh_token:
        headers[settings.refresh_token_header] = result.rotated_refresh_token
    return headers


def expose_refreshed_token(response: Response, result: GuardResult, settings: Settings) -> None:
    for name, value in refreshed_token_headers(result, settings).items():
        response.headers[name] = value
