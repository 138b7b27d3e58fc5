"""
Google API service construction for native block strategies.

``googleapiclient`` is synchronous, so both ``build`` and every
``.execute()`` are pushed to a worker thread with ``asyncio.to_thread()``
to keep the event loop free.  A service object is never used from two
threads at once: each native call builds its own and runs its whole
request sequence inside one ``to_thread`` call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import google_auth_httplib2
import httplib2
from google.oauth2.credentials import Credentials as GoogleCredentials
from googleapiclient.discovery import build

from blocks.strategies import Credentials
from utils.errors import AuthError

logger = logging.getLogger(__name__)


def google_credentials(credentials: Credentials) -> GoogleCredentials:
    """
    Wrap the resolved access token for ``googleapiclient``.

    No refresh token is handed over, so the library can never refresh
    behind the credential store's back.
    """
    token = credentials.get("access_token")
    if not token:
        raise AuthError("token-missing", "Missing access token")
    return GoogleCredentials(
        token=token,
        client_id=credentials.get("client_id") or None,
        client_secret=credentials.get("client_secret") or None,
    )


def _build_sync(api: str, version: str, creds: GoogleCredentials, timeout: float) -> Any:
    http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout))
    return build(api, version, http=http, cache_discovery=False)


async def build_service(
    api: str,
    version: str,
    credentials: Credentials,
    *,
    timeout: float = 30.0,
) -> Any:
    """Build a Google API service (discovery happens in a thread)."""
    creds = google_credentials(credentials)
    service = await asyncio.to_thread(_build_sync, api, version, creds, timeout)
    logger.debug("Built Google %s %s service", api, version)
    return service
