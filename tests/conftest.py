"""
Shared fixtures: settings without .env, an in-memory store, and an
httpx transport that records every outbound request.
"""

from __future__ import annotations

import json
from typing import Callable, Dict, List, Tuple, Union
from urllib.parse import parse_qs

import httpx
import pytest

from config.settings import Settings
from connectors.store import InMemoryCredentialStore

Handler = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]

TOKEN_URL = "https://oauth2.googleapis.com/token"


class RecordingTransport(httpx.MockTransport):
    """
    Routes requests by ``(METHOD, url-without-query)``.  Unrouted requests
    get a 599 so a test that expects no network call fails loudly.
    """

    def __init__(self, routes: Dict[Tuple[str, str], Handler] | None = None) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = dict(routes or {})
        self.requests: List[httpx.Request] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?", 1)[0])
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(599, json={"error": f"unrouted {key}"})
        if isinstance(handler, httpx.Response):
            return handler
        return handler(request)

    def calls_to(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url).split("?", 1)[0] == url]


def form_body(request: httpx.Request) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def json_body(request: httpx.Request):
    return json.loads(request.content.decode()) if request.content else None


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        MY_SPREADSHEET_ID="sheet-123",
        credential_store_backend="memory",
    )


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def http_client(transport: RecordingTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport)
