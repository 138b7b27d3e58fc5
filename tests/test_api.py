"""
HTTP-level tests: OAuth routes, block execution and the error envelope.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from connectors.models import CredentialBundle
from main import create_app

from tests.conftest import TOKEN_URL, form_body, json_body


@pytest.fixture
def app(settings, store, http_client):
    return create_app(settings, credential_store=store, http_client=http_client)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def _token_endpoint(transport, *, code_lifetime=3600, refresh_lifetime=7200):
    issued = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        form = form_body(request)
        if form["grant_type"] == "authorization_code":
            if form["code"] != "good-code":
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": "access-0",
                    "refresh_token": "refresh-0",
                    "expires_in": code_lifetime,
                    "token_type": "Bearer",
                },
            )
        if form["refresh_token"] != "refresh-0":
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "revoked"})
        issued["count"] += 1
        return httpx.Response(
            200, json={"access_token": f"access-{issued['count']}", "expires_in": refresh_lifetime}
        )

    transport.routes[("POST", TOKEN_URL)] = handler
    return issued


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert datetime.fromisoformat(body["timestamp"])
        assert "X-Process-Time" in resp.headers


class TestOAuthRoutes:
    def test_callback_then_refresh(self, client, transport, store):
        _token_endpoint(transport)

        first = client.post(
            "/oauth/callback",
            json={
                "code": "good-code",
                "redirect_uri": "http://localhost/cb",
                "client_id": "cid",
                "client_secret": "cs",
            },
        )
        assert first.status_code == 200
        tokens = first.json()
        assert set(tokens) == {"access_token", "refresh_token", "expires_at", "token_type"}
        assert all(tokens[k] for k in tokens)
        assert "client_secret" not in tokens

        second = client.post(
            "/oauth/refresh",
            json={"refresh_token": tokens["refresh_token"], "client_id": "cid", "client_secret": "cs"},
        )
        assert second.status_code == 200
        refreshed = second.json()
        assert refreshed["access_token"] != tokens["access_token"]
        assert refreshed["expires_at"] > tokens["expires_at"]
        assert refreshed["refresh_token"] == "refresh-0"

    def test_refresh_falls_back_to_stored_bundle(self, client, transport):
        _token_endpoint(transport)
        client.post(
            "/oauth/callback",
            json={"code": "good-code", "client_id": "cid", "client_secret": "cs"},
            headers={"X-User-Key": "alice"},
        )

        resp = client.post("/oauth/refresh", json={"user_key": "alice"})

        assert resp.status_code == 200
        assert resp.json()["access_token"] == "access-1"

    def test_callback_missing_fields(self, client, transport):
        resp = client.post("/oauth/callback", json={"code": "good-code"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing authorization code or credentials"
        assert transport.requests == []

    def test_callback_exchange_failure(self, client, transport):
        _token_endpoint(transport)
        resp = client.post(
            "/oauth/callback", json={"code": "bad", "client_id": "cid", "client_secret": "cs"}
        )
        assert resp.status_code == 500
        assert resp.json()["error"] == "OAuth exchange failed"

    def test_refresh_missing_token(self, client, transport):
        resp = client.post("/oauth/refresh", json={"client_id": "cid", "client_secret": "cs"})
        assert resp.status_code == 400
        assert transport.requests == []

    def test_refresh_rejected_requires_reauth(self, client, transport):
        _token_endpoint(transport)
        resp = client.post(
            "/oauth/refresh",
            json={"refresh_token": "revoked", "client_id": "cid", "client_secret": "cs"},
        )
        assert resp.status_code == 401
        body = resp.json()
        assert body["requiresReauth"] is True
        assert body["code"] == "refresh-failed"
        assert body["details"] == "revoked"

    def test_disconnect(self, client, transport, store):
        _token_endpoint(transport)
        transport.routes[("POST", "https://oauth2.googleapis.com/revoke")] = httpx.Response(200)
        client.post("/oauth/callback", json={"code": "good-code", "client_id": "cid", "client_secret": "cs"})

        resp = client.delete("/oauth/session")
        assert resp.json()["status"] == "disconnected"
        assert client.delete("/oauth/session").json()["status"] == "not_found"


class TestBlockExecute:
    def test_airtable_create(self, client, transport):
        transport.routes[("POST", "https://api.airtable.com/v0/b1/t1")] = httpx.Response(
            200, json={"id": "rec1"}
        )
        resp = client.post(
            "/block/execute",
            json={
                "blockId": "airtable-crud",
                "operation": "create",
                "params": {"baseId": "b1", "tableName": "t1", "dataFields": {"name": "x"}},
                "credentials": {"apiKey": "k"},
            },
        )
        assert resp.status_code == 200
        assert resp.json() == {"id": "rec1"}
        assert len(transport.requests) == 1
        assert transport.requests[0].headers["Authorization"] == "Bearer k"
        assert json_body(transport.requests[0]) == {"fields": {"name": "x"}}

    @pytest.mark.parametrize(
        "payload, code",
        [
            ({"blockId": "nope", "operation": "fetch"}, "unknown-block"),
            ({"blockId": "airtable-crud", "operation": "nope"}, "unknown-operation"),
            (
                {"blockId": "airtable-crud", "operation": "fetch", "params": {"baseId": "b1"}, "credentials": {"apiKey": "k"}},
                "missing-fields",
            ),
            ({"operation": "fetch"}, "invalid-input"),
        ],
    )
    def test_client_errors_are_400_without_network(self, client, transport, payload, code):
        resp = client.post("/block/execute", json=payload)
        assert resp.status_code == 400
        assert resp.json()["code"] == code
        assert "error" in resp.json()
        assert transport.requests == []

    def test_upstream_failure_is_500(self, client, transport):
        transport.routes[("GET", "https://api.airtable.com/v0/b1/t1")] = httpx.Response(500, text="boom")
        resp = client.post(
            "/block/execute",
            json={
                "blockId": "airtable-crud",
                "operation": "fetch",
                "params": {"baseId": "b1", "tableName": "t1"},
                "credentials": {"apiKey": "k"},
            },
        )
        assert resp.status_code == 500
        assert resp.json()["details"] == "boom"
        assert "requiresReauth" not in resp.json()

    def test_session_block_without_credentials(self, client):
        resp = client.post(
            "/block/execute", json={"blockId": "google-sheets-crud", "operation": "fetch"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "credentials-missing"

    def test_session_block_missing_token(self, client):
        resp = client.post(
            "/block/execute",
            json={
                "blockId": "google-sheets-crud",
                "operation": "fetch",
                "credentials": {"client_id": "cid", "client_secret": "cs"},
            },
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "token-missing"

    def test_transparent_refresh_returns_new_token_header(self, app, transport, store, settings):
        _token_endpoint(transport)
        asyncio.run(store.set(
            "default",
            CredentialBundle(
                client_id="cid",
                client_secret="cs",
                access_token="stale",
                refresh_token="refresh-0",
                expires_at=datetime.now(timezone.utc) + timedelta(minutes=2),
            ),
        ))
        service = MagicMock()
        service.spreadsheets.return_value.values.return_value.get.return_value.execute.return_value = {
            "values": [["Alice", "a@x.com"]]
        }

        with patch("blocks.google_sheets.build_service", new=AsyncMock(return_value=service)) as built:
            resp = TestClient(app).post(
                "/block/execute",
                json={"blockId": "google-sheets-crud", "operation": "fetch", "params": {}},
            )

        assert resp.status_code == 200
        assert resp.headers[settings.access_token_header] == "access-1"
        assert resp.json()["data"][0]["fields"]["name"] == "Alice"
        assert built.await_args.args[2]["access_token"] == "access-1"
        assert len(transport.calls_to(TOKEN_URL)) == 1

    def test_bearer_header_is_used_without_refresh(self, client, transport):
        service = MagicMock()
        service.users.return_value.messages.return_value.list.return_value.execute.return_value = {}
        expires = int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp() * 1000)

        with patch("blocks.gmail.build_service", new=AsyncMock(return_value=service)) as built:
            resp = client.post(
                "/block/execute",
                headers={"Authorization": "Bearer header-token"},
                json={
                    "blockId": "gmail_search_emails",
                    "operation": "fetch",
                    "params": {"query": "from:me"},
                    "credentials": {
                        "clientId": "cid",
                        "clientSecret": "cs",
                        "accessToken": "body-token",
                        "expiresAt": expires,
                    },
                },
            )

        assert resp.status_code == 200
        assert resp.json() == {"records": []}
        assert built.await_args.args[2]["access_token"] == "header-token"
        assert "X-Access-Token" not in resp.headers
        assert transport.requests == []

    def test_registry_listing(self, client):
        resp = client.get("/block/registry")
        assert resp.status_code == 200
        assert {b["blockId"] for b in resp.json()} == {
            "airtable-crud",
            "gmail_search_emails",
            "google-sheets-crud",
        }


class TestRefreshHeaders:
    @pytest.fixture
    def sheets_service(self):
        service = MagicMock()
        service.spreadsheets.return_value.values.return_value.get.return_value.execute.return_value = {
            "values": [["Alice", "a@x.com"]]
        }
        with patch("blocks.google_sheets.build_service", new=AsyncMock(return_value=service)) as built:
            yield built

    def test_stateless_caller_refreshes_once(self, client, transport, settings, sheets_service):
        _token_endpoint(transport)
        stale = int((datetime.now(timezone.utc) - timedelta(minutes=1)).timestamp() * 1000)
        credentials = {
            "clientId": "cid",
            "clientSecret": "cs",
            "accessToken": "stale",
            "refreshToken": "refresh-0",
            "expiresAt": stale,
        }

        statuses = []
        for _ in range(3):
            resp = client.post(
                "/block/execute",
                json={"blockId": "google-sheets-crud", "operation": "fetch", "credentials": credentials},
            )
            statuses.append(resp.status_code)
            if settings.access_token_header in resp.headers:
                credentials["accessToken"] = resp.headers[settings.access_token_header]
                credentials["expiresAt"] = int(resp.headers[settings.token_expires_at_header])

        assert statuses == [200, 200, 200]
        assert credentials["accessToken"] == "access-1"
        assert credentials["expiresAt"] > stale
        assert len(transport.calls_to(TOKEN_URL)) == 1

    def test_rotated_refresh_token_is_returned(self, client, transport, settings, sheets_service):
        transport.routes[("POST", TOKEN_URL)] = httpx.Response(
            200, json={"access_token": "access-9", "refresh_token": "refresh-9", "expires_in": 3600}
        )
        resp = client.post(
            "/block/execute",
            json={
                "blockId": "google-sheets-crud",
                "operation": "fetch",
                "credentials": {
                    "clientId": "cid",
                    "clientSecret": "cs",
                    "accessToken": "stale",
                    "refreshToken": "refresh-0",
                    "expiresAt": 0,
                },
            },
        )

        assert resp.status_code == 200
        assert resp.headers[settings.refresh_token_header] == "refresh-9"

    def test_refresh_token_from_header(self, client, transport, settings, sheets_service):
        _token_endpoint(transport)
        expired = int((datetime.now(timezone.utc) - timedelta(hours=1)).timestamp() * 1000)

        resp = client.post(
            "/block/execute",
            headers={settings.refresh_token_header: "refresh-0"},
            json={
                "blockId": "google-sheets-crud",
                "operation": "fetch",
                "credentials": {
                    "clientId": "cid",
                    "clientSecret": "cs",
                    "accessToken": "stale",
                    "expiresAt": expired,
                },
            },
        )

        assert resp.status_code == 200
        assert resp.headers[settings.access_token_header] == "access-1"
        assert form_body(transport.calls_to(TOKEN_URL)[0])["refresh_token"] == "refresh-0"
        assert sheets_service.await_args.args[2]["access_token"] == "access-1"

    def test_failed_dispatch_still_returns_new_token(self, transport, store, settings, http_client):
        _token_endpoint(transport)
        settings = settings.model_copy(update={"default_spreadsheet_id": ""})
        app = create_app(settings, credential_store=store, http_client=http_client)
        asyncio.run(store.set(
            "default",
            CredentialBundle(
                client_id="cid",
                client_secret="cs",
                access_token="stale",
                refresh_token="refresh-0",
                expires_at=datetime.now(timezone.utc) - timedelta(minutes=5),
            ),
        ))

        resp = TestClient(app).post(
            "/block/execute", json={"blockId": "google-sheets-crud", "operation": "fetch"}
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "missing-fields"
        assert resp.headers[settings.access_token_header] == "access-1"
        assert settings.token_expires_at_header in resp.headers
