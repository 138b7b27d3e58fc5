"""
BlockDispatcher — resolve, normalise, execute, translate errors.

A dispatch moves through Received → Resolved → Validated → Executed and
ends Succeeded or Failed.  Nothing is kept between dispatches; every call
is independently retryable by the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

import httpx
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from blocks.registry import BlockRegistry, ResolvedOperation
from blocks.strategies import (
    BlockInputs,
    Credentials,
    NativeStrategy,
    TemplatedStrategy,
)
from utils.errors import AuthError, ClientInputError, RelayError, UpstreamError

logger = logging.getLogger(__name__)

# canonical name → accepted spellings, first match wins
CREDENTIAL_ALIASES: Dict[str, tuple] = {
    "client_id": ("client_id", "clientId"),
    "client_secret": ("client_secret", "clientSecret", "secretId", "secret_id"),
    "access_token": ("access_token", "accessToken"),
    "refresh_token": ("refresh_token", "refreshToken"),
    "expires_at": ("expires_at", "expiresAt", "expiry_date"),
    "token_type": ("token_type", "tokenType"),
    "api_key": ("api_key", "apiKey"),
}

# Param keys that carry the record rather than being part of it.
_RECORD_KEYS = ("dataFields", "fields", "values", "valuesArray")

_AUTH_STATUSES = (401, 403)


def normalize_credentials(raw: Optional[Mapping[str, Any]]) -> Credentials:
    """Collapse snake_case / camelCase credential spellings to canonical keys."""
    raw = dict(raw or {})
    aliased = {alias for aliases in CREDENTIAL_ALIASES.values() for alias in aliases}
    normalized: Credentials = {k: v for k, v in raw.items() if k not in aliased}
    for canonical, aliases in CREDENTIAL_ALIASES.items():
        for alias in aliases:
            if raw.get(alias) not in (None, ""):
                normalized[canonical] = raw[alias]
                break
    return normalized


def normalize_inputs(
    params: Optional[Mapping[str, Any]],
    *,
    routing_fields: Iterable[str] = (),
    config: Optional[Mapping[str, Any]] = None,
) -> BlockInputs:
    """
    Build the canonical ``BlockInputs``.

    Data fields come from ``dataFields``, else ``fields``, else the flat
    params without routing inputs.  Row values come from ``values`` /
    ``valuesArray`` when given as a list, else from the data fields' own
    values in insertion order.
    """
    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        raise ClientInputError("params must be an object", code="invalid-input")

    data_fields = params.get("dataFields")
    if not isinstance(data_fields, Mapping):
        data_fields = params.get("fields")
    if not isinstance(data_fields, Mapping):
        excluded = set(routing_fields) | set(_RECORD_KEYS)
        data_fields = {k: v for k, v in params.items() if k not in excluded}

    values = params.get("values")
    if not isinstance(values, list):
        values = params.get("valuesArray")
    if not isinstance(values, list):
        values = list(data_fields.values())

    return BlockInputs(
        params=dict(params),
        data_fields=dict(data_fields),
        values=list(values),
        config=config or {},
    )


def translate_error(exc: Exception) -> RelayError:
    """Map a failure raised while executing a strategy onto the taxonomy."""
    if isinstance(exc, RelayError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        details = exc.response.text
        if status in _AUTH_STATUSES:
            return AuthError(
                "upstream-unauthorized",
                "Provider rejected the credentials",
                details=details,
                requires_reauth=True,
            )
        return UpstreamError(f"Provider returned HTTP {status}", details=details)
    if isinstance(exc, HttpError):
        status = exc.resp.status
        details = getattr(exc, "reason", None) or str(exc)
        if status in _AUTH_STATUSES:
            return AuthError(
                "upstream-unauthorized",
                "Provider rejected the credentials",
                details=details,
                requires_reauth=True,
            )
        return UpstreamError(f"Provider returned HTTP {status}", details=details)
    if isinstance(exc, RefreshError):
        return AuthError(
            "upstream-unauthorized",
            "Provider rejected the credentials",
            details=str(exc),
            requires_reauth=True,
        )
    if isinstance(exc, httpx.RequestError):
        return UpstreamError("Provider unreachable", details=str(exc))
    return UpstreamError("Block execution failed", code="execution-failed", details=str(exc))


class BlockDispatcher:
    def __init__(self, registry: BlockRegistry, client: httpx.AsyncClient) -> None:
        self.registry = registry
        self._client = client

    def resolve(self, block_id: str, operation: str) -> ResolvedOperation:
        return self.registry.resolve(block_id, operation)

    async def dispatch(
        self,
        block_id: str,
        operation: str,
        params: Optional[Mapping[str, Any]],
        credentials: Optional[Mapping[str, Any]],
    ) -> Any:
        """
        Run ``operation`` of ``block_id``.

        Raises
        ------
        RegistryError, ClientInputError, AuthError, UpstreamError
        """
        resolved = self.resolve(block_id, operation)
        return await self.execute(resolved, params, normalize_credentials(credentials))

    async def execute(
        self,
        resolved: ResolvedOperation,
        params: Optional[Mapping[str, Any]],
        credentials: Credentials,
    ) -> Any:
        strategy = resolved.strategy
        inputs = normalize_inputs(
            params, routing_fields=strategy.input_fields, config=resolved.block.config
        )
        label = f"{resolved.block.block_id}/{resolved.operation}"
        try:
            if isinstance(strategy, NativeStrategy):
                result = await strategy.execute(credentials, inputs)
            elif isinstance(strategy, TemplatedStrategy):
                result = await self._execute_templated(strategy, inputs, resolved.block.config, credentials)
            else:
                raise TypeError(f"Unsupported strategy type {type(strategy).__name__}")
        except RelayError as exc:
            logger.info("Dispatch %s failed: %s", label, exc.code)
            raise
        except Exception as exc:
            error = translate_error(exc)
            if error.code == "execution-failed":
                logger.exception("Dispatch %s raised unexpectedly", label)
            else:
                logger.warning("Dispatch %s failed: %s", label, error.message)
            raise error from exc

        logger.debug("Dispatch %s succeeded", label)
        return result

    async def _execute_templated(
        self,
        strategy: TemplatedStrategy,
        inputs: BlockInputs,
        config: Mapping[str, Any],
        credentials: Credentials,
    ) -> Any:
        missing = strategy.missing_fields(inputs.params)
        if missing:
            raise ClientInputError(
                "Missing required fields",
                code="missing-fields",
                details=", ".join(missing),
            )

        url = strategy.build_url(inputs, config)
        headers = strategy.build_headers(credentials)
        request_kwargs: Dict[str, Any] = {"headers": headers}
        if strategy.build_payload is not None:
            request_kwargs["json"] = strategy.build_payload(inputs)

        response = await self._client.request(strategy.method, url, **request_kwargs)
        response.raise_for_status()

        out: Any = response.json() if response.content else None
        if strategy.response_field and isinstance(out, Mapping):
            out = out.get(strategy.response_field)
        if strategy.transform is not None:
            out = strategy.transform(out)
        return out
