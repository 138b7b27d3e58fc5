"""
gmail_search_emails — search the mailbox and return message metadata.

A search is two steps against the Gmail API: list the matching message
ids, then fetch each message's metadata headers and snippet.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from blocks.google_api import build_service
from blocks.registry import BlockDefinition
from blocks.strategies import BlockInputs, Credentials, NativeStrategy
from config.settings import Settings
from utils.errors import ClientInputError

logger = logging.getLogger(__name__)

BLOCK_ID = "gmail_search_emails"
METADATA_HEADERS = ["From", "Subject", "Date"]


def _parse_metadata(detail: Dict[str, Any]) -> Dict[str, str]:
    headers = {
        h["name"]: h["value"]
        for h in detail.get("payload", {}).get("headers", [])
        if h.get("name") in METADATA_HEADERS
    }
    headers["Snippet"] = detail.get("snippet", "")
    return headers


def _search(service: Any, query: str, max_results: int) -> List[Dict[str, Any]]:
    listing = (
        service.users()
        .messages()
        .list(userId="me", q=query, maxResults=max_results)
        .execute()
    )
    records = []
    for msg in listing.get("messages", []) or []:
        detail = (
            service.users()
            .messages()
            .get(
                userId="me",
                id=msg["id"],
                format="metadata",
                metadataHeaders=METADATA_HEADERS,
            )
            .execute()
        )
        records.append({"id": msg["id"], "fields": _parse_metadata(detail)})
    return records


async def search_emails(credentials: Credentials, inputs: BlockInputs) -> Dict[str, Any]:
    query = inputs.get("query") or ""
    try:
        max_results = int(inputs.get("maxResults") or inputs.config.get("max_results", 10))
    except (TypeError, ValueError):
        raise ClientInputError("maxResults must be an integer", code="invalid-input")

    service = await build_service(
        "gmail", "v1", credentials, timeout=inputs.config.get("timeout", 30.0)
    )
    records = await asyncio.to_thread(_search, service, query, max_results)
    logger.debug("Gmail search returned %d messages", len(records))
    return {"records": records}


def build_block(settings: Settings) -> BlockDefinition:
    return BlockDefinition(
        block_id=BLOCK_ID,
        requires_session=True,
        config={
            "max_results": settings.gmail_max_results,
            "timeout": settings.http_timeout_seconds,
        },
        operations={
            "fetch": NativeStrategy(
                execute=search_emails,
                method="POST",
                input_fields=("query", "maxResults"),
            ),
        },
    )
