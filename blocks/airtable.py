"""
airtable-crud — Airtable records via declarative REST strategies.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from blocks.registry import BlockDefinition
from blocks.strategies import BlockInputs, Credentials, TemplatedStrategy
from config.settings import Settings
from utils.errors import ClientInputError

BLOCK_ID = "airtable-crud"


def _table_url(inputs: BlockInputs, config: Mapping[str, Any]) -> str:
    return f"{config['base_url']}/{inputs.get('baseId')}/{inputs.get('tableName')}"


def _record_url(inputs: BlockInputs, config: Mapping[str, Any]) -> str:
    return f"{_table_url(inputs, config)}/{inputs.get('recordId')}"


def _auth_headers(credentials: Credentials) -> Dict[str, str]:
    api_key = credentials.get("api_key")
    if not api_key:
        raise ClientInputError("Missing Airtable apiKey credential", code="credentials-missing")
    return {"Authorization": f"Bearer {api_key}"}


def _json_headers(credentials: Credentials) -> Dict[str, str]:
    return {**_auth_headers(credentials), "Content-Type": "application/json"}


def _fields_payload(inputs: BlockInputs) -> Dict[str, Any]:
    return {"fields": dict(inputs.data_fields)}


def build_block(settings: Settings) -> BlockDefinition:
    return BlockDefinition(
        block_id=BLOCK_ID,
        config={"base_url": settings.airtable_base_url.rstrip("/")},
        operations={
            "fetch": TemplatedStrategy(
                method="GET",
                build_url=_table_url,
                build_headers=_auth_headers,
                required_fields=("baseId", "tableName"),
                response_field="records",
            ),
            "create": TemplatedStrategy(
                method="POST",
                build_url=_table_url,
                build_headers=_json_headers,
                build_payload=_fields_payload,
                required_fields=("baseId", "tableName"),
            ),
            "update": TemplatedStrategy(
                method="PATCH",
                build_url=_record_url,
                build_headers=_json_headers,
                build_payload=_fields_payload,
                required_fields=("baseId", "tableName", "recordId"),
            ),
            "delete": TemplatedStrategy(
                method="DELETE",
                build_url=_record_url,
                build_headers=_auth_headers,
                required_fields=("baseId", "tableName", "recordId"),
            ),
        },
    )
