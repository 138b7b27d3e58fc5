"""
Block routes — generic execution endpoint and registry listing.

Route prefix: /block
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from api.dependencies import get_auth_guard, get_dispatcher, get_settings
from api.middleware import error_response
from auth.dependencies import (
    expose_refreshed_token,
    refreshed_token_headers,
    resolve_user_key,
    supplied_credentials,
)
from auth.guard import AuthGuard, GuardResult
from blocks.dispatcher import BlockDispatcher, normalize_credentials
from config.settings import Settings
from utils.errors import RelayError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["blocks"])


class BlockExecuteRequest(BaseModel):
    """
    {
      "blockId": "airtable-crud",
      "operation": "fetch",
      "params": {...input fields...},
      "credentials": {...}
    }
    """

    model_config = ConfigDict(populate_by_name=True)

    block_id: str = Field(validation_alias=AliasChoices("blockId", "block_id"))
    operation: str
    params: Dict[str, Any] = Field(default_factory=dict)
    credentials: Dict[str, Any] = Field(default_factory=dict)
    user_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("userKey", "user_key")
    )


@router.get("/registry")
async def list_blocks(
    dispatcher: BlockDispatcher = Depends(get_dispatcher),
) -> List[Dict[str, Any]]:
    return dispatcher.registry.list_blocks()


@router.post("/execute")
async def execute_block(
    body: BlockExecuteRequest,
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    dispatcher: BlockDispatcher = Depends(get_dispatcher),
    guard: AuthGuard = Depends(get_auth_guard),
) -> Any:
    resolved = dispatcher.resolve(body.block_id, body.operation)
    credentials = normalize_credentials(body.credentials)

    guard_result: Optional[GuardResult] = None
    if resolved.block.requires_session:
        user_key = resolve_user_key(request, settings, body.user_key)
        guard_result = await guard.authorize(
            user_key, supplied_credentials(request, settings, credentials)
        )
        bundle = guard_result.bundle
        credentials.update(
            client_id=bundle.client_id,
            client_secret=bundle.client_secret,
            access_token=bundle.access_token,
            token_type=bundle.token_type,
        )

    try:
        payload = await dispatcher.execute(resolved, body.params, credentials)
    except RelayError as exc:
        # A refresh already happened; the caller still needs the new token.
        if guard_result is not None and guard_result.refreshed:
            return error_response(exc, headers=refreshed_token_headers(guard_result, settings))
        raise

    if guard_result is not None:
        expose_refreshed_token(response, guard_result, settings)
    return payload
