"""
FastAPI dependencies (shared across routes).

Services are built once in ``main.create_app`` and parked on
``app.state``; these accessors hand them to route handlers.
"""

from __future__ import annotations

from fastapi import Request

from auth.guard import AuthGuard
from blocks.dispatcher import BlockDispatcher
from config.settings import Settings
from connectors.store import CredentialStore
from connectors.token_manager import TokenManager


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


def get_auth_guard(request: Request) -> AuthGuard:
    return request.app.state.auth_guard


def get_dispatcher(request: Request) -> BlockDispatcher:
    return request.app.state.dispatcher
