"""
Block relay — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from api.routes import router as service_router
from auth.guard import AuthGuard
from blocks.catalog import build_registry
from blocks.dispatcher import BlockDispatcher
from blocks.routes import router as block_router
from config.settings import Settings, config
from connectors.base import BaseOAuthProvider
from connectors.encryption import TokenCipher
from connectors.google import GoogleOAuthProvider
from connectors.routes import router as oauth_router
from connectors.store import CredentialStore, InMemoryCredentialStore, SqlCredentialStore
from connectors.token_manager import TokenManager
from database.session import build_session_factory, init_models

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "googleapiclient", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    credential_store: Optional[CredentialStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    oauth_provider: Optional[BaseOAuthProvider] = None,
) -> FastAPI:
    settings = settings or config

    app = FastAPI(
        title="Block Relay",
        version="1.0.0",
        description="OAuth token lifecycle and generic block dispatch for third-party APIs.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            settings.access_token_header,
            settings.refresh_token_header,
            settings.token_expires_at_header,
        ],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Services
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    engine = None
    if credential_store is None:
        if settings.credential_store_backend == "sql":
            engine, session_factory = build_session_factory(settings.database_url)
            credential_store = SqlCredentialStore(
                session_factory, TokenCipher(settings.token_encryption_key)
            )
        else:
            credential_store = InMemoryCredentialStore()

    provider = oauth_provider or GoogleOAuthProvider(client, settings)
    token_manager = TokenManager(provider, credential_store, settings)

    app.state.settings = settings
    app.state.credential_store = credential_store
    app.state.token_manager = token_manager
    app.state.auth_guard = AuthGuard(token_manager, credential_store, settings)
    app.state.dispatcher = BlockDispatcher(build_registry(settings), client)

    # Routes
    app.include_router(service_router)
    app.include_router(oauth_router, prefix="/oauth")
    app.include_router(block_router, prefix="/block")

    @app.on_event("startup")
    async def on_startup():
        if engine is not None:
            logger.info("Initialising SQL credential store…")
            await init_models(engine)
        logger.info(
            "Credential store: %s; token refresh buffer: %ss",
            type(credential_store).__name__,
            settings.token_refresh_buffer_seconds,
        )
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        if owns_client:
            await client.aclose()
        if engine is not None:
            await engine.dispose()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
