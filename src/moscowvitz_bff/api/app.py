"""FastAPI app factory for the world-building BFF."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from moscowvitz_bff.adapters.backend_factory import create_backends
from moscowvitz_bff.api.dispatcher import Services, register_routes
from moscowvitz_bff.api.errors import install_error_handlers
from moscowvitz_bff.api.routes import ROUTE_TABLE
from moscowvitz_bff.config import BffSettings, load_settings, require_session_secret
from moscowvitz_bff.core.ownership import OwnershipChecker
from moscowvitz_bff.core.session_tokens import SessionTokenSigner
from moscowvitz_bff.core.token_verifier import TokenVerifier

logger = logging.getLogger(__name__)


def create_app(
    db_path: Path | None = None,
    *,
    settings: BffSettings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """Create the API application."""
    effective_settings = require_session_secret(settings or load_settings(db_path=db_path))
    backends = create_backends(effective_settings, transport=transport)
    session_signer = SessionTokenSigner(
        secret=effective_settings.jwt_secret,
        ttl_days=effective_settings.session_ttl_days,
    )
    services = Services(
        settings=effective_settings,
        store=backends.store,
        identity_provider=backends.identity_provider,
        session_signer=session_signer,
        verifier=TokenVerifier(
            identity_provider=backends.identity_provider,
            session_signer=session_signer,
            profiles=backends.store,
        ),
        ownership=OwnershipChecker(backends.store),
    )

    app = FastAPI(
        title="Moscowvitz BFF",
        version=effective_settings.version,
        description=(
            "Backend-for-frontend for the world-building workspace: token verification, "
            "ownership-scoped CRUD, and nested world aggregation."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {"name": "system", "description": "Service health and endpoint discovery."},
            {"name": "auth", "description": "Login, signup, logout, and session refresh."},
            {"name": "user", "description": "Dashboard and complete-world read models."},
            {"name": "admin", "description": "Cross-tenant listings for admin callers."},
            {"name": "worlds", "description": "World CRUD."},
            {"name": "chapters", "description": "Chapter CRUD."},
            {"name": "characters", "description": "Character CRUD."},
            {"name": "events", "description": "Event CRUD."},
            {"name": "scenes", "description": "Scene CRUD."},
            {"name": "dialogues", "description": "Dialogue CRUD."},
        ],
        swagger_ui_parameters={
            "displayRequestDuration": True,
            "defaultModelsExpandDepth": -1,
        },
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(effective_settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request method=%s path=%s status=%s duration_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    install_error_handlers(app, include_stack=effective_settings.is_development)
    register_routes(app, ROUTE_TABLE, services)
    app.state.services = services

    logger.info(
        "api.start backend=%s environment=%s routes=%s",
        effective_settings.backend,
        effective_settings.environment,
        len(ROUTE_TABLE),
    )
    return app


app = create_app()
