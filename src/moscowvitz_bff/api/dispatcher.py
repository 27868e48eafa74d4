"""Table-driven route dispatch.

Each `RouteSpec` declares method, path, authentication, admin and ownership
requirements, the request body contract, and a plain synchronous handler.
`register_routes` installs every spec on a FastAPI app once; the
pre-conditions run in a fixed order before the handler sees the request:
token verification, admin capability, ownership, body validation.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from moscowvitz_bff.api.errors import (
    AppError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
    describe_validation_errors,
)
from moscowvitz_bff.config import BffSettings
from moscowvitz_bff.core.ownership import OwnershipChecker
from moscowvitz_bff.core.session_tokens import SessionTokenSigner
from moscowvitz_bff.core.token_verifier import TokenVerifier
from moscowvitz_bff.domain.models import Identity, ResourceKind
from moscowvitz_bff.domain.ports import ContentStorePort, IdentityProviderPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    """Collaborators shared by every handler of one application instance."""

    settings: BffSettings
    store: ContentStorePort
    identity_provider: IdentityProviderPort
    session_signer: SessionTokenSigner
    verifier: TokenVerifier
    ownership: OwnershipChecker
    started_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class RequestContext:
    """Immutable per-request view handed to handlers."""

    method: str
    path: str
    services: Services
    identity: Identity | None
    path_params: Mapping[str, str]
    query: Mapping[str, str]
    body: BaseModel | None
    owner_id: str | None
    authorization: str | None

    @property
    def caller(self) -> Identity:
        """The verified identity; only valid on routes declared with `auth`."""
        if self.identity is None:
            raise AuthenticationError("Authentication required")
        return self.identity


@dataclass(frozen=True)
class Reply:
    """Handler result rendered into the success envelope."""

    data: Any
    status_code: int = 200
    success: bool = True
    extra: Mapping[str, Any] = field(default_factory=dict)

    def body(self) -> dict[str, Any]:
        return {"success": self.success, "data": self.data, **self.extra}


Handler = Callable[[RequestContext], Reply]


@dataclass(frozen=True)
class RouteSpec:
    """One row of the route table."""

    method: str
    path: str
    handler: Handler
    name: str
    auth: bool = True
    admin_only: bool = False
    ownership: ResourceKind | None = None
    id_param: str = "id"
    body_model: type[BaseModel] | None = None
    tags: tuple[str, ...] = ()


def masked_not_found(identity: Identity, kind: ResourceKind) -> NotFoundError:
    """Missing and foreign rows look identical to non-admin callers."""
    if identity.is_admin:
        message = f"{kind.label} not found"
    else:
        message = f"{kind.label} not found or access denied"
    return NotFoundError(message, code=f"{kind.value.upper()}_NOT_FOUND")


def resolve_scope(services: Services, identity: Identity, kind: ResourceKind, resource_id: str) -> str:
    """Return the owner id to scope the query by, or raise the masked 404."""
    owner_id = services.ownership.resolve_owner(identity, kind, resource_id)
    if owner_id is None:
        raise masked_not_found(identity, kind)
    return owner_id


async def _parse_body(request: Request, model: type[BaseModel] | None) -> BaseModel | None:
    if model is None:
        return None
    raw = await request.body()
    if not raw.strip():
        payload: Any = {}
    else:
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise ValidationError("Malformed JSON body", code="INVALID_JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(describe_validation_errors(exc.errors())) from exc


def _make_endpoint(
    spec: RouteSpec, services: Services
) -> Callable[[Request], Awaitable[JSONResponse]]:
    async def endpoint(request: Request) -> JSONResponse:
        authorization = request.headers.get("authorization")
        identity: Identity | None = None
        if spec.auth:
            outcome = await run_in_threadpool(services.verifier.verify, authorization)
            if outcome.identity is None:
                raise AuthenticationError(
                    outcome.failure_message, code=outcome.failure_code or "TOKEN_INVALID"
                )
            identity = outcome.identity

        if spec.admin_only and (identity is None or not identity.is_admin):
            raise AuthorizationError("Admin access required", code="ADMIN_REQUIRED")

        path_params = {key: str(value) for key, value in request.path_params.items()}
        owner_id: str | None = None
        if spec.ownership is not None and identity is not None:
            resource_id = path_params.get(spec.id_param, "")
            if not resource_id:
                raise ValidationError("Resource ID required", code="RESOURCE_ID_REQUIRED")
            owner_id = await run_in_threadpool(
                resolve_scope, services, identity, spec.ownership, resource_id
            )

        body = await _parse_body(request, spec.body_model)
        context = RequestContext(
            method=request.method,
            path=request.url.path,
            services=services,
            identity=identity,
            path_params=path_params,
            query=dict(request.query_params),
            body=body,
            owner_id=owner_id,
            authorization=authorization,
        )
        try:
            reply = await run_in_threadpool(spec.handler, context)
        except AppError:
            raise
        except Exception as exc:
            logger.exception("route.unhandled name=%s", spec.name)
            raise AppError("Internal server error", code="INTERNAL_ERROR") from exc
        return JSONResponse(status_code=reply.status_code, content=jsonable_encoder(reply.body()))

    endpoint.__name__ = spec.name
    return endpoint


def register_routes(app: FastAPI, routes: Iterable[RouteSpec], services: Services) -> None:
    """Install every route spec on the app."""
    for spec in routes:
        app.add_api_route(
            spec.path,
            _make_endpoint(spec, services),
            methods=[spec.method],
            name=spec.name,
            tags=list(spec.tags),
        )
