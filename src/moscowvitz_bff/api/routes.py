"""Route handlers and the route table for the BFF surface."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, cast

import jwt
from pydantic import BaseModel

from moscowvitz_bff.api.contracts import (
    ChapterCreateRequest,
    ChapterUpdateRequest,
    CharacterCreateRequest,
    CharacterUpdateRequest,
    DialogueCreateRequest,
    DialogueUpdateRequest,
    EventCreateRequest,
    EventUpdateRequest,
    LoginRequest,
    RefreshRequest,
    SceneCreateRequest,
    SceneUpdateRequest,
    SignupRequest,
    WorldCreateRequest,
    WorldUpdateRequest,
)
from moscowvitz_bff.api.dispatcher import (
    Handler,
    Reply,
    RequestContext,
    RouteSpec,
    masked_not_found,
    resolve_scope,
)
from moscowvitz_bff.api.errors import (
    AuthenticationError,
    UpstreamError,
    ValidationError,
)
from moscowvitz_bff.core.aggregation import build_dashboard_payload, normalize_world_tree
from moscowvitz_bff.core.token_verifier import extract_bearer_token
from moscowvitz_bff.domain.models import (
    OWNER_COLUMN,
    PARENT_REFERENCES,
    PROFILES_TABLE,
    RESOURCE_TABLES,
    Identity,
    ResourceKind,
    Row,
)
from moscowvitz_bff.domain.ports import (
    DuplicateAccountError,
    IdentityProviderError,
    InvalidCredentialsError,
    StoreError,
)

RECENT_ACTIVITY_LIMIT = 5

CREATE_CONTRACTS: dict[ResourceKind, type[BaseModel]] = {
    ResourceKind.WORLD: WorldCreateRequest,
    ResourceKind.CHAPTER: ChapterCreateRequest,
    ResourceKind.CHARACTER: CharacterCreateRequest,
    ResourceKind.EVENT: EventCreateRequest,
    ResourceKind.SCENE: SceneCreateRequest,
    ResourceKind.DIALOGUE: DialogueCreateRequest,
}
UPDATE_CONTRACTS: dict[ResourceKind, type[BaseModel]] = {
    ResourceKind.WORLD: WorldUpdateRequest,
    ResourceKind.CHAPTER: ChapterUpdateRequest,
    ResourceKind.CHARACTER: CharacterUpdateRequest,
    ResourceKind.EVENT: EventUpdateRequest,
    ResourceKind.SCENE: SceneUpdateRequest,
    ResourceKind.DIALOGUE: DialogueUpdateRequest,
}

# (child column, parent column, kind of the child-column row): when a body
# names both, the child row must link to exactly that parent. A NULL link is
# a mismatch.
CHAIN_CONSISTENCY: dict[ResourceKind, tuple[str, str, ResourceKind]] = {
    ResourceKind.EVENT: ("chapter_id", "world_id", ResourceKind.CHAPTER),
    ResourceKind.SCENE: ("event_id", "chapter_id", ResourceKind.EVENT),
}

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


def _upstream(operation: str, kind_or_scope: str, exc: Exception) -> UpstreamError:
    logger.error("store.failed operation=%s scope=%s error=%s", operation, kind_or_scope, exc)
    return UpstreamError(
        f"Failed to {operation.lower()} {kind_or_scope}",
        code=f"{operation.upper()}_{kind_or_scope.upper().replace(' ', '_')}_ERROR",
    )


def _user_payload(identity: Identity, *, created_at: str | None = None) -> dict[str, Any]:
    return {
        "id": identity.id,
        "email": identity.email,
        "full_name": identity.full_name,
        "role": identity.role,
        "is_admin": identity.is_admin,
        "created_at": created_at,
    }


# -- system -----------------------------------------------------------------


def health(ctx: RequestContext) -> Reply:
    services = ctx.services
    try:
        services.store.ping()
        database = "healthy"
    except StoreError as exc:
        logger.warning("health.database_unhealthy error=%s", exc)
        database = "unhealthy"
    healthy = database == "healthy"
    payload = {
        "status": "healthy" if healthy else "degraded",
        "timestamp": _utc_now(),
        "uptime": round(time.monotonic() - services.started_at, 3),
        "version": services.settings.version,
        "environment": services.settings.environment,
        "services": {"database": database},
    }
    return Reply(data=payload, status_code=200 if healthy else 503, success=healthy)


def api_index(ctx: RequestContext) -> Reply:
    endpoints = [f"{route.method} {route.path}" for route in ROUTE_TABLE]
    return Reply(
        data={
            "name": "Moscowvitz BFF API",
            "version": ctx.services.settings.version,
            "auth": "bearer-token",
            "endpoints": endpoints,
        }
    )


# -- auth -------------------------------------------------------------------


def auth_login(ctx: RequestContext) -> Reply:
    payload = cast(LoginRequest, ctx.body)
    services = ctx.services
    try:
        session = services.identity_provider.sign_in(
            email=payload.email, password=payload.password.get_secret_value()
        )
    except InvalidCredentialsError as exc:
        raise AuthenticationError("Invalid login credentials", code="LOGIN_FAILED") from exc
    except IdentityProviderError as exc:
        logger.error("auth.login_provider_error error=%s", exc)
        raise UpstreamError("Authentication provider unavailable", code="AUTH_PROVIDER_ERROR") from exc
    identity = Identity.from_claims(
        user_id=session.user.id,
        email=session.user.email,
        role=session.user.role,
        full_name=session.user.full_name,
    )
    issued = services.session_signer.issue(identity)
    logger.info("auth.login user_id=%s", identity.id)
    return Reply(
        data={
            "user": _user_payload(identity, created_at=session.user.created_at),
            "token": issued.token,
            "expires_at": issued.expires_at_utc,
        }
    )


def auth_signup(ctx: RequestContext) -> Reply:
    payload = cast(SignupRequest, ctx.body)
    try:
        result = ctx.services.identity_provider.sign_up(
            email=payload.email,
            password=payload.password.get_secret_value(),
            full_name=payload.full_name,
        )
    except DuplicateAccountError as exc:
        raise ValidationError("Email already registered", code="SIGNUP_FAILED") from exc
    except IdentityProviderError as exc:
        raise ValidationError(f"Signup failed: {exc}", code="SIGNUP_FAILED") from exc
    message = (
        "Please check your email to confirm your account"
        if result.requires_confirmation
        else "Account created successfully"
    )
    user = None
    if result.user is not None:
        user = {
            "id": result.user.id,
            "email": result.user.email,
            "full_name": result.user.full_name,
            "created_at": result.user.created_at,
        }
    return Reply(
        data={
            "message": message,
            "requiresConfirmation": result.requires_confirmation,
            "user": user,
        },
        status_code=201,
    )


def auth_logout(ctx: RequestContext) -> Reply:
    token = extract_bearer_token(ctx.authorization)
    services = ctx.services
    # Session tokens are stateless; only provider tokens have anything to revoke.
    if token is not None and not services.session_signer.looks_like_session_token(token):
        try:
            services.identity_provider.sign_out(access_token=token)
        except IdentityProviderError as exc:
            raise UpstreamError("Logout failed", code="LOGOUT_FAILED") from exc
    return Reply(data=None, extra={"message": "Logged out successfully"})


def auth_me(ctx: RequestContext) -> Reply:
    return Reply(data=_user_payload(ctx.caller))


def auth_refresh(ctx: RequestContext) -> Reply:
    payload = cast(RefreshRequest, ctx.body)
    services = ctx.services
    try:
        claimed = services.session_signer.decode(payload.token)
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token", code="TOKEN_INVALID") from exc
    try:
        profile = services.store.get_row(table=PROFILES_TABLE, row_id=claimed.id)
    except StoreError as exc:
        raise _upstream("fetch", "profile", exc) from exc
    if profile is None:
        raise AuthenticationError("Invalid token", code="TOKEN_INVALID")
    identity = claimed.with_profile(profile)
    issued = services.session_signer.issue(identity)
    return Reply(
        data={
            "token": issued.token,
            "expires_at": issued.expires_at_utc,
            "user": _user_payload(identity, created_at=cast(str | None, profile.get("created_at"))),
        }
    )


# -- aggregation ------------------------------------------------------------


def dashboard_data(ctx: RequestContext) -> Reply:
    try:
        worlds = ctx.services.store.fetch_world_trees(owner_id=ctx.caller.id)
    except StoreError as exc:
        raise _upstream("fetch", "dashboard data", exc) from exc
    return Reply(data=build_dashboard_payload(worlds))


def world_complete(ctx: RequestContext) -> Reply:
    world_id = ctx.path_params["worldId"]
    try:
        worlds = ctx.services.store.fetch_world_trees(owner_id=ctx.owner_id, world_id=world_id)
    except StoreError as exc:
        raise _upstream("fetch", "complete world data", exc) from exc
    if not worlds:
        raise masked_not_found(ctx.caller, ResourceKind.WORLD)
    return Reply(data=normalize_world_tree(worlds[0]))


# -- generic resource CRUD --------------------------------------------------


def _list_filters(kind: ResourceKind, query: Mapping[str, str]) -> dict[str, str]:
    layout = RESOURCE_TABLES[kind]
    return {column: query[column] for column in layout.parent_filters if query.get(column)}


def _parent_owner(ctx: RequestContext, kind: ResourceKind, values: Mapping[str, object]) -> str:
    """Verify every referenced parent and return the owner new rows are stamped with.

    Standard callers must own each parent. Admin callers may write under
    anyone's parents, and the row is stamped with that parent's owner.
    """
    caller = ctx.caller
    layout = RESOURCE_TABLES[kind]
    owners: set[str] = set()
    for column, parent_kind in PARENT_REFERENCES.items():
        if column not in layout.columns:
            continue
        parent_id = values.get(column)
        if not parent_id:
            continue
        owners.add(resolve_scope(ctx.services, caller, parent_kind, str(parent_id)))
    if len(owners) > 1:
        raise ValidationError("Referenced resources belong to different owners")
    _check_chain(ctx, kind, values)
    return owners.pop() if owners else caller.id


def _load_row(ctx: RequestContext, kind: ResourceKind, row_id: str) -> Row | None:
    try:
        return ctx.services.store.get_row(table=kind.table, row_id=row_id)
    except StoreError as exc:
        raise _upstream("fetch", kind.value, exc) from exc


def _world_of(ctx: RequestContext, kind: ResourceKind, row_id: str) -> str | None:
    """World a referenced row lives in, following chapter/event links upward."""
    if kind is ResourceKind.WORLD:
        return row_id
    row = _load_row(ctx, kind, row_id)
    if row is None:
        return None
    world_id = row.get("world_id")
    if world_id:
        return str(world_id)
    for column in ("chapter_id", "event_id"):
        parent_id = row.get(column)
        if parent_id:
            return _world_of(ctx, PARENT_REFERENCES[column], str(parent_id))
    return None


def _check_chain(ctx: RequestContext, kind: ResourceKind, values: Mapping[str, object]) -> None:
    """Reject parent references that do not form one chain inside one world."""
    layout = RESOURCE_TABLES[kind]
    references = {
        column: str(values[column])
        for column in PARENT_REFERENCES
        if column in layout.columns and values.get(column)
    }
    rule = CHAIN_CONSISTENCY.get(kind)
    if rule is not None:
        child_column, parent_column, child_kind = rule
        if child_column in references and parent_column in references:
            child = _load_row(ctx, child_kind, references[child_column])
            linked = child.get(parent_column) if child is not None else None
            if linked is None or str(linked) != references[parent_column]:
                raise ValidationError(
                    f"{child_column} does not belong to {parent_column}", code="PARENT_MISMATCH"
                )
    if len(references) < 2:
        return
    worlds = {
        column: _world_of(ctx, PARENT_REFERENCES[column], row_id)
        for column, row_id in references.items()
    }
    if len({world for world in worlds.values() if world is not None}) > 1:
        raise ValidationError(
            f"{' and '.join(sorted(worlds))} belong to different worlds", code="PARENT_MISMATCH"
        )


def list_handler(kind: ResourceKind) -> Handler:
    layout = RESOURCE_TABLES[kind]

    def handler(ctx: RequestContext) -> Reply:
        try:
            rows = ctx.services.store.list_rows(
                table=layout.table,
                owner_id=ctx.caller.id,
                filters=_list_filters(kind, ctx.query),
                order_column=layout.order_column,
                descending=layout.descending,
            )
        except StoreError as exc:
            raise _upstream("fetch", layout.table, exc) from exc
        return Reply(data=rows or [])

    return handler


def get_handler(kind: ResourceKind, *, id_param: str = "id") -> Handler:
    def handler(ctx: RequestContext) -> Reply:
        try:
            row = ctx.services.store.get_row(
                table=kind.table, row_id=ctx.path_params[id_param], owner_id=ctx.owner_id
            )
        except StoreError as exc:
            raise _upstream("fetch", kind.value, exc) from exc
        if row is None:
            raise masked_not_found(ctx.caller, kind)
        return Reply(data=row)

    return handler


def create_handler(kind: ResourceKind) -> Handler:
    def handler(ctx: RequestContext) -> Reply:
        body = cast(BaseModel, ctx.body)
        values: dict[str, object] = body.model_dump()
        owner_id = _parent_owner(ctx, kind, values)
        now = _utc_now()
        values.update({OWNER_COLUMN: owner_id, "created_at": now, "updated_at": now})
        try:
            row: Row = ctx.services.store.insert_row(table=kind.table, values=values)
        except StoreError as exc:
            raise _upstream("create", kind.value, exc) from exc
        logger.info("resource.created kind=%s id=%s user_id=%s", kind.value, row.get("id"), owner_id)
        return Reply(data=row, status_code=201)

    return handler


def update_handler(kind: ResourceKind) -> Handler:
    def handler(ctx: RequestContext) -> Reply:
        body = cast(BaseModel, ctx.body)
        values: dict[str, object] = body.model_dump(exclude_unset=True)
        owner_id = cast(str, ctx.owner_id)
        row_id = ctx.path_params["id"]
        if any(values.get(column) for column in PARENT_REFERENCES):
            try:
                stored = ctx.services.store.get_row(
                    table=kind.table, row_id=row_id, owner_id=owner_id
                )
            except StoreError as exc:
                raise _upstream("fetch", kind.value, exc) from exc
            if stored is None:
                raise masked_not_found(ctx.caller, kind)
            merged = {column: stored.get(column) for column in PARENT_REFERENCES}
            merged.update(values)
            if _parent_owner(ctx, kind, merged) != owner_id:
                raise masked_not_found(ctx.caller, kind)
        values["updated_at"] = _utc_now()
        try:
            row = ctx.services.store.update_row(
                table=kind.table,
                row_id=row_id,
                owner_id=owner_id,
                values=values,
            )
        except StoreError as exc:
            raise _upstream("update", kind.value, exc) from exc
        if row is None:
            raise masked_not_found(ctx.caller, kind)
        return Reply(data=row)

    return handler


def delete_handler(kind: ResourceKind) -> Handler:
    def handler(ctx: RequestContext) -> Reply:
        try:
            deleted = ctx.services.store.delete_row(
                table=kind.table,
                row_id=ctx.path_params["id"],
                owner_id=cast(str, ctx.owner_id),
            )
        except StoreError as exc:
            raise _upstream("delete", kind.value, exc) from exc
        if not deleted:
            raise masked_not_found(ctx.caller, kind)
        logger.info("resource.deleted kind=%s id=%s", kind.value, ctx.path_params["id"])
        return Reply(data=None, extra={"message": f"{kind.label} deleted successfully"})

    return handler


# -- admin ------------------------------------------------------------------


def admin_users(ctx: RequestContext) -> Reply:
    try:
        profiles = ctx.services.store.list_recent(table=PROFILES_TABLE)
    except StoreError as exc:
        raise _upstream("fetch", "users", exc) from exc
    return Reply(data=profiles or [])


def admin_analytics(ctx: RequestContext) -> Reply:
    store = ctx.services.store
    try:
        totals = {
            "users": store.count_rows(table=PROFILES_TABLE),
            "worlds": store.count_rows(table="worlds"),
            "characters": store.count_rows(table="characters"),
            "dialogues": store.count_rows(table="dialogues"),
        }
        recent_worlds = store.list_recent(table="worlds", limit=RECENT_ACTIVITY_LIMIT)
    except StoreError as exc:
        raise _upstream("fetch", "analytics", exc) from exc
    return Reply(data={"totals": totals, "recentActivity": {"worlds": recent_worlds or []}})


# -- route table ------------------------------------------------------------


def _resource_routes(kind: ResourceKind) -> list[RouteSpec]:
    collection = f"/api/{kind.table}"
    item = f"{collection}/{{id}}"
    tags = (kind.table,)
    return [
        RouteSpec("GET", collection, list_handler(kind), name=f"list_{kind.table}", tags=tags),
        RouteSpec(
            "POST",
            collection,
            create_handler(kind),
            name=f"create_{kind.value}",
            body_model=CREATE_CONTRACTS[kind],
            tags=tags,
        ),
        RouteSpec(
            "GET", item, get_handler(kind), name=f"get_{kind.value}", ownership=kind, tags=tags
        ),
        RouteSpec(
            "PUT",
            item,
            update_handler(kind),
            name=f"update_{kind.value}",
            ownership=kind,
            body_model=UPDATE_CONTRACTS[kind],
            tags=tags,
        ),
        RouteSpec(
            "DELETE",
            item,
            delete_handler(kind),
            name=f"delete_{kind.value}",
            ownership=kind,
            tags=tags,
        ),
    ]


def build_route_table() -> tuple[RouteSpec, ...]:
    routes: list[RouteSpec] = [
        RouteSpec("GET", "/health", health, name="health", auth=False, tags=("system",)),
        RouteSpec("GET", "/api/health", health, name="api_health", auth=False, tags=("system",)),
        RouteSpec("GET", "/api", api_index, name="api_index", auth=False, tags=("system",)),
        RouteSpec(
            "POST",
            "/api/auth/login",
            auth_login,
            name="auth_login",
            auth=False,
            body_model=LoginRequest,
            tags=("auth",),
        ),
        RouteSpec(
            "POST",
            "/api/auth/signup",
            auth_signup,
            name="auth_signup",
            auth=False,
            body_model=SignupRequest,
            tags=("auth",),
        ),
        RouteSpec(
            "POST", "/api/auth/logout", auth_logout, name="auth_logout", auth=False, tags=("auth",)
        ),
        RouteSpec("GET", "/api/auth/me", auth_me, name="auth_me", tags=("auth",)),
        RouteSpec(
            "POST",
            "/api/auth/refresh",
            auth_refresh,
            name="auth_refresh",
            auth=False,
            body_model=RefreshRequest,
            tags=("auth",),
        ),
        RouteSpec(
            "GET", "/api/user/dashboard-data", dashboard_data, name="dashboard_data", tags=("user",)
        ),
        RouteSpec(
            "GET",
            "/api/user/worlds",
            list_handler(ResourceKind.WORLD),
            name="user_list_worlds",
            tags=("user",),
        ),
        RouteSpec(
            "POST",
            "/api/user/worlds",
            create_handler(ResourceKind.WORLD),
            name="user_create_world",
            body_model=WorldCreateRequest,
            tags=("user",),
        ),
        RouteSpec(
            "GET",
            "/api/user/worlds/{worldId}/complete",
            world_complete,
            name="user_world_complete",
            ownership=ResourceKind.WORLD,
            id_param="worldId",
            tags=("user",),
        ),
        RouteSpec(
            "GET",
            "/api/admin/users",
            admin_users,
            name="admin_users",
            admin_only=True,
            tags=("admin",),
        ),
        RouteSpec(
            "GET",
            "/api/admin/analytics",
            admin_analytics,
            name="admin_analytics",
            admin_only=True,
            tags=("admin",),
        ),
    ]
    for kind in ResourceKind:
        routes.extend(_resource_routes(kind))
    return tuple(routes)


ROUTE_TABLE = build_route_table()
