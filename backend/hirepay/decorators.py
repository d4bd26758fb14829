# Overview: Request decorators for API routes; establishes the acting staff context.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.scope_service import ActorContext, ROLE_BUSINESS_ADMIN, VALID_ROLES


class ActorResolutionError(Exception):
    """Raised by an actor resolver when the request carries no usable identity."""


def _parse_int_header(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise ActorResolutionError(f"{name} must be an integer")


def resolve_actor_from_headers() -> ActorContext:
    """
    Default resolver: trusts X-Actor-* headers set by the upstream gateway.

    - X-Actor-User-Id, X-Actor-Business-Id, X-Actor-Role: required
    - X-Actor-Shop-Ids: comma-separated; omitted means every shop, which is
      only honored for BUSINESS_ADMIN
    - X-Actor-Staff-Id: optional StaffMember link
    """
    user_id = _parse_int_header("X-Actor-User-Id")
    business_id = _parse_int_header("X-Actor-Business-Id")
    role = (request.headers.get("X-Actor-Role") or "").strip().upper()

    if user_id is None or business_id is None or not role:
        raise ActorResolutionError("Actor identity required")
    if role not in VALID_ROLES:
        raise ActorResolutionError(f"Unknown role: {role}")

    raw_shops = request.headers.get("X-Actor-Shop-Ids")
    if raw_shops is None or not raw_shops.strip():
        shop_ids = None if role == ROLE_BUSINESS_ADMIN else ()
    else:
        try:
            shop_ids = tuple(int(part) for part in raw_shops.split(",") if part.strip())
        except ValueError:
            raise ActorResolutionError("X-Actor-Shop-Ids must be comma-separated integers")

    return ActorContext(
        user_id=user_id,
        business_id=business_id,
        role=role,
        shop_ids=shop_ids,
        staff_id=_parse_int_header("X-Actor-Staff-Id"),
    )


def require_actor(f):
    """
    Establish the acting staff context.

    Sets g.actor (ActorContext) using the configured ACTOR_RESOLVER, or the
    header resolver when none is configured.

    Returns 401 when no actor can be resolved.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolver = current_app.config.get("ACTOR_RESOLVER") or resolve_actor_from_headers
        try:
            actor = resolver()
        except ActorResolutionError as e:
            return jsonify({"error": str(e)}), 401

        if actor is None:
            return jsonify({"error": "Actor identity required"}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the acting staff member to hold one of the given roles.

    Must be used after @require_actor.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Actor identity required"}), 401
            if actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": f"Requires one of: {', '.join(roles)}",
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
