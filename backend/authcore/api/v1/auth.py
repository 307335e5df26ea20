"""Authentication endpoints using the service layer."""

from __future__ import annotations

from flask import Blueprint, g, request

from authcore.api.deps import (
    auth_service,
    bearer_token,
    current_token,
    device_info_from_request,
    json_response,
    request_deadline,
    require_auth,
    timing,
)
from authcore.schemas import (
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    SessionSchema,
    TokenPairSchema,
    WhoAmISchema,
)
from authcore.services._shared.errors import InvalidTokenError
from authcore.services.auth.dto import Credentials, RevocationReason

bp = Blueprint("auth", __name__)

login_schema = LoginSchema()
refresh_schema = RefreshSchema()
logout_schema = LogoutSchema()
token_schema = TokenPairSchema()
session_schema = SessionSchema(many=True)
whoami_schema = WhoAmISchema()


@bp.post("/login")
@timing
def login():
    """Authenticate credentials and issue an access/refresh token pair."""

    data = login_schema.load(request.get_json(silent=True) or {})
    pair = auth_service().login(
        Credentials(identifier=data["email"], secret=data["password"]),
        device_info_from_request(data.get("device_name")),
        deadline=request_deadline(),
    )
    return json_response({"data": token_schema.dump(pair.to_dict())})


@bp.post("/refresh")
@timing
def refresh():
    """Rotate the presented refresh token into a new pair."""

    data = refresh_schema.load(request.get_json(silent=True) or {})
    pair = auth_service().refresh(
        data["refresh_token"],
        device_info_from_request(),
        deadline=request_deadline(),
    )
    return json_response({"data": token_schema.dump(pair.to_dict())})


@bp.post("/logout")
@timing
def logout():
    """End the session of the refresh token (or all sessions of its owner).

    A bearer access token, when sent, is revoked alongside.
    """

    data = logout_schema.load(request.get_json(silent=True) or {})
    count = auth_service().logout(
        data["refresh_token"],
        all_devices=data["all_devices"],
        access_token=bearer_token(),
        deadline=request_deadline(),
    )
    return json_response({"data": {"revoked": count}})


@bp.post("/logout-others")
@require_auth
@timing
def logout_others():
    """Revoke every session of the caller except the one being kept."""

    data = refresh_schema.load(request.get_json(silent=True) or {})
    service = auth_service()
    record = service.validate_refresh_token(
        data["refresh_token"], touch=False, deadline=request_deadline()
    )
    if record.user_id != current_token().subject_user_id:
        raise InvalidTokenError("Refresh token does not belong to the caller")
    count = service.revoke_all_user_tokens(
        record.user_id, exclude_jti=record.jti, reason=RevocationReason.LOGOUT_ALL
    )
    return json_response({"data": {"revoked": count}})


@bp.get("/me")
@require_auth
@timing
def me():
    """Return the verified token identity with the caller's active sessions."""

    payload = current_token()
    service = auth_service()
    body = {
        "data": {
            **whoami_schema.dump(payload),
            "remaining_seconds": service.get_token_remaining_seconds(g.access_token),
            "sessions": session_schema.dump(service.list_user_sessions(payload.subject_user_id)),
            "stats": service.get_user_token_stats(payload.subject_user_id).to_dict(),
        }
    }
    return json_response(body)
