"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class LoginSchema(Schema):
    """Input payload for authenticating a user."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))
    device_name = fields.String(load_default=None, validate=validate.Length(max=100))


class RefreshSchema(Schema):
    """Input payload carrying a refresh token."""

    refresh_token = fields.String(required=True, validate=validate.Length(min=1))


class LogoutSchema(RefreshSchema):
    """Input payload for ending one session or every session of the user."""

    all_devices = fields.Boolean(load_default=False)


class TokenPairSchema(Schema):
    """Response payload containing an access/refresh token pair."""

    access_token = fields.String(required=True)
    refresh_token = fields.String(required=True)
    token_type = fields.String(dump_default="Bearer")
    expires_in = fields.Integer()
    access_expires_at = fields.AwareDateTime()
    refresh_expires_at = fields.AwareDateTime()


class SessionSchema(Schema):
    """Active refresh session as exposed to its owner."""

    jti = fields.String()
    device_id = fields.Function(lambda r: r.device_info.device_id)
    device_name = fields.Function(lambda r: r.device_info.device_name)
    device_type = fields.Function(lambda r: r.device_info.device_type)
    ip_address = fields.Function(lambda r: r.device_info.ip_address)
    created_at = fields.AwareDateTime()
    expires_at = fields.AwareDateTime()
    last_used_at = fields.AwareDateTime(allow_none=True)


class WhoAmISchema(Schema):
    """Response payload exposing identity details for the authenticated token."""

    user_id = fields.Integer(attribute="subject_user_id")
    jti = fields.String()
    device_id = fields.String(allow_none=True)
    expires_at = fields.AwareDateTime()
