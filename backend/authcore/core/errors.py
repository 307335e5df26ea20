"""Centralized JSON (RFC 7807) error handling for the API."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, jsonify, request
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from authcore.core.logger import ensure_request_id
from authcore.services._shared.errors import AuthError, AuthErrorKind

log = logging.getLogger(__name__)

# Token/credential failures are 401; backend failures deny with 503.
AUTH_ERROR_STATUS: dict[AuthErrorKind, int] = {
    AuthErrorKind.GENERATION_FAILED: HTTPStatus.INTERNAL_SERVER_ERROR,
    AuthErrorKind.STORE_UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    AuthErrorKind.STORE_TIMEOUT: HTTPStatus.SERVICE_UNAVAILABLE,
}


def _http_status_to_code(status_code: int) -> str:
    """Map common HTTP status codes to canonical, stable error codes."""
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        415: "unsupported_media_type",
        422: "unprocessable_entity",
        429: "too_many_requests",
        500: "internal_server_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "error")


def _as_problem(
    *,
    status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build an RFC 7807 Problem Details dict.

    :param status: HTTP status code.
    :param code: Stable machine-consumable error code.
    :param message: Human-readable error summary (safe for clients).
    :param details: Optional safe, structured details.
    :returns: Problem+JSON dictionary.
    :rtype: dict
    """
    problem: dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path if request else None,
        "code": code,
    }
    if details:
        problem["details"] = details
    problem["request_id"] = ensure_request_id()
    return problem


def _problem_response(problem: dict[str, Any], status: int) -> tuple[Response, int]:
    resp = jsonify(problem)
    resp.mimetype = "application/problem+json"
    if status == HTTPStatus.UNAUTHORIZED:
        resp.headers["WWW-Authenticate"] = f'Bearer error="{problem["code"]}"'
    return resp, status


class APIError(Exception):
    """
    Represent a JSON-serializable API error.

    Parameters
    ----------
    message : str
        Human-readable description presented to clients.
    status_code : int, optional
        HTTP status code to return. Defaults to ``400``.
    code : str, optional
        Machine-readable identifier, typically snake_case.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "bad_request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}

    def to_problem(self) -> dict[str, Any]:
        return _as_problem(
            status=self.status_code,
            code=self.code,
            message=self.message,
            details=self.details or None,
        )


class Unauthorized(APIError):
    """401 when a request carries no usable credentials."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, status_code=HTTPStatus.UNAUTHORIZED, code="unauthorized")


def auth_error_status(err: AuthError) -> int:
    return int(AUTH_ERROR_STATUS.get(err.kind, HTTPStatus.UNAUTHORIZED))


def init_app(app: Flask) -> None:
    """
    Attach JSON error handlers to the Flask app.

    Notes
    -----
    - Guarantees RFC 7807 responses for all handled errors.
    - Auth errors expose their ``kind`` as the problem ``code``.
    - Emits 5xx with ``exc_info`` for traceability; 4xx as warnings.
    """

    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        status = auth_error_status(err)
        problem = _as_problem(status=status, code=err.kind.value, message=err.message)
        level = log.error if status >= 500 else log.warning
        level(
            "AuthError: kind=%s status=%s msg=%s",
            err.kind.value,
            status,
            err.message,
            extra={"event": err.kind.value, "request_id": problem["request_id"]},
            exc_info=status >= 500,
        )
        return _problem_response(problem, status)

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        problem = err.to_problem()
        level = log.error if err.status_code >= 500 else log.warning
        level(
            "APIError: code=%s status=%s msg=%s",
            err.code,
            err.status_code,
            err.message,
            extra={"request_id": problem["request_id"]},
        )
        return _problem_response(problem, err.status_code)

    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        problem = _as_problem(
            status=HTTPStatus.UNPROCESSABLE_ENTITY,
            code="validation_error",
            message="Validation failed",
            details={"errors": err.messages},
        )
        log.warning("ValidationError", extra={"request_id": problem["request_id"]})
        return _problem_response(problem, HTTPStatus.UNPROCESSABLE_ENTITY)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        error_code = _http_status_to_code(status)
        message = (err.description or error_code.replace("_", " ").capitalize()).strip()
        if status == HTTPStatus.NOT_FOUND and request:
            message = f"Route '{request.path}' not found"
        problem = _as_problem(status=status, code=error_code, message=message)
        level = log.error if status >= 500 else log.warning
        level(
            "HTTPException: code=%s status=%s detail=%s",
            error_code,
            status,
            message,
            extra={"request_id": problem["request_id"]},
        )
        return _problem_response(problem, status)

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        problem = _as_problem(
            status=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="internal_server_error",
            message="Unexpected error",
        )
        log.error(
            "Unhandled exception",
            extra={"request_id": problem["request_id"]},
            exc_info=True,
        )
        return _problem_response(problem, HTTPStatus.INTERNAL_SERVER_ERROR)
