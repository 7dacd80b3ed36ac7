from __future__ import annotations

from typing import Any

from solveur.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _error_response("Bad request", _error_example(code="MESSAGE_REQUIRED", message="Message is required.")),
    401: _error_response(
        "Unauthorized", _error_example(code="AUTH_UNAUTHORIZED", message="Missing or invalid bearer token")
    ),
    403: _error_response(
        "Forbidden", _error_example(code="TENANT_INACTIVE", message="Tenant is not active.")
    ),
    404: _error_response("Not found", _error_example(code="TENANT_NOT_FOUND", message="Tenant not found.")),
    422: _error_response(
        "Validation error",
        _error_example(
            code="REQUEST_VALIDATION_ERROR",
            message="Invalid input data",
            details={"errors": [{"loc": ["body", "message"], "msg": "Field required", "type": "missing"}]},
        ),
    ),
    429: _error_response(
        "Quota exceeded",
        _error_example(
            code="QUOTA_EXCEEDED",
            message="Daily api calls limit reached for your plan.",
            details={"metric": "API_CALLS", "current": 1000, "limit": 1000},
        ),
    ),
    500: _error_response(
        "Internal error",
        _error_example(
            code="COMPLETION_FAILED",
            message="I could not generate a response right now. Please try again.",
        ),
    ),
    503: _error_response(
        "Service unavailable",
        _error_example(code="PROVIDER_CONFIG_MISSING", message="Provider is not configured."),
    ),
}
