from __future__ import annotations

from typing import Any

from trunkline.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: _response(
        "Not found",
        _error_example(
            code="NOT_FOUND",
            message="trunk not found: 6f1c",
            details={"entity": "trunk", "id": "6f1c"},
        ),
    ),
    409: _response(
        "Conflict",
        _error_example(
            code="ENTITY_IN_USE",
            message="trunk 6f1c is still referenced",
            details={"entity": "trunk", "id": "6f1c", "outbound": 2, "inbound": 1},
        ),
    ),
    422: _response(
        "Validation error",
        _error_example(
            code="VALIDATION_FAILED",
            message="Cannot specify both country and region - choose one",
            details={
                "violations": [
                    {
                        "code": "INVALID_LOCALITY",
                        "field": "region",
                        "message": "Cannot specify both country and region - choose one",
                        "details": {"reason": "both_set"},
                    }
                ]
            },
        ),
    ),
    500: _response(
        "Internal server error",
        _error_example(code="INTERNAL_ERROR", message="Internal server error"),
    ),
    502: _response(
        "Provisioning failed",
        _error_example(
            code="PROVIDER_PROVISIONING_FAILED",
            message="Provisioning failed during create_credential: provider returned HTTP 400",
            details={"operation": "create_credential"},
        ),
    ),
}
