"""Standardised error envelope for the REST API.

Every error response has the shape::

    {
        "type": "validation_error" | "client_error" | "server_error",
        "errors": [{"code": "...", "detail": "...", "attr": "field" | null}]
    }

Domain exceptions are translated by the views; this handler only
reshapes what DRF itself raises (auth, permission, parse, validation).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


def error_payload(
    detail: str, code: str, error_type: str = "client_error", attr: Optional[str] = None
) -> Dict[str, Any]:
    """Build a single-error envelope (used by views for domain errors)."""
    return {
        "type": error_type,
        "errors": [{"code": code, "detail": detail, "attr": attr}],
    }


def _flatten(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            nested = key if attr is None else f"{attr}.{key}"
            if key == "non_field_errors":
                nested = attr
            errors.extend(_flatten(value, nested))
        return errors
    if isinstance(detail, list):
        errors = []
        for index, value in enumerate(detail):
            nested = attr
            if isinstance(value, (dict, list)) and attr is not None:
                nested = f"{attr}.{index}"
            errors.extend(_flatten(value, nested))
        return errors
    code = getattr(detail, "code", "error")
    return [{"code": code, "detail": str(detail), "attr": attr}]


def standardized_exception_handler(exc: Exception, context: Dict[str, Any]):
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        error_type = "validation_error"
    elif response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        error_type = "server_error"
    else:
        error_type = "client_error"

    if isinstance(exc, exceptions.APIException):
        errors = _flatten(exc.detail)
    else:
        errors = _flatten(response.data)

    logger.info(
        "api.error",
        status_code=response.status_code,
        error_type=error_type,
        codes=[error["code"] for error in errors],
    )
    return Response(
        {"type": error_type, "errors": errors},
        status=response.status_code,
        headers=dict(response.items()),
    )
