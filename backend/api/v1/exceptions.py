from __future__ import annotations

import logging
from typing import Any

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.views import set_rollback

logger = logging.getLogger(__name__)


def first_error_message(data: Any) -> str:
    """Pick a human readable message out of a DRF error payload."""

    if isinstance(data, dict):
        if "detail" in data:
            return str(data["detail"])
        for key, value in data.items():
            message = first_error_message(value)
            if message:
                return message if key == "non_field_errors" else f"{key}: {message}"
        return ""
    if isinstance(data, (list, tuple)):
        return first_error_message(data[0]) if data else ""
    return str(data) if data is not None else ""


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    """Render every API error as ``{"message", "error", "request_id"}``.

    Field validation errors keep their per-field detail under ``fields``.
    Anything DRF does not know how to handle is logged and answered with a
    generic 500 body, after rolling back the request's transaction.
    """

    request = context.get("request")
    request_id = getattr(request, "request_id", None)

    response = drf_exception_handler(exc, context)
    if response is None:
        set_rollback()
        logger.error("unhandled api error", exc_info=exc, extra={"request_id": request_id})
        body = {"message": "Internal server error", "error": "internal"}
        if request_id:
            body["request_id"] = request_id
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    data = response.data
    is_validation = isinstance(exc, ValidationError)
    code = "invalid_input" if is_validation else getattr(exc, "default_code", None)

    body: dict[str, Any] = {
        "message": first_error_message(data) or "Request failed",
        "error": str(code or "error"),
    }
    if is_validation and isinstance(data, dict):
        body["fields"] = data
    if request_id:
        body["request_id"] = request_id

    response.data = body
    return response
