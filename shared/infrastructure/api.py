"""DRF integration for the domain error taxonomy."""

from __future__ import annotations

import logging

from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler as drf_exception_handler  # type: ignore

from shared.domain.exceptions import (
    DomainError,
    GatewayError,
    RateLimitError,
    VerificationError,
)

logger = logging.getLogger(__name__)


def exception_handler(exc, context):
    """Render DomainError subclasses as `{"error": ..., "message": ...}` bodies."""

    if not isinstance(exc, DomainError):
        return drf_exception_handler(exc, context)

    view = context.get("view")
    view_name = view.__class__.__name__ if view is not None else "unknown"

    if isinstance(exc, VerificationError):
        logger.error(f"Gateway callback rejected in {view_name}: {exc.message}")
    elif isinstance(exc, GatewayError):
        logger.error(f"Gateway failure in {view_name}: {exc.message}")
    else:
        logger.info(f"{exc.code} in {view_name}: {exc.message}")

    response = Response(exc.to_dict(), status=exc.http_status)
    if isinstance(exc, RateLimitError):
        response["Retry-After"] = str(exc.retry_after)
    return response
