"""
Domain Error Taxonomy

Every failure the booking core reports to a caller is a DomainError subclass.
The API layer maps them to HTTP responses through `code` and `http_status`;
background workers log them.
"""

from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """Base class for all expected business failures"""

    code = 'domain_error'
    http_status = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.code, 'message': self.message}
        payload.update(self.details)
        return payload


class ValidationError(DomainError):
    """Malformed or unacceptable input"""

    code = 'validation_error'
    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        if field:
            details['field'] = field
        super().__init__(message, **details)
        self.field = field


class NotFoundError(DomainError):
    code = 'not_found'
    http_status = 404


class ConflictError(DomainError):
    """Requested dates collide with a hold, an allocation or a concurrent write"""

    code = 'conflict'
    http_status = 409

    def __init__(self, message: str, conflicts: Optional[List[Dict[str, str]]] = None, **details: Any):
        details['conflicts'] = conflicts or []
        super().__init__(message, **details)
        self.conflicts = conflicts or []


class RateLimitError(DomainError):
    code = 'rate_limited'
    http_status = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message, retryAfter=retry_after)
        self.retry_after = retry_after


class GatewayError(DomainError):
    """Payment gateway unreachable, timed out or refused the request"""

    code = 'gateway_error'
    http_status = 500


class VerificationError(DomainError):
    """Gateway callback failed signature or round-trip verification"""

    code = 'verification_failed'
    http_status = 400


class DeliveryError(DomainError):
    """All notification providers of a channel failed"""

    code = 'delivery_failed'
    http_status = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, errors=errors or [])
        self.errors = errors or []
