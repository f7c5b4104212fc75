"""
Custom exceptions for the drawing lab API.

Every error carries the HTTP status it is reported with; the Flask error
handlers registered in ``app.py`` turn them into ``{"error": message}``.
"""

from typing import Any, Dict, Optional


class DrawLabError(Exception):
    """Base exception for all application errors"""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None,
                 extra: Optional[Dict[str, Any]] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.message}
        payload.update(self.extra)
        return payload


# ============================================
# Request errors
# ============================================

class RequestValidationError(DrawLabError):
    """Malformed or incomplete request body"""

    status_code = 400


class AuthenticationError(DrawLabError):
    """Missing, invalid or expired token / credentials"""

    status_code = 401

    def __init__(self, message: str = "Authentication required", extra: Optional[Dict[str, Any]] = None):
        super().__init__(message, extra=extra)


class AccountLockedError(DrawLabError):
    """Student account locked by an admin"""

    status_code = 403

    def __init__(self, message: str = "Your account is locked. Please contact admin to re-enable login."):
        super().__init__(message)


class NotFoundError(DrawLabError):
    status_code = 404


class ConflictError(DrawLabError):
    """Unique constraint hit (e.g. attendance already marked)"""

    status_code = 409


# ============================================
# AI provider errors
# ============================================

class ProviderError(DrawLabError):
    """The upstream AI gateway answered with an error"""

    status_code = 500


class ProviderRateLimitError(ProviderError):
    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message)


class ProviderQuotaError(ProviderError):
    status_code = 402

    def __init__(self, message: str = "AI credits exhausted. Please add credits."):
        super().__init__(message)


class ConfigurationError(DrawLabError):
    """Required setting (e.g. provider credential) is missing"""

    status_code = 500
