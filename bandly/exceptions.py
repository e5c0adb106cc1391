"""
Custom Exceptions for the BandLy client
=======================================

Raised by the API client and the account helpers so the CLI can map each
failure to the right notice instead of catching a generic Exception.

Usage:
    from bandly.exceptions import AuthenticationError, NetworkError

    try:
        await auth.fetch_profile()
    except AuthenticationError:
        renderer.render_login_required()

Essay analysis does NOT raise these: its outcomes (success, rate limit,
server failure, network failure) come back as values from
bandly.essays.submit_for_analysis.
"""

from typing import Optional, Any, Dict


class BandlyError(Exception):
    """Base exception for all BandLy client errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(BandlyError):
    """Missing, expired or rejected bearer token (HTTP 401)"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class AuthorizationError(BandlyError):
    """Token is valid but lacks the required role (HTTP 403)"""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors
# ============================================

class ResourceNotFoundError(BandlyError):
    """Requested resource does not exist"""

    def __init__(self, resource_type: str, resource_id: Any = None, message: Optional[str] = None):
        if message is None:
            message = f"{resource_type} not found"
            if resource_id is not None:
                message = f"{resource_type} '{resource_id}' not found"
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class ReportNotFoundError(ResourceNotFoundError):
    """Public report does not exist"""

    def __init__(self, public_id: str):
        super().__init__("Report", public_id)


# ============================================
# Validation Errors
# ============================================

class ValidationError(BandlyError):
    """Input rejected locally before any request is sent"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field} if field else {})
        self.field = field


# ============================================
# Transport & Server Errors
# ============================================

class APIError(BandlyError):
    """Server answered with a non-2xx status"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message, code="API_ERROR", details={"status_code": status_code})
        self.status_code = status_code


class NetworkError(BandlyError):
    """No response was received from the server"""

    def __init__(self, message: str = "Network error. Please try again."):
        super().__init__(message, code="NETWORK_ERROR")


# ============================================
# Local Storage Errors
# ============================================

class StorageError(BandlyError):
    """Local durable store could not be read or written"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, code="STORAGE_ERROR", details={"key": key} if key else {})


def error_response(error: BandlyError) -> Dict[str, Any]:
    """Convert a BandlyError to a JSON-friendly dict (used by --output-format json)"""
    return {
        "success": False,
        "error": error.to_dict()
    }
