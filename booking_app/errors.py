"""
Typed application errors
Raised by services and mapped to JSON responses by the handler in main.py
"""

from typing import Any, Optional


class AppError(Exception):
    """Base error carrying an HTTP status and a stable error code"""

    status_code = 500
    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationFailedError(AppError):
    status_code = 400
    code = "VALIDATION_FAILED"

    def __init__(self, message: str = "Validation failed", issues: Optional[list[dict]] = None):
        super().__init__(message, details={"issues": issues or []})
        self.issues = issues or []


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    @classmethod
    def for_resource(cls, resource: str, resource_id: Optional[str] = None) -> "NotFoundError":
        details = {"resource": resource}
        if resource_id is not None:
            details["id"] = resource_id
        return cls(f"{resource} not found", details=details)


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class ProviderError(AppError):
    """External provider (SimPro) failure; the caller may retry later"""

    status_code = 503
    code = "PROVIDER_UNAVAILABLE"
    retryable = True

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        merged = dict(details or {})
        if provider_status is not None:
            merged["providerStatus"] = provider_status
        super().__init__(message, details=merged)
        self.provider_status = provider_status
        if retryable is not None and retryable != self.retryable:
            self.retryable = retryable
            if not retryable:
                self.status_code = 502
                self.code = "PROVIDER_REQUEST_FAILED"


class ProviderAuthError(ProviderError):
    """Provider rejected our credentials even after a token refresh"""

    status_code = 401
    code = "PROVIDER_AUTH_FAILED"
    retryable = False
