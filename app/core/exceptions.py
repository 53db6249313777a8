from typing import Optional, Any

class MarketplaceError(Exception):
    """
    Base exception for the marketplace application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

class ResourceNotFoundError(MarketplaceError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)

class AuthenticationError(MarketplaceError):
    """
    Raised when authentication fails.
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)

class PermissionDeniedError(MarketplaceError):
    """
    Raised when the authenticated user may not perform an action.
    """
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Any] = None):
        super().__init__(message, code="PERMISSION_DENIED", status_code=403, details=details)

class ValidationError(MarketplaceError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)

class BusinessRuleError(MarketplaceError):
    """
    Raised when a request is well-formed but breaks a business rule
    (expired coupon, cancelling a paid invoice, ...).
    """
    def __init__(self, message: str, code: str = "BUSINESS_RULE_VIOLATION", details: Optional[Any] = None):
        super().__init__(message, code=code, status_code=400, details=details)

class ConflictError(MarketplaceError):
    """
    Raised when a unique value (code, key, slug, email) is already taken.
    """
    def __init__(self, message: str = "Resource already exists", details: Optional[Any] = None):
        super().__init__(message, code="CONFLICT", status_code=409, details=details)

class RateLimitError(MarketplaceError):
    """
    Raised when a client exceeds a rate limit window.
    """
    def __init__(self, message: str = "Too many requests", details: Optional[Any] = None):
        super().__init__(message, code="RATE_LIMIT_EXCEEDED", status_code=429, details=details)

class ExternalServiceError(MarketplaceError):
    """
    Raised when an external service (e.g., Google tokeninfo) fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)
