"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class LocalTimeError(ValidationException):
    """A wall-clock time that cannot be mapped to exactly one UTC instant."""


class InvalidPhoneNumber(ValidationException):
    """Phone number that cannot be normalized to E.164."""


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, message: str = "Rate limit exceeded"):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429)


class ConfigurationError(AppException):
    """Invalid or incomplete runtime configuration."""

    def __init__(self, message: str = "Invalid configuration"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)


class DeliveryError(AppException):
    """A notification transport rejected or failed a send."""

    def __init__(self, message: str = "Delivery failed", raw: object | None = None):
        """Initialize with 502 status code and the transport's raw response."""
        self.raw = raw
        super().__init__(message, status_code=502)


class SmsDeliveryError(DeliveryError):
    """SMS transport failure."""


class EmailDeliveryError(DeliveryError):
    """Email transport failure."""
