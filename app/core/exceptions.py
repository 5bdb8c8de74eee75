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


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class ServiceUnavailableException(AppException):
    """Upstream dependency unavailable exception."""

    def __init__(self, message: str = "Service unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


# Booking domain errors


class ProviderUnavailableException(ConflictException):
    """Provider exists but is not accepting bookings."""

    def __init__(self, message: str = "Provider is not available for booking"):
        """Initialize with 409 status code."""
        super().__init__(message)


class SlotConflictException(ConflictException):
    """Requested slot is already reserved."""

    def __init__(self, message: str = "Slot is no longer available"):
        """Initialize with 409 status code."""
        super().__init__(message)


class InvalidTransitionException(ConflictException):
    """Appointment status change not allowed from the current status."""

    def __init__(self, message: str = "Invalid appointment status transition"):
        """Initialize with 409 status code."""
        super().__init__(message)


class InvalidSignatureException(ForbiddenException):
    """Settlement callback failed authenticity verification."""

    def __init__(self, message: str = "Invalid callback signature"):
        """Initialize with 403 status code."""
        super().__init__(message)


class SettlementUnavailableException(ServiceUnavailableException):
    """Payment provider could not be reached; outcome unknown, not a payment failure."""

    def __init__(self, message: str = "Payment provider unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message)
