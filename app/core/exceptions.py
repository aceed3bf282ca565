class TempoLinkException(Exception):
    """Base exception for TempoLink application"""
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class AuthenticationError(TempoLinkException):
    """Exception raised when no authenticated user is present"""
    code = "authentication_required"
    status_code = 401


class AuthorizationError(TempoLinkException):
    """Exception raised for wrong-role or non-owner access"""
    code = "authorization_denied"
    status_code = 403


class NotFoundError(TempoLinkException):
    """Exception raised when an entity id doesn't resolve"""
    code = "not_found"
    status_code = 404


class ConflictError(TempoLinkException):
    """Exception raised when the requested change conflicts with current state"""
    code = "conflict"
    status_code = 409


class ValidationError(TempoLinkException):
    """Exception raised for validation errors"""
    code = "validation_error"
    status_code = 400


class ExternalServiceError(TempoLinkException):
    """Exception raised for external service errors"""
    code = "external_dependency_failure"
    status_code = 502


class TimeslotOverlapError(ConflictError):
    """Exception raised when a timeslot would overlap another slot of the same teacher"""
    pass


class TimeslotBookedError(ConflictError):
    """Exception raised when a booked timeslot is requested, edited or deleted"""
    pass


class BookingError(ConflictError):
    """Exception raised for booking-request state errors"""
    pass


class GeocodingError(ExternalServiceError):
    """Exception raised when the geocoding API fails"""
    pass
