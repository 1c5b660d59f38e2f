"""
Elan Store errors

Every failure a route can report maps to one of these. The application
renders them as ``{"error": message}`` with the carried status code.
"""


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApiError):
    status_code = 400


class InvalidArgument(ApiError):
    status_code = 400


class InsufficientStock(ApiError):
    status_code = 400


class NotFound(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """The document kept changing underneath a compare-and-swap write."""
    status_code = 409


class UpstreamError(ApiError):
    status_code = 500
