class APIError(Exception):
    """Base class for errors that are returned to the client as JSON."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(APIError):
    """Raised for missing or invalid request input."""

    status_code = 400


class NotFoundError(APIError):
    status_code = 404


class RateLimitError(APIError):
    status_code = 429


class UpstreamError(APIError):
    """Raised when a vendor API or the captions source fails."""

    status_code = 500
