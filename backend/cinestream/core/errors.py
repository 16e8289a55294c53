class CineStreamError(Exception):
    """Base exception for CineStream domain errors."""
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = None, **details):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details


class ValidationError(CineStreamError):
    """Raised when input fails a domain rule."""
    status_code = 400
    error = "Invalid request"


class NotFoundError(CineStreamError):
    status_code = 404
    error = "Not found"


class ConflictError(CineStreamError):
    """Raised when a unique resource already exists."""
    status_code = 409
    error = "Conflict"


class AuthError(CineStreamError):
    """Raised when credentials or tokens are missing, invalid or expired."""
    status_code = 401
    error = "Unauthorized"


class ForbiddenError(CineStreamError):
    status_code = 403
    error = "Forbidden"


class MovieApiError(CineStreamError):
    """Base exception for upstream movie API errors."""
    status_code = 502
    error = "Movie API error"


class MovieApiNetworkError(MovieApiError):
    """Raised when network or connection to the movie API fails."""
    pass


class MovieApiUnavailableError(MovieApiError):
    """Raised when the movie API circuit is open or retries are exhausted."""
    status_code = 503
    error = "Movie API unavailable"
