"""Error taxonomy shared by the scheduler, the persistence layer and the HTTP service."""


class FlashcardsError(Exception):
    """Base class for all scheduling-core errors"""
    status_code = 500
    public_message = "Internal error"


class InvalidRatingError(FlashcardsError, ValueError):
    """Quality rating outside 0-5 or not an integer"""
    status_code = 400
    public_message = "Invalid request data"


class CorruptProgressError(FlashcardsError):
    """A stored progress record holds values the scheduler must never see"""
    status_code = 500
    public_message = "Failed to save progress"


class ConcurrencyError(FlashcardsError):
    """Duplicate record or a lost concurrent update"""
    status_code = 409
    public_message = "Progress was modified concurrently, please retry"


class NotFoundError(FlashcardsError):
    status_code = 404
    public_message = "Not found"


class AuthorizationError(FlashcardsError):
    status_code = 403
    public_message = "Access denied"


class IdentityRequiredError(AuthorizationError):
    status_code = 401
    public_message = "User identification required"
