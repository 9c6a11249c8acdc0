"""
Error taxonomy for the short link service.

Every error the core raises is a ShortLinkError subclass carrying the HTTP
status it maps to and a message that is safe to show to clients. The
exception handler in main.py is the only place these become responses.
"""

from typing import Optional


class ShortLinkError(Exception):
    """Base class for all typed service errors"""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.default_message
        # Internal context for logs only, never sent to clients
        self.detail = detail
        super().__init__(self.message)


class LinkValidationError(ShortLinkError):
    """Client sent a bad URL, validity, shortcode or pagination parameter"""

    status_code = 400
    default_message = "Invalid request"


class ConflictError(ShortLinkError):
    """Shortcode is already taken"""

    status_code = 409
    default_message = "Shortcode already exists"


class DuplicateCodeError(ConflictError):
    """Raised by a link store when create() hits the uniqueness constraint on code"""

    def __init__(self, code: str):
        self.code = code
        super().__init__(detail=f"duplicate code {code!r}")


class LinkNotFoundError(ShortLinkError):
    status_code = 404
    default_message = "shortcode not found"


class LinkExpiredError(ShortLinkError):
    """Code exists but its expiry has passed (never conflated with not-found)"""

    status_code = 410
    default_message = "link expired"


class AllocationExhaustedError(ShortLinkError):
    """Every length tier ran out of draws without finding a free code"""

    status_code = 500
    default_message = "Unable to allocate a unique shortcode"


class TransientStoreError(ShortLinkError):
    """Store timed out or its driver failed; the driver text stays in detail"""

    status_code = 500
    default_message = "Internal server error"
