"""Download subsystem exception hierarchy.

Every error carries the HTTP status it maps to, a short machine-readable
code, and a message a guest can act on.
"""


class DownloadError(Exception):
    """Base exception for all download-related errors."""

    status_code: int = 500
    code: str = "server_error"
    message: str = (
        "Something went wrong while preparing your download. "
        "Please try again later or contact the organizers."
    )

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(detail or self.message)


class InvalidInput(DownloadError):
    """Issuance request with an empty or oversized selection."""

    status_code = 400
    code = "invalid_input"
    message = (
        "Please enter a valid email address and select at least one photo "
        "within the selection limit."
    )


class TokenInvalid(DownloadError):
    """Malformed token or signature mismatch."""

    status_code = 400
    code = "invalid"
    message = "This download link is invalid. Please check that you copied the whole link."


class TokenExpired(DownloadError):
    """Token is past its validity window."""

    status_code = 410
    code = "expired"
    message = "This download link has expired. Please request a new link from the gallery."


class TooManyConcurrentBuilds(DownloadError):
    """Global build capacity reached; the client may retry shortly."""

    status_code = 429
    code = "rate_limited"
    message = "We are preparing several downloads right now. Please try again in a minute."

    def __init__(self, limit: int, retry_after: int = 30):
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(f"{limit} archive builds already in progress")


class NoContent(DownloadError):
    """None of the referenced items could be resolved or fetched."""

    status_code = 500
    code = "empty"
    message = (
        "None of the selected photos could be retrieved. They may have been removed; "
        "please contact the organizers if you think this is a mistake."
    )


class DeliveryError(DownloadError):
    """The download link could not be delivered to the recipient."""

    status_code = 502
    code = "delivery_failed"
    message = "We could not send the email with your download link. Please try again later."
