from typing import Optional


class ConciergeError(Exception):
    """Base class for every error raised by the bot."""


class ConfigurationError(ConciergeError):
    """
    Raised when settings or the repository map are missing or invalid.

    Fatal at startup.
    """
    pass


class VerificationError(ConciergeError):
    """
    Raised when an inbound webhook delivery fails admission.

    The reason is shown to the sender as-is.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UpstreamError(ConciergeError):
    """
    Raised when GitHub answers with a non-2xx status.
    """

    def __init__(self, status_code: int, message: str, url: Optional[str] = None):
        super().__init__(f"Status code ERROR: {status_code}, {message}")
        self.status_code = status_code
        self.message = message
        self.url = url


class DataIntegrityError(ConciergeError):
    """
    Raised when a GitHub response does not have the shape we rely on.
    """
    pass


class TemplateRenderError(ConciergeError):
    """
    Raised when a message template compiles but fails to render.
    """

    def __init__(self, name: str, message: str):
        super().__init__(f"Template {name!r} failed to render: {message}")
        self.name = name
