"""
Bridge errors.

Every failure the resolver or the stream bridge can surface derives from
BridgeError. The HTTP layer maps them to status codes; StreamAborted has no
status because headers are already committed when it fires.
"""


class BridgeError(Exception):
    """Base exception for resolver and stream failures."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self):
        return str(self)


class InvalidInput(BridgeError):
    """A required parameter was missing or empty."""

    status_code = 400
    default_message = "Invalid input"


class ExtractionFailed(BridgeError):
    """
    yt-dlp could not produce metadata.

    Raised when:
    - the binary cannot be spawned
    - it exits non-zero (private, age-restricted, unsupported URL, network)
    - its output is not a JSON object
    """

    default_message = (
        "Failed to fetch video details. The video may be private, "
        "age-restricted, or the URL is invalid."
    )


class StreamStartFailed(BridgeError):
    """The download process or its stdout could not be established."""

    default_message = "Failed to start download."


class StreamAborted(BridgeError):
    """The download failed after bytes had already been sent."""

    default_message = "Download aborted."
