"""Exception hierarchy for upstream fetch failures."""


class LiveTVError(Exception):
    """Base class for errors raised by this package."""
    pass


class FetchError(LiveTVError):
    """Raised when an upstream playlist or schedule cannot be retrieved."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url
