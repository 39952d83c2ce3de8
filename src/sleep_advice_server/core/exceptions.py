"""Error types shared across the advice pipeline."""


class SleepAdviceError(Exception):
    """Base error for sleep-advice-server."""


class ConfigurationError(SleepAdviceError):
    """Required configuration is missing or invalid.

    Raised while the application is being built, never per request.
    """


class UpstreamError(SleepAdviceError):
    """The generation API failed (auth, quota, network or malformed response).

    Attributes:
        message: Human-readable description, safe to show to end users
        status_code: HTTP status returned by the API, if any
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
