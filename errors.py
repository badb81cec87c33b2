"""
Exception types raised by the call relay.
"""


class CallRelayError(Exception):
    """Base class for errors raised by this project."""


class ConfigurationError(CallRelayError):
    """Settings are missing or inconsistent."""


class MalformedFrameError(CallRelayError):
    """An inbound socket frame could not be parsed."""

    def __init__(self, message: str, raw=None):
        super().__init__(message)
        self.raw = raw


class SessionAlreadyExistsError(CallRelayError):
    """A session is already registered for this connection."""


class UnsupportedProviderError(CallRelayError):
    """The requested chat provider is not known."""

    def __init__(self, provider: str, supported):
        super().__init__(
            f"Unsupported chat provider: {provider}. "
            f"Supported providers: {', '.join(repr(p) for p in supported)}"
        )
        self.provider = provider
