"""Exception types raised by fixsweep."""

from __future__ import annotations


class FixsweepError(RuntimeError):
    pass


class ProviderRequestError(FixsweepError):
    """A provider answered a request with an error, or could not answer it."""

    def __init__(self, message: str, *, method: str = "", code: int | None = None):
        super().__init__(message)
        self.method = method
        self.code = code


class LspClientError(FixsweepError):
    pass


class ConfigError(FixsweepError):
    pass


class NeverThrown(FixsweepError):
    """Raised by never() when a path assumed unreachable is reached.

    The keyword payload passed to never() is kept on ``env`` so that callers
    and tests can inspect what state led there.
    """

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})
