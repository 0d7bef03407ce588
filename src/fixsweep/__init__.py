"""fixsweep package root."""

from fixsweep.exceptions import (
    ConfigError,
    FixsweepError,
    LspClientError,
    NeverThrown,
    ProviderRequestError,
)
from fixsweep.invariants import never

__all__ = [
    "__version__",
    "ConfigError",
    "FixsweepError",
    "LspClientError",
    "NeverThrown",
    "ProviderRequestError",
    "never",
]

__version__ = "0.1.0"
