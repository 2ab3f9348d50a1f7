"""Exception types raised by the engine.

Only static misconfiguration and unreadable persisted payloads raise. Bad ticks
and thin data are guarded inside the computations and never surface here.
"""


class StrAuxError(Exception):
    """Base class for engine errors."""


class ConfigurationError(StrAuxError, ValueError):
    """Invalid session or histogram configuration."""


class SchemaVersionError(StrAuxError, ValueError):
    """A persisted session payload has an unsupported schema version."""
