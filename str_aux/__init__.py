"""str-aux: IDHR floating mode and per-symbol shift/swap sessions."""

__version__ = "0.3.0"

from .errors import ConfigurationError, SchemaVersionError, StrAuxError
from .models import FloatingModeResult, Histogram, Nucleus, Opening, Point
from .indicators import build_histogram, compute_floating_mode, extract_nuclei, gfm_to_price
from .session import (
    AnchorPolicy,
    SessionStore,
    SymbolSession,
    UpdateResult,
    create_session,
    export_streams,
    update_session,
)

__all__ = [
    "__version__",
    "StrAuxError",
    "ConfigurationError",
    "SchemaVersionError",
    "Point",
    "Opening",
    "Histogram",
    "Nucleus",
    "FloatingModeResult",
    "build_histogram",
    "extract_nuclei",
    "compute_floating_mode",
    "gfm_to_price",
    "AnchorPolicy",
    "SessionStore",
    "SymbolSession",
    "UpdateResult",
    "create_session",
    "update_session",
    "export_streams",
]
