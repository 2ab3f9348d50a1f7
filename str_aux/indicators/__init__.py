"""IDHR histogram, nuclei and floating mode indicators."""

from .idhr import DEFAULT_IDHR, IdhrConfig, build_histogram, build_histogram_n, log_returns
from .nuclei import extract_nuclei, smooth_counts
from .floating_mode import compute_floating_mode, gfm_to_price, summarize_floating_mode

__all__ = [
    "DEFAULT_IDHR",
    "IdhrConfig",
    "build_histogram",
    "build_histogram_n",
    "log_returns",
    "extract_nuclei",
    "smooth_counts",
    "compute_floating_mode",
    "summarize_floating_mode",
    "gfm_to_price",
]
