"""Floating mode (GFM) summary over an IDHR histogram."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from str_aux.models import FloatingModeResult, Histogram, Nucleus, Opening, Point
from str_aux.utils import is_positive

from .idhr import DEFAULT_IDHR, IdhrConfig, histogram_from_returns, log_returns
from .nuclei import extract_nuclei, smooth_counts

DISRUPTION_SMOOTH_WINDOW = 3


def argmax(xs: Sequence[float]) -> int:
    """Index of the largest value; the first one wins on ties."""
    idx, best = 0, -math.inf
    for i, x in enumerate(xs):
        if x > best:
            idx, best = i, x
    return idx


def summarize_floating_mode(
    histogram: Histogram,
    nuclei: Sequence[Nucleus],
    returns: Sequence[float],
) -> FloatingModeResult:
    """Combine a histogram, its nuclei and the raw returns into one summary."""
    mode_idx = argmax(histogram.counts)
    gfm = histogram.edges[mode_idx] if histogram.edges else 0.0

    sigma = histogram.std_r
    center = histogram.mu_r
    n = len(returns)

    mean_abs_z = sum(abs(r - center) / sigma for r in returns) / n if n else 0.0
    inertia = sum((r - center) ** 2 for r in returns) / n if n else 0.0

    # Mass on either side of the mode; the smaller side is "inner".
    left = sum(histogram.counts[:mode_idx])
    right = sum(histogram.counts[mode_idx + 1:])
    inner = max(0, min(left, right))
    outer = max(0, left + right - inner)

    sm = smooth_counts(histogram.counts, DISRUPTION_SMOOTH_WINDOW)
    disruption = 0.0
    for i in range(1, len(sm)):
        disruption += abs(sm[i] - sm[i - 1])
    disruption /= len(sm) or 1

    return FloatingModeResult(
        gfm=gfm,
        confidence=1.0 / (1.0 + mean_abs_z),
        inertia=inertia,
        disruption=disruption,
        mean_abs_z=mean_abs_z,
        sigma=sigma,
        inner_mass=float(inner),
        outer_mass=float(outer),
        nuclei=tuple(nuclei),
        sample_size=n,
    )


def compute_floating_mode(
    points: Iterable[Point],
    opening: Opening,
    config: IdhrConfig = DEFAULT_IDHR,
) -> FloatingModeResult:
    """Histogram + nuclei + summary for a point series in one call."""
    returns = log_returns(points, opening)
    histogram = histogram_from_returns(returns, config)
    nuclei = extract_nuclei(histogram, config.top_n)
    return summarize_floating_mode(histogram, nuclei, returns)


def gfm_to_price(gfm: float, benchmark: float) -> float:
    """Map a return-space mode back to price space (NaN when undefined)."""
    if not is_positive(benchmark) or not math.isfinite(gfm):
        return math.nan
    try:
        price = benchmark * math.exp(gfm)
    except OverflowError:
        return math.nan
    return price if math.isfinite(price) else math.nan
