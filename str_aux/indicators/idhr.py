"""IDHR: deterministic log-return histogram.

Returns are measured against the session opening price as
``ln(price / opening.benchmark)``. The histogram spans ``mu +/- alpha*sigma``
of those returns, split into evenly spaced edges; every return is assigned to
its nearest edge (out-of-range returns clamp to the outermost bin).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterable

from str_aux.errors import ConfigurationError
from str_aux.models import Histogram, Opening, Point
from str_aux.utils import get_logger, is_positive, round_half_up

MIN_BINS = 8

logger = get_logger("indicators.idhr")


@dataclass(frozen=True)
class IdhrConfig:
    inner_bins: int = 5
    outer_bins: int = 4
    alpha: float = 2.5
    sigma_floor: float = 1e-6
    top_n: int = 3
    total_bins: int | None = None

    def __post_init__(self) -> None:
        if self.inner_bins < 0 or self.outer_bins < 0:
            raise ConfigurationError(
                f"inner_bins/outer_bins must be >= 0 (got {self.inner_bins}/{self.outer_bins})"
            )
        if not math.isfinite(self.alpha) or self.alpha < 0:
            raise ConfigurationError(f"alpha must be a finite number >= 0 (got {self.alpha})")
        if not is_positive(self.sigma_floor):
            raise ConfigurationError(f"sigma_floor must be > 0 (got {self.sigma_floor})")
        if self.top_n < 1:
            raise ConfigurationError(f"top_n must be >= 1 (got {self.top_n})")
        if self.total_bins is not None and self.total_bins < 1:
            raise ConfigurationError(f"total_bins must be >= 1 when set (got {self.total_bins})")

    @property
    def bin_count(self) -> int:
        parts = self.inner_bins + 2 * self.outer_bins + 1
        requested = self.total_bins if self.total_bins is not None else parts
        return max(MIN_BINS, int(requested))


DEFAULT_IDHR = IdhrConfig()


def mean(xs: list[float]) -> float:
    return sum(xs) / len(xs) if xs else 0.0


def stdev(xs: list[float]) -> float:
    """Sample standard deviation; 0 for fewer than two values."""
    if len(xs) < 2:
        return 0.0
    m = mean(xs)
    var = sum((x - m) ** 2 for x in xs) / (len(xs) - 1)
    return math.sqrt(max(0.0, var))


def linspace(lo: float, hi: float, n: int) -> list[float]:
    if n <= 1:
        return [lo]
    step = (hi - lo) / (n - 1)
    return [lo + i * step for i in range(n)]


def log_returns(points: Iterable[Point], opening: Opening) -> list[float]:
    """Log returns of every usable point against the opening benchmark.

    Points with a non-finite or non-positive price are dropped. An unusable
    benchmark yields no returns at all.
    """
    if not is_positive(opening.benchmark):
        return []
    p0 = float(opening.benchmark)
    out: list[float] = []
    for p in points:
        if is_positive(p.price):
            r = math.log(p.price / p0)
            if math.isfinite(r):
                out.append(r)
    return out


def build_histogram(
    points: Iterable[Point],
    opening: Opening,
    config: IdhrConfig = DEFAULT_IDHR,
) -> Histogram:
    """Build the IDHR histogram for a point series."""
    points = list(points)
    returns = log_returns(points, opening)
    if len(returns) < len(points):
        logger.debug("idhr_points_dropped", dropped=len(points) - len(returns), kept=len(returns))
    return histogram_from_returns(returns, config)


def histogram_from_returns(returns: list[float], config: IdhrConfig = DEFAULT_IDHR) -> Histogram:
    mu0 = mean(returns)
    sd0 = max(stdev(returns), config.sigma_floor)

    span = config.alpha * sd0
    r_min = mu0 - span
    r_max = mu0 + span

    bins = config.bin_count
    edges = linspace(r_min, r_max, bins)

    counts = [0] * bins
    step = (r_max - r_min) / (bins - 1) if bins > 1 else 0.0
    for r in returns:
        if step > 0:
            idx = min(max(round_half_up((r - r_min) / step), 0), bins - 1)
        else:
            idx = 0
        counts[idx] += 1

    total = sum(counts)
    probs = [c / total if total > 0 else 0.0 for c in counts]

    # Stats over the in-window returns only; clamped outliers still sit in the counts.
    in_window = [r for r in returns if r_min <= r <= r_max]
    mu_r = mean(in_window)
    std_r = max(stdev(in_window), config.sigma_floor)

    return Histogram(
        edges=tuple(edges),
        counts=tuple(counts),
        probs=tuple(probs),
        mu_r=mu_r,
        std_r=std_r,
    )


def build_histogram_n(
    points: Iterable[Point],
    opening: Opening,
    config: IdhrConfig = DEFAULT_IDHR,
    n: int = 128,
) -> Histogram:
    """Histogram with an exact bin count (used by the 128-bin UI strip)."""
    return build_histogram(points, opening, replace(config, total_bins=n))
