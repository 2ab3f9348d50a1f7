"""Nuclei: density peaks of the IDHR histogram."""

from __future__ import annotations

from typing import Sequence

from str_aux.models import Histogram, Nucleus

NUCLEI_SMOOTH_WINDOW = 5


def smooth_counts(xs: Sequence[float], window: int = 3) -> list[float]:
    """Centered moving average, truncated (not padded) at the edges."""
    n = len(xs)
    if n == 0 or window <= 1:
        return [float(x) for x in xs]
    half = window // 2
    out = [0.0] * n
    for i in range(n):
        lo = max(0, i - half)
        hi = min(n, i + half + 1)
        out[i] = sum(xs[lo:hi]) / (hi - lo)
    return out


def extract_nuclei(histogram: Histogram, k: int) -> list[Nucleus]:
    """Return the `k` tallest strict local maxima of the smoothed counts.

    Peaks are ranked by smoothed height, ties keep left-to-right order. A flat
    or monotone histogram has no interior maximum and yields an empty list;
    callers treat that as "not enough data yet".
    """
    sm = smooth_counts(histogram.counts, NUCLEI_SMOOTH_WINDOW)
    n = len(sm)

    peaks = [i for i in range(1, n - 1) if sm[i] > sm[i - 1] and sm[i] > sm[i + 1]]
    peaks = sorted(peaks, key=lambda i: sm[i], reverse=True)[: max(1, k)]

    total = histogram.total
    out: list[Nucleus] = []
    for i in peaks:
        out.append(
            Nucleus(
                bin_index=i,
                density=histogram.counts[i] / total if total > 0 else 0.0,
                first_derivative=(sm[i + 1] - sm[i - 1]) / 2.0,
                second_derivative=sm[i + 1] - 2.0 * sm[i] + sm[i - 1],
            )
        )
    return out
