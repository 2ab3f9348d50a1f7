"""Value types passed between the histogram, nuclei and floating-mode stages."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from str_aux.utils.helpers import to_float


@dataclass(frozen=True)
class Point:
    """One market sample: timestamp (ms), last price and volume."""
    ts: int
    price: float
    volume: float = 0.0

    @classmethod
    def from_mapping(cls, row: dict[str, Any]) -> "Point":
        """Build from a `{ts, price, volume}` row.

        A missing or malformed price becomes NaN so the point is dropped
        downstream; malformed ts and volume fall back to 0.
        """
        return cls(
            ts=int(to_float(row.get("ts"))),
            price=to_float(row.get("price"), math.nan),
            volume=to_float(row.get("volume")),
        )


@dataclass(frozen=True)
class Opening:
    """Opening reference of a session; `benchmark` is the opening price."""
    benchmark: float
    pct24h: float = 0.0
    ts: int = 0


@dataclass(frozen=True)
class Histogram:
    """Log-return histogram over `len(edges)` nearest-edge bins."""
    edges: tuple[float, ...]
    counts: tuple[int, ...]
    probs: tuple[float, ...]
    mu_r: float
    std_r: float

    @property
    def bins(self) -> int:
        return len(self.edges)

    @property
    def total(self) -> int:
        return sum(self.counts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "edges": list(self.edges),
            "counts": list(self.counts),
            "probs": list(self.probs),
            "muR": self.mu_r,
            "stdR": self.std_r,
        }


@dataclass(frozen=True)
class Nucleus:
    """A local density peak of the smoothed histogram."""
    bin_index: int
    density: float
    first_derivative: float
    second_derivative: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "binIndex": self.bin_index,
            "density": self.density,
            "firstDerivative": self.first_derivative,
            "secondDerivative": self.second_derivative,
        }


@dataclass(frozen=True)
class FloatingModeResult:
    """Floating mode summary of one histogram.

    `gfm` is in return space (log of price over the opening benchmark).
    `sample_size == 0` means there were no usable returns and `gfm` carries
    no information.
    """
    gfm: float
    confidence: float
    inertia: float
    disruption: float
    mean_abs_z: float
    sigma: float
    inner_mass: float
    outer_mass: float
    nuclei: tuple[Nucleus, ...] = field(default_factory=tuple)
    sample_size: int = 0

    @property
    def has_estimate(self) -> bool:
        return self.sample_size > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "gfm": self.gfm,
            "confidence": self.confidence,
            "inertia": self.inertia,
            "disruption": self.disruption,
            "zMeanAbs": self.mean_abs_z,
            "sigma": self.sigma,
            "vInner": self.inner_mass,
            "vOuter": self.outer_mass,
            "nuclei": [n.to_dict() for n in self.nuclei],
            "sampleSize": self.sample_size,
        }
