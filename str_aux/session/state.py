"""Per-symbol session state machine.

A session is opened once per (app session, symbol) and then fed one tick at a
time. Every tick carries the market price and the current floating-mode
estimate converted to price space (GFMc). The session tracks:

* running price / benchmark-% extrema (widen only),
* swaps: sign flips of the benchmark % that clear the ``eta_pct`` band on
  both sides,
* shifts: ``k`` consecutive ticks outside the ``eps_shift_pct`` band around
  the reference anchor (GFMr). A confirmed shift snapshots the tick,
  re-anchors GFMr and bumps ``ui_epoch``.

GFMr is bootstrapped from the first valid GFMc and afterwards moves only on a
confirmed shift.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from str_aux.errors import ConfigurationError
from str_aux.utils import is_positive, pct_change, to_float


class AnchorPolicy(str, Enum):
    """What GFMr is re-anchored to when a shift is confirmed."""

    ESTIMATE = "estimate"  # the live GFMc at confirmation time
    PRICE = "price"        # the market price at confirmation time


@dataclass
class Snapshot:
    ts: int
    price: float
    bench_pct: float = 0.0
    pct_drv: float = 0.0
    pct24h: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "ts": self.ts,
            "price": self.price,
            "benchPct": self.bench_pct,
            "pctDrv": self.pct_drv,
            "pct24h": self.pct24h,
        }


@dataclass
class SymbolSession:
    """Mutable state of one (app session, symbol) pair."""

    opening_ts: int
    opening_price: float

    price_min: float
    price_max: float
    bench_pct_min: float = 0.0
    bench_pct_max: float = 0.0

    swaps: int = 0
    shifts: int = 0

    eta_pct: float = 0.05
    eps_shift_pct: float = 0.2
    k: int = 32
    anchor_policy: AnchorPolicy = AnchorPolicy.ESTIMATE

    last_bench_sign: int = 0

    gfm_ref_price: float | None = None
    gfm_calc_price: float | None = None
    gfm_anchor_price: float | None = None

    above_count: int = 0
    below_count: int = 0

    ui_epoch: int = 0

    snap_prev: Snapshot | None = None
    snap_cur: Snapshot | None = None

    greatest_bench_abs: float = 0.0
    greatest_drv_abs: float = 0.0
    greatest_24h_abs: float = 0.0

    gfm_delta_abs_pct: float = 0.0

    last_price: float | None = None
    last_update_ts: int | None = None

    @property
    def is_anchored(self) -> bool:
        return self.gfm_ref_price is not None

    def band(self) -> tuple[float, float] | None:
        """(lower, upper) shift band around GFMr, or None before the anchor exists."""
        if not is_positive(self.gfm_ref_price):
            return None
        ref = float(self.gfm_ref_price)
        return (
            ref * (1.0 - self.eps_shift_pct / 100.0),
            ref * (1.0 + self.eps_shift_pct / 100.0),
        )

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["anchor_policy"] = self.anchor_policy.value
        return out


@dataclass(frozen=True)
class UpdateResult:
    bench_pct: float
    pct_drv: float
    pct24h: float
    is_shift: bool
    gfm_delta_abs_pct: float
    gfm_ref_price: float | None
    gfm_calc_price: float | None
    ui_epoch: int
    is_swap: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "benchPct": self.bench_pct,
            "pctDrv": self.pct_drv,
            "pct24h": self.pct24h,
            "isShift": self.is_shift,
            "isSwap": self.is_swap,
            "gfmDeltaAbsPct": self.gfm_delta_abs_pct,
            "gfmRefPrice": self.gfm_ref_price,
            "gfmCalcPrice": self.gfm_calc_price,
            "uiEpoch": self.ui_epoch,
        }


@dataclass(frozen=True)
class StreamTriple:
    prev: float
    cur: float
    greatest: float


@dataclass(frozen=True)
class Streams:
    benchmark: StreamTriple
    pct24h: StreamTriple
    pct_drv: StreamTriple

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {
            "benchmark": asdict(self.benchmark),
            "pct24h": asdict(self.pct24h),
            "pct_drv": asdict(self.pct_drv),
        }


def sign(x: float, eps: float = 0.0) -> int:
    """Tri-state sign with a dead band of +/- eps around zero."""
    if x > eps:
        return 1
    if x < -eps:
        return -1
    return 0


def validate_session_config(eta_pct: float, eps_shift_pct: float, k: int) -> None:
    if not isinstance(k, int) or isinstance(k, bool) or k < 1:
        raise ConfigurationError(f"k (confirmation cycles) must be an integer >= 1, got {k!r}")
    if not math.isfinite(eta_pct) or eta_pct < 0:
        raise ConfigurationError(f"eta_pct (swap hysteresis) must be a finite number >= 0, got {eta_pct!r}")
    if not math.isfinite(eps_shift_pct) or eps_shift_pct < 0:
        raise ConfigurationError(f"eps_shift_pct (shift band) must be a finite number >= 0, got {eps_shift_pct!r}")


def create_session(
    opening_price: float,
    ts: int,
    eta_pct: float = 0.05,
    eps_shift_pct: float = 0.2,
    k: int = 32,
    anchor_policy: AnchorPolicy | str = AnchorPolicy.ESTIMATE,
) -> SymbolSession:
    """Open a fresh session with zeroed counters.

    Raises:
        ConfigurationError: if thresholds, ``k``, the anchor policy or the
            opening price are unusable.
    """
    validate_session_config(eta_pct, eps_shift_pct, k)
    if not is_positive(opening_price):
        raise ConfigurationError(f"opening_price must be a finite number > 0, got {opening_price!r}")
    try:
        policy = AnchorPolicy(anchor_policy)
    except ValueError as e:
        raise ConfigurationError(f"unknown anchor policy {anchor_policy!r}") from e

    opening_price = float(opening_price)
    snap0 = Snapshot(ts=ts, price=opening_price)
    return SymbolSession(
        opening_ts=ts,
        opening_price=opening_price,
        price_min=opening_price,
        price_max=opening_price,
        eta_pct=float(eta_pct),
        eps_shift_pct=float(eps_shift_pct),
        k=k,
        anchor_policy=policy,
        snap_prev=snap0,
        snap_cur=snap0,
        last_price=opening_price,
    )


def update_session(
    session: SymbolSession,
    price: float,
    ts: int,
    gfm_calc_price: float | None,
    pct24h: float = 0.0,
) -> UpdateResult:
    """Feed one tick into the session (mutates it in place).

    A tick without a usable price leaves the session untouched and returns the
    current anchor state with ``is_shift=False``.
    """
    pct24h = to_float(pct24h)

    if not is_positive(price):
        return UpdateResult(
            bench_pct=0.0,
            pct_drv=0.0,
            pct24h=pct24h,
            is_shift=False,
            gfm_delta_abs_pct=session.gfm_delta_abs_pct,
            gfm_ref_price=session.gfm_ref_price,
            gfm_calc_price=session.gfm_calc_price,
            ui_epoch=session.ui_epoch,
        )
    price = float(price)

    # 1-2. record GFMc; the first valid one also becomes the anchor
    if is_positive(gfm_calc_price):
        session.gfm_calc_price = float(gfm_calc_price)
    if session.gfm_ref_price is None and session.gfm_calc_price is not None:
        session.gfm_ref_price = session.gfm_calc_price

    # 3. instantaneous
    bench_pct = pct_change(price, session.opening_price)
    prev_price = session.last_price if is_positive(session.last_price) else price
    pct_drv = pct_change(price, prev_price)
    session.last_price = price
    session.last_update_ts = ts

    # 4. extrema
    session.price_min = min(session.price_min, price)
    session.price_max = max(session.price_max, price)
    session.bench_pct_min = min(session.bench_pct_min, bench_pct)
    session.bench_pct_max = max(session.bench_pct_max, bench_pct)

    # 5. swaps
    is_swap = False
    s = sign(bench_pct, session.eta_pct)
    if s != 0 and session.last_bench_sign != 0 and s != session.last_bench_sign:
        session.swaps += 1
        is_swap = True
    if s != 0:
        session.last_bench_sign = s

    # 6. distance from the anchor
    if is_positive(session.gfm_ref_price):
        session.gfm_delta_abs_pct = abs(price / session.gfm_ref_price - 1.0) * 100.0
    else:
        session.gfm_delta_abs_pct = 0.0

    # 7. shifts
    is_shift = False
    band = session.band()
    if band is not None:
        lower, upper = band
        if price >= upper:
            session.above_count += 1
            session.below_count = 0
        elif price <= lower:
            session.below_count += 1
            session.above_count = 0
        else:
            session.above_count = 0
            session.below_count = 0

        if session.above_count >= session.k or session.below_count >= session.k:
            session.snap_prev = session.snap_cur
            session.snap_cur = Snapshot(
                ts=ts, price=price, bench_pct=bench_pct, pct_drv=pct_drv, pct24h=pct24h
            )
            _reanchor(session, price)
            session.above_count = 0
            session.below_count = 0
            session.shifts += 1
            session.ui_epoch += 1
            is_shift = True

    # 8. greatest magnitudes
    session.greatest_bench_abs = max(session.greatest_bench_abs, abs(bench_pct))
    session.greatest_drv_abs = max(session.greatest_drv_abs, abs(pct_drv))
    session.greatest_24h_abs = max(session.greatest_24h_abs, abs(pct24h))

    return UpdateResult(
        bench_pct=bench_pct,
        pct_drv=pct_drv,
        pct24h=pct24h,
        is_shift=is_shift,
        gfm_delta_abs_pct=session.gfm_delta_abs_pct,
        gfm_ref_price=session.gfm_ref_price,
        gfm_calc_price=session.gfm_calc_price,
        ui_epoch=session.ui_epoch,
        is_swap=is_swap,
    )


def _reanchor(session: SymbolSession, price: float) -> None:
    if session.anchor_policy is AnchorPolicy.PRICE:
        session.gfm_ref_price = price
    elif is_positive(session.gfm_calc_price):
        session.gfm_ref_price = session.gfm_calc_price
    session.gfm_anchor_price = price


def export_streams(session: SymbolSession) -> Streams:
    """Read-only prev/cur/greatest projection of the shift snapshots."""
    prev = session.snap_prev or Snapshot(ts=session.opening_ts, price=session.opening_price)
    cur = session.snap_cur or prev
    return Streams(
        benchmark=StreamTriple(prev=prev.price, cur=cur.price, greatest=session.price_max),
        pct24h=StreamTriple(prev=prev.pct24h, cur=cur.pct24h, greatest=session.greatest_24h_abs),
        pct_drv=StreamTriple(prev=prev.pct_drv, cur=cur.pct_drv, greatest=session.greatest_drv_abs),
    )
