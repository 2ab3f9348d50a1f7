"""Persisted session shape, schema migration and the repository interface.

Sessions are persisted as one explicit, versioned record. Older payloads
(camelCase keys, the anchor stored under ``gfmAnchorPrice``, snapshots as JSON
strings) go through :func:`migrate_session_payload` exactly once, at the
boundary, instead of every reader guessing field names.
"""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

from str_aux.errors import SchemaVersionError
from str_aux.windows import WindowKey

from .state import AnchorPolicy, Snapshot, SymbolSession

SCHEMA_VERSION = 2


class SessionRecordKey(BaseModel):
    """Persistence key of a session row."""

    model_config = ConfigDict(frozen=True)

    base: str
    quote: str = "USDT"
    window: WindowKey = "30m"
    app_session_id: str = "ui"

    @property
    def symbol(self) -> str:
        return f"{self.base}{self.quote}".upper()


class SnapshotRecord(BaseModel):
    ts: int
    price: float
    bench_pct: float = 0.0
    pct_drv: float = 0.0
    pct24h: float = 0.0


class SessionRecord(BaseModel):
    """Versioned, flat persisted form of :class:`SymbolSession`."""

    schema_version: Literal[2] = SCHEMA_VERSION

    opening_ts: int
    opening_price: float = Field(gt=0)

    price_min: float
    price_max: float
    bench_pct_min: float = 0.0
    bench_pct_max: float = 0.0

    swaps: int = Field(default=0, ge=0)
    shifts: int = Field(default=0, ge=0)

    eta_pct: float = Field(default=0.05, ge=0)
    eps_shift_pct: float = Field(default=0.2, ge=0)
    k: int = Field(default=32, ge=1)
    anchor_policy: AnchorPolicy = AnchorPolicy.ESTIMATE

    last_bench_sign: Literal[-1, 0, 1] = 0

    gfm_ref_price: float | None = None
    gfm_calc_price: float | None = None
    gfm_anchor_price: float | None = None

    above_count: int = Field(default=0, ge=0)
    below_count: int = Field(default=0, ge=0)
    ui_epoch: int = Field(default=0, ge=0)

    snap_prev: SnapshotRecord | None = None
    snap_cur: SnapshotRecord | None = None

    greatest_bench_abs: float = 0.0
    greatest_drv_abs: float = 0.0
    greatest_24h_abs: float = 0.0
    gfm_delta_abs_pct: float = 0.0

    last_price: float | None = None
    last_update_ts: int | None = None

    @classmethod
    def from_session(cls, session: SymbolSession) -> "SessionRecord":
        return cls.model_validate(session.to_dict())

    def to_session(self) -> SymbolSession:
        data = self.model_dump(exclude={"schema_version", "snap_prev", "snap_cur"})
        return SymbolSession(
            **data,
            snap_prev=Snapshot(**self.snap_prev.model_dump()) if self.snap_prev else None,
            snap_cur=Snapshot(**self.snap_cur.model_dump()) if self.snap_cur else None,
        )


class SessionEvent(BaseModel):
    kind: Literal["opening", "shift", "swap"]
    ts: int
    payload: dict[str, Any] = Field(default_factory=dict)


# v1 (camelCase / DB column) name -> v2 field
_V1_FIELDS: dict[str, tuple[str, ...]] = {
    "opening_ts": ("openingTs", "opening_ts"),
    "opening_price": ("openingPrice", "opening_price"),
    "price_min": ("priceMin", "price_min"),
    "price_max": ("priceMax", "price_max"),
    "bench_pct_min": ("benchPctMin", "bench_pct_min"),
    "bench_pct_max": ("benchPctMax", "bench_pct_max"),
    "swaps": ("swaps",),
    "shifts": ("shifts",),
    "eta_pct": ("etaPct", "eta_pct"),
    "eps_shift_pct": ("epsShiftPct", "eps_shift_pct"),
    "k": ("K", "k_cycles", "k"),
    "last_bench_sign": ("lastBenchSign", "last_bench_sign"),
    "gfm_calc_price": ("gfmCalcPrice", "gfm_calc_price_last", "gfm_calc_price"),
    "above_count": ("aboveCount", "above_count"),
    "below_count": ("belowCount", "below_count"),
    "ui_epoch": ("uiEpoch", "ui_epoch"),
    "greatest_bench_abs": ("greatestBenchAbs", "greatest_bench_abs"),
    "greatest_drv_abs": ("greatestDrvAbs", "greatest_drv_abs"),
    "greatest_24h_abs": ("greatestPct24hAbs", "greatest_pct24h_abs"),
    "gfm_delta_abs_pct": ("gfmDeltaAbsPct", "gfm_delta_last"),
    "last_price": ("lastPrice", "last_price"),
    "last_update_ts": ("lastUpdateMs", "last_update_ms"),
}

_V1_COUNTERS = ("swaps", "shifts", "above_count", "below_count", "ui_epoch")


def _first(payload: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    return None


def _migrate_snapshot(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        return None
    return {
        "ts": raw.get("ts", 0),
        "price": raw.get("price"),
        "bench_pct": raw.get("benchPct", raw.get("bench_pct", 0.0)),
        "pct_drv": raw.get("pctDrv", raw.get("pct_drv", 0.0)),
        "pct24h": raw.get("pct24h", 0.0),
    }


def _migrate_v1(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {"schema_version": SCHEMA_VERSION}
    for field_name, names in _V1_FIELDS.items():
        value = _first(payload, names)
        if value is not None:
            out[field_name] = value
    for name in _V1_COUNTERS:
        out.setdefault(name, 0)

    # v1 stored GFMr as gfmRefPrice, or only in the gfm_anchor_price column.
    ref = _first(payload, ("gfmRefPrice",))
    anchor = _first(payload, ("gfmAnchorPrice", "gfm_anchor_price"))
    if ref is not None:
        out["gfm_ref_price"] = ref
        if anchor is not None:
            out["gfm_anchor_price"] = anchor
    elif anchor is not None:
        out["gfm_ref_price"] = anchor

    out["snap_prev"] = _migrate_snapshot(_first(payload, ("snapPrev", "snap_prev")))
    out["snap_cur"] = _migrate_snapshot(_first(payload, ("snapCur", "snap_cur")))

    opening = out.get("opening_price")
    out.setdefault("price_min", opening)
    out.setdefault("price_max", opening)
    return out


def migrate_session_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a stored session payload to the current schema.

    Raises:
        SchemaVersionError: for versions this code does not know.
    """
    version = payload.get("schema_version", payload.get("schemaVersion", 1))
    if version == SCHEMA_VERSION:
        return dict(payload)
    if version == 1:
        return _migrate_v1(payload)
    raise SchemaVersionError(f"unsupported session schema version: {version!r}")


def session_from_payload(payload: dict[str, Any]) -> SymbolSession:
    return SessionRecord.model_validate(migrate_session_payload(payload)).to_session()


class SessionRepository(Protocol):
    """Persistence collaborator for sessions and their event log."""

    async def load(self, key: SessionRecordKey) -> SymbolSession | None: ...

    async def save(self, key: SessionRecordKey, session: SymbolSession) -> None: ...

    async def append_event(self, key: SessionRecordKey, event: SessionEvent) -> None: ...


class MemorySessionRepository:
    """Process-local repository; rows are kept as serialized payloads."""

    def __init__(self) -> None:
        self.rows: dict[SessionRecordKey, dict[str, Any]] = {}
        self.events: defaultdict[SessionRecordKey, list[SessionEvent]] = defaultdict(list)

    async def load(self, key: SessionRecordKey) -> SymbolSession | None:
        row = self.rows.get(key)
        return session_from_payload(row) if row is not None else None

    async def save(self, key: SessionRecordKey, session: SymbolSession) -> None:
        self.rows[key] = SessionRecord.from_session(session).model_dump(mode="json")

    async def append_event(self, key: SessionRecordKey, event: SessionEvent) -> None:
        self.events[key].append(event)
