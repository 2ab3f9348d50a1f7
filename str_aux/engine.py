"""Tick engine: points -> floating mode -> session update -> repository."""

from __future__ import annotations

import asyncio
import math
from typing import Any, Iterable

from str_aux.config import Settings, get_settings
from str_aux.indicators import compute_floating_mode, gfm_to_price
from str_aux.models import FloatingModeResult, Opening, Point
from str_aux.session import (
    SessionEvent,
    SessionKey,
    SessionRecordKey,
    SessionRepository,
    SessionStore,
    SymbolSession,
    UpdateResult,
    export_streams,
)
from str_aux.utils import get_logger, is_positive, to_float
from str_aux.windows import WINDOW_POINT_COUNTS, compact_for_window


QUOTE_ASSETS: tuple[str, ...] = ("USDT", "BTC", "ETH", "BNB", "SOL", "ADA", "XRP", "PEPE")


def split_symbol(
    symbol: str,
    quotes: Iterable[str] = QUOTE_ASSETS,
    default_quote: str = "USDT",
) -> tuple[str, str]:
    """Split a pair into (base, quote), e.g. 'ETHBTC' -> ('ETH', 'BTC').

    The longest matching quote suffix wins. A symbol that ends in none of the
    quotes (or is a bare quote asset) is returned whole with ``default_quote``.
    """
    symbol = symbol.upper()
    for quote in sorted((q.upper() for q in quotes), key=len, reverse=True):
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)], quote
    return symbol, default_quote.upper()


def _finite_or_none(x: float | None) -> float | None:
    if x is None or not math.isfinite(x):
        return None
    return x


class StrAuxEngine:
    """Drives one tick per (app session, symbol) through the full pipeline."""

    def __init__(
        self,
        store: SessionStore,
        repository: SessionRepository | None = None,
        *,
        settings: Settings | None = None,
        quote: str = "USDT",
        quotes: Iterable[str] = QUOTE_ASSETS,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.repository = repository
        self.quote = quote.upper()
        self.quotes = tuple(q.upper() for q in quotes)
        self.idhr = self.settings.idhr_config()
        self.logger = get_logger("engine")
        self._tick_locks: dict[SessionKey, asyncio.Lock] = {}

    def _tick_lock(self, key: SessionKey) -> asyncio.Lock:
        lock = self._tick_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._tick_locks[key] = lock
        return lock

    def _resolve_window(self, symbol: str, window: str | None) -> str:
        if window is None:
            return self.settings.default_window
        if window not in WINDOW_POINT_COUNTS:
            self.logger.warning(
                "unknown_window", symbol=symbol, window=window, fallback=self.settings.default_window
            )
            return self.settings.default_window
        return window

    def record_key(self, app_session_id: str, symbol: str, window: str) -> SessionRecordKey:
        base, quote = split_symbol(symbol, self.quotes, self.quote)
        return SessionRecordKey(base=base, quote=quote, window=window, app_session_id=app_session_id)

    def clear(self, app_session_id: str | None = None) -> int:
        """Drop live sessions (see :meth:`SessionStore.clear`) and their tick locks."""
        count = self.store.clear(app_session_id)
        for key in list(self._tick_locks):
            if key not in self.store and not self._tick_locks[key].locked():
                del self._tick_locks[key]
        return count

    async def _restore(self, record_key: SessionRecordKey, key: SessionKey) -> SymbolSession | None:
        if self.repository is None:
            return None
        try:
            restored = await self.repository.load(record_key)
        except Exception as e:
            self.logger.warning("session_repository_load_failed", key=str(key), error=str(e))
            return None
        if restored is None:
            return None
        self.logger.info("session_restored", key=str(key), shifts=restored.shifts, ui_epoch=restored.ui_epoch)
        return self.store.load(key, restored)

    async def _persist(
        self,
        record_key: SessionRecordKey,
        session: SymbolSession,
        events: list[SessionEvent],
    ) -> None:
        if self.repository is None:
            return
        try:
            for event in events:
                await self.repository.append_event(record_key, event)
            await self.repository.save(record_key, session)
        except Exception as e:
            self.logger.warning(
                "session_repository_save_failed",
                symbol=record_key.symbol,
                app_session_id=record_key.app_session_id,
                error=str(e),
            )

    async def process_tick(
        self,
        symbol: str,
        points: Iterable[Point],
        pct24h: float = 0.0,
        *,
        app_session_id: str | None = None,
        window: str | None = None,
        price: float | None = None,
        ts: int | None = None,
    ) -> dict[str, Any]:
        """Run one tick for a symbol.

        Args:
            symbol: Trading pair symbol, e.g. ``BTCUSDT``
            points: Recent samples, oldest first; trimmed to the window size
            pct24h: 24h change (%) reported by the market-data source
            app_session_id: Session namespace (defaults to settings)
            window: ``30m`` / ``1h`` / ``3h``; missing or unknown keys use the settings default
            price: Live price; defaults to the last valid point
            ts: Tick timestamp (ms); defaults to the last valid point

        Returns:
            Payload with the floating mode, anchor state, counters and streams,
            or ``{"ok": False, ...}`` when there is no usable price.
        """
        symbol = symbol.upper()
        app_session_id = app_session_id or self.settings.default_app_session
        window = self._resolve_window(symbol, window)

        pts = compact_for_window(list(points), window)
        valid = [p for p in pts if is_positive(p.price)]

        if not is_positive(price):
            price = valid[-1].price if valid else None
        if ts is None:
            ts = valid[-1].ts if valid else 0
        if price is None:
            self.logger.debug("tick_skipped", symbol=symbol, reason="no_valid_price", points=len(pts))
            return {"ok": False, "symbol": symbol, "reason": "no_valid_price"}

        pct24h = to_float(pct24h)
        key = SessionKey.of(app_session_id, symbol)
        record_key = self.record_key(app_session_id, symbol, window)

        async with self._tick_lock(key):
            session = self.store.get(app_session_id, symbol)
            if session is None:
                session = await self._restore(record_key, key)
            created = session is None

            opening_price = session.opening_price if session else (valid[0].price if valid else price)
            opening_ts = session.opening_ts if session else (valid[0].ts if valid else ts)

            fm = compute_floating_mode(
                pts,
                Opening(benchmark=opening_price, pct24h=pct24h, ts=opening_ts),
                self.idhr,
            )
            gfm_calc = gfm_to_price(fm.gfm, opening_price) if fm.has_estimate else math.nan

            session = self.store.get_or_create(app_session_id, symbol, opening_price, opening_ts)
            result = await self.store.update(app_session_id, symbol, price, ts, gfm_calc, pct24h)

            events: list[SessionEvent] = []
            if created:
                events.append(
                    SessionEvent(kind="opening", ts=opening_ts, payload={"price": opening_price})
                )
            if result.is_swap:
                events.append(
                    SessionEvent(kind="swap", ts=ts, payload={"swaps": session.swaps, "benchPct": result.bench_pct})
                )
            if result.is_shift:
                events.append(SessionEvent(kind="shift", ts=ts, payload=result.to_dict()))
            await self._persist(record_key, session, events)

        return self._payload(symbol, app_session_id, window, price, ts, fm, gfm_calc, session, result)

    def _payload(
        self,
        symbol: str,
        app_session_id: str,
        window: str,
        price: float,
        ts: int,
        fm: FloatingModeResult,
        gfm_calc: float,
        session: SymbolSession,
        result: UpdateResult,
    ) -> dict[str, Any]:
        band = session.band()
        return {
            "ok": True,
            "symbol": symbol,
            "appSessionId": app_session_id,
            "window": window,
            "ts": ts,
            "price": price,
            "pct24h": result.pct24h,
            "benchPct": result.bench_pct,
            "pctDrv": result.pct_drv,
            "fm": {**fm.to_dict(), "gfmPrice": _finite_or_none(gfm_calc)},
            "gfmr": result.gfm_ref_price,
            "gfmc": result.gfm_calc_price,
            "gfmDeltaAbsPct": result.gfm_delta_abs_pct,
            "uiEpoch": result.ui_epoch,
            "isShift": result.is_shift,
            "isSwap": result.is_swap,
            "band": {"lower": band[0], "upper": band[1]} if band else None,
            "counters": {
                "swaps": session.swaps,
                "shifts": session.shifts,
                "aboveCount": session.above_count,
                "belowCount": session.below_count,
            },
            "extrema": {
                "priceMin": session.price_min,
                "priceMax": session.price_max,
                "benchPctMin": session.bench_pct_min,
                "benchPctMax": session.bench_pct_max,
            },
            "streams": export_streams(session).to_dict(),
        }
