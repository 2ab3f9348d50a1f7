"""In-process registry of live symbol sessions.

The host process constructs one :class:`SessionStore` and passes it to
whatever drives the ticks. Each (app session, symbol) key owns its own
``asyncio.Lock`` so the read-modify-write of counters and anchor is never
interleaved for the same key, while distinct keys update independently.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterator

from str_aux.utils import get_logger

from .state import AnchorPolicy, SymbolSession, UpdateResult, create_session, update_session


@dataclass(frozen=True)
class SessionKey:
    app_session_id: str
    symbol: str

    @classmethod
    def of(cls, app_session_id: str, symbol: str) -> "SessionKey":
        return cls(app_session_id=str(app_session_id), symbol=str(symbol).upper())

    def __str__(self) -> str:
        return f"{self.app_session_id}:{self.symbol}"


class SessionStore:
    """Owns the live sessions and their per-key locks."""

    def __init__(
        self,
        *,
        eta_pct: float = 0.05,
        eps_shift_pct: float = 0.2,
        k: int = 32,
        anchor_policy: AnchorPolicy | str = AnchorPolicy.ESTIMATE,
    ):
        self.defaults = {
            "eta_pct": eta_pct,
            "eps_shift_pct": eps_shift_pct,
            "k": k,
            "anchor_policy": anchor_policy,
        }
        self.logger = get_logger("session.store")
        self._sessions: dict[SessionKey, SymbolSession] = {}
        self._locks: dict[SessionKey, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings) -> "SessionStore":
        return cls(
            eta_pct=settings.session_eta_pct,
            eps_shift_pct=settings.session_eps_shift_pct,
            k=settings.session_k_cycles,
            anchor_policy=settings.session_anchor_policy,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def keys(self) -> Iterator[SessionKey]:
        return iter(list(self._sessions))

    def get(self, app_session_id: str, symbol: str) -> SymbolSession | None:
        return self._sessions.get(SessionKey.of(app_session_id, symbol))

    def lock_for(self, key: SessionKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def get_or_create(
        self,
        app_session_id: str,
        symbol: str,
        opening_price: float,
        ts: int,
        eta_pct: float | None = None,
        eps_shift_pct: float | None = None,
        k: int | None = None,
        anchor_policy: AnchorPolicy | str | None = None,
    ) -> SymbolSession:
        """Return the session for the key, creating it on first sight.

        An existing session is returned unchanged; the opening arguments are
        only used the first time.
        """
        key = SessionKey.of(app_session_id, symbol)
        existing = self._sessions.get(key)
        if existing is not None:
            return existing

        session = create_session(
            opening_price,
            ts,
            eta_pct=self.defaults["eta_pct"] if eta_pct is None else eta_pct,
            eps_shift_pct=self.defaults["eps_shift_pct"] if eps_shift_pct is None else eps_shift_pct,
            k=self.defaults["k"] if k is None else k,
            anchor_policy=self.defaults["anchor_policy"] if anchor_policy is None else anchor_policy,
        )
        self._sessions[key] = session
        self.logger.info(
            "session_created",
            key=str(key),
            opening_price=session.opening_price,
            opening_ts=ts,
            eta_pct=session.eta_pct,
            eps_shift_pct=session.eps_shift_pct,
            k=session.k,
        )
        return session

    def load(self, key: SessionKey, session: SymbolSession) -> SymbolSession:
        """Adopt a session restored from persistence unless one is already live."""
        return self._sessions.setdefault(key, session)

    async def update(
        self,
        app_session_id: str,
        symbol: str,
        price: float,
        ts: int,
        gfm_calc_price: float | None,
        pct24h: float = 0.0,
    ) -> UpdateResult:
        """Apply one tick under the key's lock.

        Raises:
            KeyError: if no session exists for the key yet.
        """
        key = SessionKey.of(app_session_id, symbol)
        if key not in self._sessions:
            raise KeyError(str(key))
        async with self.lock_for(key):
            session = self._sessions.get(key)
            if session is None:  # cleared while waiting for the lock
                raise KeyError(str(key))
            result = update_session(session, price, ts, gfm_calc_price, pct24h)

        if result.is_swap:
            self.logger.debug("swap_detected", key=str(key), swaps=session.swaps, bench_pct=result.bench_pct)
        if result.is_shift:
            self.logger.info(
                "shift_confirmed",
                key=str(key),
                shifts=session.shifts,
                ui_epoch=result.ui_epoch,
                price=price,
                gfm_ref_price=result.gfm_ref_price,
            )
        return result

    def clear(self, app_session_id: str | None = None) -> int:
        """Drop every session (or only those of one app session); returns the count."""
        doomed = [
            k for k in self._sessions
            if app_session_id is None or k.app_session_id == app_session_id
        ]
        for k in doomed:
            del self._sessions[k]
            self._locks.pop(k, None)
        if doomed:
            self.logger.info("sessions_cleared", app_session_id=app_session_id, count=len(doomed))
        return len(doomed)
