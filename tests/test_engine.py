"""Tests for the tick engine."""

import math
from unittest.mock import AsyncMock

import pytest

from str_aux.config import Settings
from str_aux.engine import StrAuxEngine, split_symbol
from str_aux.models import Point
from str_aux.session import MemorySessionRepository, SessionKey, SessionStore, create_session

T0 = 1_700_000_000_000


def _points(prices, start_ts=T0):
    return [Point(ts=start_ts + i * 60_000, price=p, volume=1.0) for i, p in enumerate(prices)]


def _engine(repository=None, **overrides):
    params = {"session_k_cycles": 2, "session_eps_shift_pct": 0.2, "session_eta_pct": 0.05}
    params.update(overrides)
    settings = Settings(**params)
    return StrAuxEngine(SessionStore.from_settings(settings), repository, settings=settings)


class TestSplitSymbol:
    def test_split(self):
        assert split_symbol("btcusdt") == ("BTC", "USDT")
        assert split_symbol("ETHBTC") == ("ETH", "BTC")
        assert split_symbol("SOLBNB") == ("SOL", "BNB")
        assert split_symbol("PEPEUSDT") == ("PEPE", "USDT")

    def test_bare_or_unknown_quote_falls_back(self):
        assert split_symbol("USDT") == ("USDT", "USDT")
        assert split_symbol("SOL") == ("SOL", "USDT")
        assert split_symbol("FOOBAR") == ("FOOBAR", "USDT")
        assert split_symbol("FOOBAR", quotes=("BAR",)) == ("FOO", "BAR")
        assert split_symbol("FOOBAR", quotes=(), default_quote="eur") == ("FOOBAR", "EUR")


class TestProcessTick:
    @pytest.mark.anyio
    async def test_first_tick_opens_and_anchors(self):
        repo = MemorySessionRepository()
        engine = _engine(repo)

        payload = await engine.process_tick("btcusdt", _points([100.0] * 10))

        assert payload["ok"] is True
        assert payload["symbol"] == "BTCUSDT"
        assert payload["appSessionId"] == "ui"
        assert payload["window"] == "30m"
        assert payload["price"] == 100.0
        assert payload["ts"] == T0 + 9 * 60_000
        assert payload["benchPct"] == 0.0
        assert payload["fm"]["sampleSize"] == 10
        assert payload["gfmr"] == pytest.approx(100.0, rel=1e-6)
        assert payload["gfmr"] == payload["gfmc"]
        assert payload["isShift"] is False
        assert payload["band"]["lower"] < 100.0 < payload["band"]["upper"]
        assert payload["counters"]["shifts"] == 0

        key = engine.record_key("ui", "BTCUSDT", "30m")
        assert [e.kind for e in repo.events[key]] == ["opening"]
        assert repo.rows[key]["opening_price"] == 100.0

    @pytest.mark.anyio
    async def test_shift_scenario(self):
        repo = MemorySessionRepository()
        engine = _engine(repo)
        prices = [100.0] * 10

        first = await engine.process_tick("BTCUSDT", _points(prices))
        prices.append(101.0)
        second = await engine.process_tick("BTCUSDT", _points(prices))
        prices.append(101.0)
        third = await engine.process_tick("BTCUSDT", _points(prices))

        assert first["isShift"] is False
        assert second["isShift"] is False
        assert second["counters"]["aboveCount"] == 1
        assert second["benchPct"] == pytest.approx(1.0)

        assert third["isShift"] is True
        assert third["uiEpoch"] == 1
        assert third["counters"]["shifts"] == 1
        assert third["counters"]["aboveCount"] == 0
        # re-anchored to this tick's floating-mode price
        assert third["gfmr"] == third["gfmc"]
        assert third["gfmr"] == pytest.approx(100.0 * math.exp(third["fm"]["gfm"]))
        assert third["fm"]["gfmPrice"] == third["gfmc"]
        assert third["streams"]["benchmark"]["cur"] == 101.0
        assert third["streams"]["benchmark"]["prev"] == 100.0

        key = engine.record_key("ui", "BTCUSDT", "30m")
        assert [e.kind for e in repo.events[key]] == ["opening", "shift"]
        assert repo.rows[key]["ui_epoch"] == 1

    @pytest.mark.anyio
    async def test_opening_is_fixed_after_first_tick(self):
        engine = _engine()
        await engine.process_tick("BTCUSDT", _points([100.0, 100.5]))
        payload = await engine.process_tick("BTCUSDT", _points([104.0, 105.0]))

        assert engine.store.get("ui", "BTCUSDT").opening_price == 100.0
        assert payload["benchPct"] == pytest.approx(5.0)
        assert payload["extrema"]["priceMax"] == 105.0

    @pytest.mark.anyio
    async def test_no_valid_price(self):
        engine = _engine()
        assert await engine.process_tick("BTCUSDT", []) == {
            "ok": False,
            "symbol": "BTCUSDT",
            "reason": "no_valid_price",
        }
        payload = await engine.process_tick("BTCUSDT", _points([float("nan"), 0.0, -3.0]))
        assert payload["ok"] is False
        assert len(engine.store) == 0

    @pytest.mark.anyio
    async def test_explicit_price_and_ts(self):
        engine = _engine()
        payload = await engine.process_tick(
            "BTCUSDT", _points([100.0] * 5), 2.5, price=102.0, ts=T0 + 1
        )
        assert payload["price"] == 102.0
        assert payload["ts"] == T0 + 1
        assert payload["pct24h"] == 2.5
        assert payload["benchPct"] == pytest.approx(2.0)

    @pytest.mark.anyio
    async def test_window_trims_samples(self):
        engine = _engine()
        pts = _points([100.0 + 0.01 * i for i in range(60)])

        short = await engine.process_tick("BTCUSDT", pts, window="30m")
        long = await engine.process_tick("BTCUSDT", pts, window="1h", app_session_id="other")

        assert short["fm"]["sampleSize"] == 45
        assert long["fm"]["sampleSize"] == 60
        # 30m window opens at the first retained sample
        assert engine.store.get("ui", "BTCUSDT").opening_price == pytest.approx(100.15)

    @pytest.mark.anyio
    async def test_sessions_are_independent_per_app_session(self):
        engine = _engine()
        await engine.process_tick("BTCUSDT", _points([100.0]), app_session_id="a")
        await engine.process_tick("BTCUSDT", _points([200.0]), app_session_id="b")

        assert engine.store.get("a", "BTCUSDT").opening_price == 100.0
        assert engine.store.get("b", "BTCUSDT").opening_price == 200.0


class TestRepository:
    @pytest.mark.anyio
    async def test_restores_persisted_session(self):
        repo = MemorySessionRepository()
        engine = _engine(repo)
        key = engine.record_key("ui", "BTCUSDT", "30m")

        stored = create_session(90.0, T0 - 1, k=2)
        stored.shifts = 3
        stored.ui_epoch = 3
        await repo.save(key, stored)

        payload = await engine.process_tick("BTCUSDT", _points([100.0] * 5))

        assert payload["counters"]["shifts"] == 3
        assert payload["uiEpoch"] == 3
        assert payload["benchPct"] == pytest.approx((100.0 / 90.0 - 1) * 100)
        assert engine.store.get("ui", "BTCUSDT").opening_price == 90.0
        # a restored session does not log a second opening
        assert repo.events[key] == []

    @pytest.mark.anyio
    async def test_repository_failures_do_not_break_ticks(self):
        repo = AsyncMock()
        repo.load.side_effect = RuntimeError("db down")
        repo.save.side_effect = RuntimeError("db down")

        engine = _engine(repo)
        payload = await engine.process_tick("BTCUSDT", _points([100.0] * 3))

        assert payload["ok"] is True
        repo.load.assert_awaited_once()
        repo.append_event.assert_awaited()
        assert engine.store.get("ui", "BTCUSDT") is not None


class TestKeysAndWindows:
    @pytest.mark.anyio
    async def test_non_usdt_pair_is_keyed_by_its_own_quote(self):
        repo = MemorySessionRepository()
        engine = _engine(repo)

        await engine.process_tick("ETHBTC", _points([0.05, 0.0501]))

        keys = list(repo.rows)
        assert len(keys) == 1
        assert (keys[0].base, keys[0].quote) == ("ETH", "BTC")
        assert keys[0].symbol == "ETHBTC"
        assert [e.kind for e in repo.events[keys[0]]] == ["opening"]

    @pytest.mark.anyio
    async def test_unknown_window_falls_back_to_default(self):
        repo = MemorySessionRepository()
        engine = _engine(repo)
        pts = _points([100.0 + 0.01 * i for i in range(60)])

        payload = await engine.process_tick("BTCUSDT", pts, window="15m")

        assert payload["ok"] is True
        assert payload["window"] == "30m"
        assert payload["fm"]["sampleSize"] == 45
        assert engine.record_key("ui", "BTCUSDT", "30m") in repo.rows

    @pytest.mark.anyio
    async def test_clear_drops_tick_locks(self):
        engine = _engine()
        await engine.process_tick("BTCUSDT", _points([100.0]), app_session_id="a")
        await engine.process_tick("ETHUSDT", _points([2000.0]), app_session_id="b")
        assert len(engine._tick_locks) == 2

        assert engine.clear("a") == 1
        assert set(engine._tick_locks) == {SessionKey.of("b", "ETHUSDT")}

        assert engine.clear() == 1
        assert engine._tick_locks == {}
