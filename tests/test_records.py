"""Tests for persisted session records, migration and the memory repository."""

import json

import pytest
from pydantic import ValidationError

from str_aux.errors import SchemaVersionError
from str_aux.session import (
    AnchorPolicy,
    MemorySessionRepository,
    SessionEvent,
    SessionRecord,
    SessionRecordKey,
    create_session,
    migrate_session_payload,
    session_from_payload,
    update_session,
)

T0 = 1_700_000_000_000


def _played_session():
    ss = create_session(100.0, T0, eta_pct=0.05, eps_shift_pct=0.2, k=2)
    update_session(ss, 100.3, T0 + 1, 100.0, 1.0)
    update_session(ss, 100.4, T0 + 2, 100.1, 1.5)
    update_session(ss, 99.0, T0 + 3, 100.05, -0.5)
    return ss


class TestSessionRecord:
    def test_session_survives_record(self):
        ss = _played_session()
        record = SessionRecord.from_session(ss)
        assert record.schema_version == 2

        restored = record.to_session()
        assert restored == ss
        assert restored.anchor_policy is AnchorPolicy.ESTIMATE
        assert restored.snap_cur.price == 100.4

    def test_json_payload_roundtrip(self):
        ss = _played_session()
        payload = json.loads(json.dumps(SessionRecord.from_session(ss).model_dump(mode="json")))
        assert session_from_payload(payload) == ss

    def test_constraints(self):
        data = SessionRecord.from_session(_played_session()).model_dump()
        with pytest.raises(ValidationError):
            SessionRecord.model_validate({**data, "k": 0})
        with pytest.raises(ValidationError):
            SessionRecord.model_validate({**data, "opening_price": 0.0})
        with pytest.raises(ValidationError):
            SessionRecord.model_validate({**data, "last_bench_sign": 2})


class TestRecordKey:
    def test_symbol_and_hashing(self):
        key = SessionRecordKey(base="BTC", window="1h", app_session_id="ui")
        assert key.symbol == "BTCUSDT"
        assert key == SessionRecordKey(base="BTC", quote="USDT", window="1h", app_session_id="ui")
        assert len({key, SessionRecordKey(base="BTC", window="1h")}) == 1

    def test_rejects_unknown_window(self):
        with pytest.raises(ValidationError):
            SessionRecordKey(base="BTC", window="5m")


class TestMigration:
    V1 = {
        "openingTs": T0,
        "openingPrice": 100.0,
        "priceMin": 99.0,
        "priceMax": 101.5,
        "benchPctMin": -1.0,
        "benchPctMax": 1.5,
        "swaps": 3,
        "shifts": 1,
        "etaPct": 0.05,
        "epsShiftPct": 0.2,
        "K": 16,
        "lastBenchSign": -1,
        "gfmAnchorPrice": 100.4,
        "gfm_calc_price_last": 100.2,
        "uiEpoch": 1,
        "greatestPct24hAbs": 2.5,
        "gfm_delta_last": 0.3,
        "snapPrev": json.dumps({"ts": T0, "price": 100.0, "benchPct": 0.0, "pctDrv": 0.0, "pct24h": 0.0}),
        "snapCur": {"ts": T0 + 60_000, "price": 100.4, "benchPct": 0.4, "pctDrv": 0.1, "pct24h": 1.5},
    }

    def test_v1_camel_case(self):
        ss = session_from_payload(dict(self.V1))

        assert ss.opening_price == 100.0
        assert (ss.price_min, ss.price_max) == (99.0, 101.5)
        assert (ss.swaps, ss.shifts, ss.ui_epoch) == (3, 1, 1)
        assert ss.k == 16
        assert ss.last_bench_sign == -1
        # GFMr lived in the anchor column
        assert ss.gfm_ref_price == 100.4
        assert ss.gfm_calc_price == 100.2
        assert ss.greatest_24h_abs == 2.5
        assert ss.gfm_delta_abs_pct == 0.3
        assert ss.above_count == ss.below_count == 0
        assert ss.snap_prev.price == 100.0
        assert ss.snap_cur.bench_pct == 0.4
        assert ss.snap_cur.pct24h == 1.5

    def test_v1_prefers_ref_price(self):
        payload = {**self.V1, "gfmRefPrice": 100.1}
        migrated = migrate_session_payload(payload)
        assert migrated["gfm_ref_price"] == 100.1
        assert migrated["gfm_anchor_price"] == 100.4

    def test_v1_column_names(self):
        payload = {
            "opening_ts": T0,
            "opening_price": 50.0,
            "k_cycles": 8,
            "gfm_anchor_price": 50.5,
            "last_update_ms": T0 + 10,
        }
        ss = session_from_payload(payload)
        assert ss.k == 8
        assert ss.gfm_ref_price == 50.5
        assert ss.price_min == ss.price_max == 50.0
        assert ss.last_update_ts == T0 + 10
        assert ss.snap_prev is None

    def test_current_version_passes_through(self):
        payload = SessionRecord.from_session(_played_session()).model_dump(mode="json")
        assert migrate_session_payload(payload) == payload

    @pytest.mark.parametrize("version", [0, 3, "two"])
    def test_unknown_version(self, version):
        with pytest.raises(SchemaVersionError):
            migrate_session_payload({"schema_version": version, "opening_price": 1.0})


class TestMemoryRepository:
    @pytest.mark.anyio
    async def test_save_load_and_events(self):
        repo = MemorySessionRepository()
        key = SessionRecordKey(base="BTC")
        assert await repo.load(key) is None

        ss = _played_session()
        await repo.save(key, ss)
        assert repo.rows[key]["schema_version"] == 2

        loaded = await repo.load(key)
        assert loaded == ss
        assert loaded is not ss

        await repo.append_event(key, SessionEvent(kind="opening", ts=T0, payload={"price": 100.0}))
        await repo.append_event(key, SessionEvent(kind="shift", ts=T0 + 2))
        assert [e.kind for e in repo.events[key]] == ["opening", "shift"]

    def test_event_kind_is_checked(self):
        with pytest.raises(ValidationError):
            SessionEvent(kind="reset", ts=T0)
