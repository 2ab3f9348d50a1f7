"""Replay a recorded point series through the engine, one tick per sample.

Usage:
    str-aux-replay points.json --symbol BTCUSDT --window 30m

The input is either a JSON array or JSON lines of ``{"ts", "price", "volume"}``
rows. Each tick sees every sample up to and including itself (trimmed to the
window), mirroring a poller that appends one sample per cycle.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, TextIO

from dotenv import load_dotenv

from str_aux.config import get_settings
from str_aux.engine import StrAuxEngine
from str_aux.models import Point
from str_aux.session import MemorySessionRepository, SessionStore, export_streams
from str_aux.utils import get_logger, is_positive, setup_logging, timestamp_ms


def load_points(path: Path) -> list[Point]:
    """Read points from a JSON array or JSON-lines file."""
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return []
    if text.startswith("["):
        rows = json.loads(text)
    else:
        rows = [json.loads(line) for line in text.splitlines() if line.strip()]

    now = timestamp_ms()
    points: list[Point] = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            continue
        if not is_positive(row.get("ts")):
            row = {**row, "ts": now + i}
        points.append(Point.from_mapping(row))
    return points


async def replay(
    points: list[Point],
    *,
    symbol: str,
    app_session_id: str,
    window: str,
    pct24h: float,
    out: TextIO | None = None,
) -> dict[str, Any]:
    out = out or sys.stdout
    settings = get_settings()
    store = SessionStore.from_settings(settings)
    repository = MemorySessionRepository()
    engine = StrAuxEngine(store, repository, settings=settings)

    ticks = 0
    for i in range(len(points)):
        payload = await engine.process_tick(
            symbol,
            points[: i + 1],
            pct24h,
            app_session_id=app_session_id,
            window=window,
        )
        ticks += 1
        out.write(json.dumps(payload) + "\n")

    session = store.get(app_session_id, symbol)
    record_key = engine.record_key(app_session_id, symbol.upper(), window)
    summary: dict[str, Any] = {
        "summary": True,
        "symbol": symbol.upper(),
        "ticks": ticks,
        "events": [e.model_dump() for e in repository.events.get(record_key, [])],
    }
    if session is not None:
        summary.update(
            swaps=session.swaps,
            shifts=session.shifts,
            uiEpoch=session.ui_epoch,
            gfmRefPrice=session.gfm_ref_price,
            streams=export_streams(session).to_dict(),
        )
    out.write(json.dumps(summary) + "\n")
    return summary


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Replay points through the str-aux engine")
    parser.add_argument("file", type=Path, help="JSON array or JSON-lines file of {ts, price, volume}")
    parser.add_argument("--symbol", default="BTCUSDT")
    parser.add_argument("--session", dest="app_session_id", default=settings.default_app_session)
    parser.add_argument("--window", choices=["30m", "1h", "3h"], default=settings.default_window)
    parser.add_argument("--pct24h", type=float, default=0.0, help="24h change (%%) applied to every tick")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    load_dotenv()
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    logger = get_logger("main")

    args = build_parser().parse_args(argv)
    if not args.file.exists():
        logger.error("points_file_missing", path=str(args.file))
        return 2

    points = load_points(args.file)
    logger.info("replay_started", path=str(args.file), points=len(points), symbol=args.symbol)
    summary = asyncio.run(
        replay(
            points,
            symbol=args.symbol,
            app_session_id=args.app_session_id,
            window=args.window,
            pct24h=args.pct24h,
        )
    )
    logger.info("replay_finished", ticks=summary["ticks"], shifts=summary.get("shifts", 0))
    return 0


if __name__ == "__main__":
    sys.exit(main())
