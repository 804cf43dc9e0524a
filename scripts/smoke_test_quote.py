from __future__ import annotations

"""
Smoke test for the quote builder (local, offline).

Drives a session the way the keypad and table would, one intent at a time:
- types a few blinds on the keypad
- sets fabric types, prices and sums the quote
- saves, starts a new quote, loads it back
- writes a PDF

Writes to `out/smoke_test_quote/` and exits non-zero if anything breaks.

Usage:
  python3 scripts/smoke_test_quote.py
  python3 scripts/smoke_test_quote.py --out-dir out/smoke_test_quote
"""

import argparse
import sys
import traceback
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional

# Allow running as `python3 scripts/smoke_test_quote.py` (module imports live at repo root).
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from app_config import Settings, configure_logging
from event_aggregator import (
    NUMERIC_KEY_PRESSED,
    TABLE_CELL_CLICKED,
    TABLE_HEADER_CLICKED,
    USER_REQUESTED_LOAD,
    USER_REQUESTED_NEW_QUOTE,
    USER_REQUESTED_PRICE_CALCULATION,
    USER_REQUESTED_SAVE,
    USER_REQUESTED_SUMMATION,
)
from persistence_service import PersistenceService
from quote_pdf import make_quote_pdf_bytes, quote_pdf_artifact_from_quote
from quote_session import QuoteSession, build_session


@dataclass(frozen=True)
class Step:
    label: str
    topic: str
    payload: Optional[Mapping[str, Any]] = None


def _keys(label: str, digits: str) -> list[Step]:
    return [Step(f"{label}:{d}", NUMERIC_KEY_PRESSED, {"key": d}) for d in digits] + [
        Step(f"{label}:ENT", NUMERIC_KEY_PRESSED, {"key": "ENT"})
    ]


def _run(session: QuoteSession, steps: list[Step]) -> None:
    for step in steps:
        session.dispatch(step.topic, step.payload)
        for n in session.drain_notifications():
            print(f"  [{step.label}] {n.type}: {n.message}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Offline smoke test for the roller-blind quote builder.")
    parser.add_argument("--out-dir", type=Path, default=_ROOT / "out" / "smoke_test_quote")
    args = parser.parse_args(argv)

    out_dir: Path = args.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    configure_logging("INFO")

    settings = Settings(
        store_dir=out_dir / "store",
        storage_key="smoke_test_quote",
        price_matrix_path=None,
        product_kind="rollerBlind",
        log_level="INFO",
    )
    PersistenceService(settings.store_dir, settings.storage_key).clear()
    session = build_session(settings)

    steps: list[Step] = []
    steps += _keys("w1", "120")
    steps += _keys("w2", "180")
    steps.append(Step("mode_h", NUMERIC_KEY_PRESSED, {"key": "H"}))
    steps += _keys("h1", "150")
    steps += _keys("h2", "240")
    steps.append(Step("types", TABLE_HEADER_CLICKED, {"column": "TYPE"}))
    steps.append(Step("row2_type", TABLE_CELL_CLICKED, {"rowIndex": 1, "column": "TYPE"}))
    steps.append(Step("price", USER_REQUESTED_PRICE_CALCULATION))
    steps.append(Step("sum", USER_REQUESTED_SUMMATION))
    steps.append(Step("save", USER_REQUESTED_SAVE))
    _run(session, steps)

    saved = session.quote_model.get_quote().to_dict()
    total = saved["summary"]["total_sum"]
    if not total:
        print("FAIL: quote total was not computed", file=sys.stderr)
        return 1

    _run(session, [Step("new", USER_REQUESTED_NEW_QUOTE), Step("load", USER_REQUESTED_LOAD)])
    if session.quote_model.get_quote().to_dict() != saved:
        print("FAIL: loaded quote differs from saved quote", file=sys.stderr)
        return 1

    artifact = quote_pdf_artifact_from_quote(session.quote_model.get_quote(), quote_id="SMOKE", quote_date=date.today())
    pdf_path = out_dir / "quote_SMOKE.pdf"
    pdf_path.write_bytes(make_quote_pdf_bytes(artifact))

    print("")
    print(f"OK: total={total} rows={len(saved['items'])} pdf={pdf_path}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        traceback.print_exc()
        raise SystemExit(1)
