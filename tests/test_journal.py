"""Tests for journal writer. Append-only; Decimals written as strings."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from journal.writer import JournalWriter
from trading_core.contracts import OrderSide


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_journal_writer_append_only(tmp_path: Path) -> None:
    path = tmp_path / "journal.jsonl"
    j = JournalWriter(path)
    j.fill("o1", "AAPL", "BUY", Decimal("10"), Decimal("100.10"), cost=Decimal("1001.00"))
    j.rejection("o2", "INSUFFICIENT_POSITION: sells 5 but position holds 0")
    j.cancellation("o3", account_id="a1")
    j.revaluation("a1", Decimal("10099.00"), Decimal("1100.00"))

    records = _lines(path)
    assert [r["event"] for r in records] == ["fill", "rejection", "cancellation", "revaluation"]
    assert records[0]["price"] == "100.10"
    assert records[0]["cost"] == "1001.00"
    assert records[1]["reason"].startswith("INSUFFICIENT_POSITION")
    assert records[2]["account_id"] == "a1"
    assert records[3]["equity"] == "10099.00"
    assert all("ts_utc" in r for r in records)

    JournalWriter(path).cancellation("o4")
    assert len(_lines(path)) == 5


def test_fill_serializes_enums_and_datetimes(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "journal.jsonl"
    j = JournalWriter(path)
    ts = datetime(2024, 3, 1, 14, 30, tzinfo=timezone.utc)
    j.fill("o1", "AAPL", OrderSide.SELL, Decimal("1"), Decimal("99.5"), filled_at=ts, qtys=(Decimal("1"), Decimal("0.5")))
    r = _lines(path)[0]
    assert r["side"] == "SELL"
    assert r["filled_at"] == "2024-03-01T14:30:00+00:00"
    assert r["qtys"] == ["1", "0.5"]


def test_echo_stdout(tmp_path: Path, capsys) -> None:
    JournalWriter(tmp_path / "j.jsonl", echo_stdout=True).cancellation("o1")
    out = capsys.readouterr().out
    assert json.loads(out)["event"] == "cancellation"
