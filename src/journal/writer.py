"""
Structured journal: append-only JSON lines. One record per fill, rejection,
cancellation and revaluation; Decimals are written as strings.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def fill(self, order_id: str, symbol: str, side: str, qty: Decimal, price: Decimal, **extra: Any) -> None:
        self._write("fill", {"order_id": order_id, "symbol": symbol, "side": side, "qty": qty, "price": price, **extra})

    def rejection(self, order_id: str, reason: str, **extra: Any) -> None:
        self._write("rejection", {"order_id": order_id, "reason": reason, **extra})

    def cancellation(self, order_id: str, **extra: Any) -> None:
        self._write("cancellation", {"order_id": order_id, **extra})

    def revaluation(self, account_id: str, equity: Decimal, market_value: Decimal, **extra: Any) -> None:
        self._write("revaluation", {"account_id": account_id, "equity": equity, "market_value": market_value, **extra})
