"""
Structured JSON event logger for container observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, trade-level events (order_filled,
order_rejected, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("ptrade.events")


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        component: str = "ptrade",
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._component = component
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._ALERT_EVENTS = {
            "order_filled",
            "order_rejected",
            "error",
        }

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "component": self._component,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record, default=str) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in self._ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record, default=str).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def order_placed(self, order_id: str, side: str, order_type: str, qty: Any) -> dict:
        return self._emit("order_placed", order_id=order_id, side=side, type=order_type, qty=qty)

    def order_filled(self, order_id: str, symbol: str, side: str, qty: Any, price: Any, cost: Any) -> dict:
        return self._emit(
            "order_filled",
            order_id=order_id,
            symbol=symbol,
            side=side,
            qty=qty,
            price=price,
            cost=cost,
        )

    def order_rejected(self, order_id: str, reason: str) -> dict:
        return self._emit("order_rejected", order_id=order_id, reason=reason)

    def order_cancelled(self, order_id: str) -> dict:
        return self._emit("order_cancelled", order_id=order_id)

    def account_revalued(self, account_id: str, equity: Any) -> dict:
        return self._emit("account_revalued", account_id=account_id, equity=equity)

    def quotes_refreshed(self, symbols: list[str], failures: int) -> dict:
        return self._emit("quotes_refreshed", symbols=symbols, failures=failures)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)
