"""
Config loader: YAML file -> JSON Schema validation -> frozen dataclass tree.

API secrets resolved from environment variables (APCA_API_KEY_ID, APCA_API_SECRET_KEY).
Config file holds only non-secret values.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import jsonschema
import yaml

logger = logging.getLogger("ptrade.config")

SCHEMA_PATH = Path(__file__).resolve().parent / "app_config.schema.json"


class ConfigError(Exception):
    """Raised when the config file is malformed or fails schema validation."""


@dataclass(frozen=True)
class DatabaseConfig:
    path: str = "data/paper_state.db"
    busy_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class AccountsConfig:
    initial_balance: Decimal = Decimal("100000")
    currency: str = "USD"


@dataclass(frozen=True)
class StaticQuote:
    bid: Decimal
    ask: Decimal
    last: Decimal | None = None


@dataclass(frozen=True)
class QuotesConfig:
    source: str = "static"
    feed: str = "iex"
    cache_ttl_seconds: float = 1.0
    refresh_interval_seconds: float = 5.0
    symbols: dict[str, StaticQuote] = field(default_factory=dict)
    api_key: str = ""
    api_secret: str = ""


@dataclass(frozen=True)
class ExecutionConfig:
    reject_on_error: bool = False
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    database: DatabaseConfig = DatabaseConfig()
    accounts: AccountsConfig = AccountsConfig()
    quotes: QuotesConfig = QuotesConfig()
    execution: ExecutionConfig = ExecutionConfig()
    journal: JournalConfig = JournalConfig()
    alerting: AlertingConfig = AlertingConfig()


def _validate_schema(raw: dict[str, Any], schema_path: Path) -> None:
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=raw, schema=schema)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigError(f"Config validation failed at {location}: {exc.message}") from exc


def _decimal(value: Any, where: str) -> Decimal:
    try:
        return Decimal(str(value))
    except ArithmeticError as exc:
        raise ConfigError(f"{where} is not a number: {value!r}") from exc


def load_config(path: str | Path = "config.yaml", *, schema_path: str | Path | None = None) -> AppConfig:
    """
    Load configuration from a YAML file.

    API keys are resolved from environment variables:
      - APCA_API_KEY_ID
      - APCA_API_SECRET_KEY
    These follow Alpaca's standard env var names.

    Raises FileNotFoundError if the file is missing and ConfigError if it is
    not a mapping or fails validation against app_config.schema.json.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    _validate_schema(raw, Path(schema_path) if schema_path else SCHEMA_PATH)

    db_raw = raw.get("database", {})
    db_cfg = DatabaseConfig(
        path=db_raw.get("path", "data/paper_state.db"),
        busy_timeout_seconds=float(db_raw.get("busy_timeout_seconds", 10.0)),
    )

    acct_raw = raw.get("accounts", {})
    acct_cfg = AccountsConfig(
        initial_balance=_decimal(acct_raw.get("initial_balance", "100000"), "accounts.initial_balance"),
        currency=str(acct_raw.get("currency", "USD")).upper(),
    )

    q_raw = raw.get("quotes", {})
    symbols = {}
    for symbol, prices in (q_raw.get("symbols") or {}).items():
        where = f"quotes.symbols.{symbol}"
        symbols[str(symbol).upper()] = StaticQuote(
            bid=_decimal(prices["bid"], f"{where}.bid"),
            ask=_decimal(prices["ask"], f"{where}.ask"),
            last=_decimal(prices["last"], f"{where}.last") if "last" in prices else None,
        )
    q_cfg = QuotesConfig(
        source=q_raw.get("source", "static"),
        feed=q_raw.get("feed", "iex"),
        cache_ttl_seconds=float(q_raw.get("cache_ttl_seconds", 1.0)),
        refresh_interval_seconds=float(q_raw.get("refresh_interval_seconds", 5.0)),
        symbols=symbols,
        api_key=os.environ.get("APCA_API_KEY_ID", ""),
        api_secret=os.environ.get("APCA_API_SECRET_KEY", ""),
    )

    ex_raw = raw.get("execution", {})
    ex_cfg = ExecutionConfig(
        reject_on_error=bool(ex_raw.get("reject_on_error", False)),
        lock_timeout_seconds=float(ex_raw.get("lock_timeout_seconds", 10.0)),
    )

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    logger.debug("Loaded config from %s", config_path)
    return AppConfig(
        database=db_cfg,
        accounts=acct_cfg,
        quotes=q_cfg,
        execution=ex_cfg,
        journal=j_cfg,
        alerting=a_cfg,
    )
