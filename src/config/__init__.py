"""
Configuration loader.

Reads config.yaml, validates it against app_config.schema.json, resolves env
vars for secrets.
"""

from config.loader import (
    AccountsConfig,
    AlertingConfig,
    AppConfig,
    ConfigError,
    DatabaseConfig,
    ExecutionConfig,
    JournalConfig,
    QuotesConfig,
    StaticQuote,
    load_config,
)

__all__ = [
    "AccountsConfig",
    "AlertingConfig",
    "AppConfig",
    "ConfigError",
    "DatabaseConfig",
    "ExecutionConfig",
    "JournalConfig",
    "load_config",
    "QuotesConfig",
    "StaticQuote",
]
