"""
Engine configuration.

Settings shared by the kernel ledgers: database connection, logging level,
stock issue policy and the cashbook categories used by standalone debt
payments.  Values come from code defaults, a dict, or a YAML file; the
``DATABASE_URL`` environment variable overrides the configured URL.

    config = EngineConfig.load()                  # $LEDGER_ENGINE_CONFIG or defaults
    config = EngineConfig.from_yaml("engine.yaml")

Order module settings (code prefixes, cashbook categories) live in each
module's ``config.py`` and are read from the same YAML file under the
``purchasing``, ``sales`` and ``returns`` keys.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Self

import yaml

from ledger_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_PATH_ENV = "LEDGER_ENGINE_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"

VALID_ISSUE_METHODS = {"fifo", "fefo"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_yaml_file(path: Path | str) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration schema for the ledger kernel.

    Field defaults suit local development and tests (in-memory SQLite).
    """

    database_url: str = "sqlite://"
    echo_sql: bool = False
    log_level: str = "INFO"

    # Stock
    issue_method: str = "fifo"  # "fifo" (oldest receipt) or "fefo" (first expiry)
    allow_negative_stock: bool = False
    batch_number_prefix: str = "BATCH"

    # Cashbook categories for standalone debt settlement
    payable_payment_category: str = "debt payment"
    receivable_payment_category: str = "debt collection"

    # Raw per-module sections, handed to the module configs
    modules: dict[str, dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url is required")
        if self.issue_method not in VALID_ISSUE_METHODS:
            raise ValueError(
                f"issue_method must be one of {VALID_ISSUE_METHODS}, "
                f"got '{self.issue_method}'"
            )
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}")
        if not self.batch_number_prefix:
            raise ValueError("batch_number_prefix cannot be empty")

        logger.info(
            "engine_config_initialized",
            extra={
                "dialect": self.database_url.split(":", 1)[0],
                "issue_method": self.issue_method,
                "allow_negative_stock": self.allow_negative_stock,
                "log_level": self.log_level,
            },
        )

    def module_section(self, name: str) -> dict[str, Any]:
        return dict(self.modules.get(name) or {})

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with development defaults."""
        logger.info("engine_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """
        Create config from a dictionary (e.g. a parsed YAML file).

        Top-level keys matching a field are taken as settings; mapping-valued
        keys that do not match a field are kept as module sections.
        """
        logger.info(
            "engine_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        settings: dict[str, Any] = {}
        modules: dict[str, dict[str, Any]] = dict(data.get("modules") or {})
        for key, value in data.items():
            if key == "modules":
                continue
            if key in known:
                settings[key] = value
            elif isinstance(value, dict):
                modules[key] = value
            else:
                raise ValueError(f"Unknown configuration key: {key}")
        return cls(modules=modules, **settings)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Self:
        return cls.from_dict(load_yaml_file(path))

    @classmethod
    def load(cls, path: Path | str | None = None) -> Self:
        """
        Resolve configuration for this process.

        ``path`` (or ``$LEDGER_ENGINE_CONFIG``) selects a YAML file; without
        one the defaults apply.  ``$DATABASE_URL`` wins over the file.
        """
        path = path or os.environ.get(CONFIG_PATH_ENV)
        data = load_yaml_file(path) if path else {}
        env_url = os.environ.get(DATABASE_URL_ENV)
        if env_url:
            data = {**data, "database_url": env_url}
        return cls.from_dict(data)
