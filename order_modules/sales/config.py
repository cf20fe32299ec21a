"""
Sales Configuration Schema.

Sale order codes and the cashbook category for money received against
sale orders.  Read from the ``sales`` section of the engine YAML file.
"""

from dataclasses import dataclass
from typing import Self

from ledger_kernel.config import EngineConfig
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.sales.config")


@dataclass
class SalesConfig:
    """Configuration schema for the sales module."""

    code_prefix: str = "SO"
    cashbook_category: str = "sales"

    def __post_init__(self):
        if not self.code_prefix:
            raise ValueError("code_prefix cannot be empty")
        if not self.cashbook_category:
            raise ValueError("cashbook_category cannot be empty")
        logger.info(
            "sales_config_initialized",
            extra={
                "code_prefix": self.code_prefix,
                "cashbook_category": self.cashbook_category,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("sales_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "sales_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    @classmethod
    def from_engine_config(cls, config: EngineConfig) -> Self:
        section = config.module_section("sales")
        return cls.from_dict(section) if section else cls.with_defaults()
