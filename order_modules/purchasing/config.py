"""
Purchasing Configuration Schema.

Defaults for purchase order codes and the cashbook category used for
supplier payments.  Loaded from the ``purchasing`` section of the engine
YAML file when present.
"""

from dataclasses import dataclass
from typing import Self

from ledger_kernel.config import EngineConfig
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.purchasing.config")


@dataclass
class PurchasingConfig:
    """
    Configuration schema for the purchasing module.

        config = PurchasingConfig(code_prefix="PN")
    """

    # Document codes: <code_prefix>-<yyyymmdd>-<nnnn>
    code_prefix: str = "PO"

    # Cashbook category for payments made against purchase orders
    cashbook_category: str = "purchase"

    def __post_init__(self):
        if not self.code_prefix:
            raise ValueError("code_prefix cannot be empty")
        if not self.cashbook_category:
            raise ValueError("cashbook_category cannot be empty")
        logger.info(
            "purchasing_config_initialized",
            extra={
                "code_prefix": self.code_prefix,
                "cashbook_category": self.cashbook_category,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("purchasing_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "purchasing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    @classmethod
    def from_engine_config(cls, config: EngineConfig) -> Self:
        section = config.module_section("purchasing")
        return cls.from_dict(section) if section else cls.with_defaults()
