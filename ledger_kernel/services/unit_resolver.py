"""
UnitResolver -- session-backed front for the pure unit conversion rules.

Loads the product, applies the default/base rule from
``ledger_kernel.domain.units`` and, for any other unit, walks the product's
ProductUnitConversion rows.  Every quantity that enters the Stock Ledger
passes through ``to_stock_quantity``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.units import (
    ConversionEdge,
    from_base_quantity,
    resolve_rate,
    to_base_quantity,
)
from ledger_kernel.exceptions import ReferenceNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.catalog import Product, UnitOfMeasure

logger = get_logger("services.unit_resolver")


class UnitResolver:
    """Converts line quantities into a product's stock unit."""

    def __init__(self, session: Session):
        self._session = session

    def get_product(self, product_id: UUID) -> Product:
        product = self._session.get(Product, product_id)
        if product is None:
            raise ReferenceNotFoundError("Product", product_id)
        return product

    def require_unit(self, unit_id: UUID) -> UnitOfMeasure:
        unit = self._session.get(UnitOfMeasure, unit_id)
        if unit is None:
            raise ReferenceNotFoundError("UnitOfMeasure", unit_id)
        return unit

    @staticmethod
    def _edges(product: Product) -> list[ConversionEdge]:
        return [
            ConversionEdge(c.from_unit_id, c.to_unit_id, c.conversion_rate)
            for c in product.conversions
        ]

    def to_stock_quantity(
        self, product: Product, quantity: Decimal, unit_id: UUID | None
    ) -> Decimal:
        """Quantity expressed in ``unit_id`` -> quantity in the product's stock unit."""
        if unit_id is None or unit_id in (product.unit_id, product.stock_unit_id):
            return to_base_quantity(
                quantity,
                unit_id if unit_id is not None else product.unit_id,
                product.unit_id,
                product.base_unit_id,
                product.conversion_rate,
            )

        rate = resolve_rate(self._edges(product), unit_id, product.stock_unit_id)
        if rate is None and product.base_unit_id is not None:
            # Reach the default unit, then apply the default/base rate
            to_default = resolve_rate(self._edges(product), unit_id, product.unit_id)
            if to_default is not None:
                rate = to_default * product.conversion_rate
        if rate is None:
            logger.warning(
                "unit_conversion_unresolved",
                extra={
                    "product_id": str(product.id),
                    "unit_id": str(unit_id),
                    "stock_unit_id": str(product.stock_unit_id),
                },
            )
            return quantity
        return quantity * rate

    def from_stock_quantity(
        self, product: Product, stock_quantity: Decimal, unit_id: UUID | None
    ) -> Decimal:
        """Inverse of to_stock_quantity for the default/base pair."""
        return from_base_quantity(
            stock_quantity,
            unit_id if unit_id is not None else product.unit_id,
            product.unit_id,
            product.base_unit_id,
            product.conversion_rate,
        )
