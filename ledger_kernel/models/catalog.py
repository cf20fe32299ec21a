"""
Module: ledger_kernel.models.catalog
Responsibility: Master data the ledgers resolve and convert against: units of
    measure, products with their default/base unit pair, product-specific
    unit conversions, and warehouses.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Product.conversion_rate > 0 (CHECK constraint and ORM validation).
    - ProductUnitConversion.conversion_rate > 0; one rate per
      (product, from_unit, to_unit).
    - Codes are unique per table.

Failure modes:
    - IntegrityError on duplicate codes or a non-positive rate reaching the
      database.
    - ValidationFailedError from the @validates hooks on non-positive rates.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.exceptions import ValidationFailedError


def _positive_rate(key: str, value) -> Decimal:
    value = Decimal(value)
    if value <= 0:
        raise ValidationFailedError(f"{key} must be greater than 0", field=key)
    return value


class UnitOfMeasure(TrackedBase):
    """A named unit (box, bottle, kg)."""

    __tablename__ = "units_of_measure"
    __table_args__ = (UniqueConstraint("code", name="uq_unit_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<UnitOfMeasure {self.code}>"


class Product(TrackedBase):
    """
    A stocked product.

    ``unit_id`` is the default (transaction) unit; ``base_unit_id`` is the
    stock-tracking unit.  One default unit equals ``conversion_rate`` base
    units.  Without a base unit, stock is kept in the default unit.
    """

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("code", name="uq_product_code"),
        CheckConstraint("conversion_rate > 0", name="ck_product_conversion_rate"),
        Index("idx_product_barcode", "barcode"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Default/base unit pair
    unit_id: Mapped[UUID] = mapped_column(ForeignKey("units_of_measure.id"), nullable=False)
    base_unit_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("units_of_measure.id"), nullable=True
    )
    conversion_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))

    # Prices (per default unit)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    sale_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    wholesale_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    min_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    unit: Mapped[UnitOfMeasure] = relationship(foreign_keys=[unit_id], lazy="joined")
    base_unit: Mapped[UnitOfMeasure | None] = relationship(
        foreign_keys=[base_unit_id], lazy="joined"
    )
    conversions: Mapped[list["ProductUnitConversion"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @validates("conversion_rate")
    def _validate_conversion_rate(self, key, value):
        return _positive_rate(key, value)

    @property
    def stock_unit_id(self) -> UUID:
        """Unit that stock levels for this product are counted in."""
        return self.base_unit_id or self.unit_id

    def __repr__(self) -> str:
        return f"<Product {self.code}: {self.name}>"


class ProductUnitConversion(TrackedBase):
    """Product-specific rate: 1 ``from_unit`` equals ``conversion_rate`` ``to_unit``."""

    __tablename__ = "product_unit_conversions"
    __table_args__ = (
        UniqueConstraint(
            "product_id", "from_unit_id", "to_unit_id", name="uq_product_unit_conversion"
        ),
        CheckConstraint("conversion_rate > 0", name="ck_unit_conversion_rate"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    from_unit_id: Mapped[UUID] = mapped_column(ForeignKey("units_of_measure.id"), nullable=False)
    to_unit_id: Mapped[UUID] = mapped_column(ForeignKey("units_of_measure.id"), nullable=False)
    conversion_rate: Mapped[Decimal] = mapped_column(nullable=False)

    product: Mapped[Product] = relationship(back_populates="conversions")

    @validates("conversion_rate")
    def _validate_conversion_rate(self, key, value):
        return _positive_rate(key, value)


class Warehouse(TrackedBase):
    """A stock location. At most one active warehouse is expected to be the default."""

    __tablename__ = "warehouses"
    __table_args__ = (UniqueConstraint("code", name="uq_warehouse_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}{' (default)' if self.is_default else ''}>"
