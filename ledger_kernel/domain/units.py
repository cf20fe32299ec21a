"""
Unit Conversion Resolver -- pure quantity arithmetic across units of measure.

Responsibility:
    Converts a line quantity between the unit used on a transaction line, the
    product's default unit and its base (stock-tracking) unit.  Stock levels
    and batches are always kept in base units.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The session-backed UnitResolver in
    ``ledger_kernel.services.unit_resolver`` loads product data and delegates
    here.

Rules (``to_base_quantity``):
    - line unit == base unit                      -> unchanged
    - line unit == default unit, base unit exists
      and differs from it                         -> quantity * conversion_rate
    - anything else (or no base unit)             -> unchanged

    ``resolve_rate`` handles units outside the default/base pair by walking
    product-specific conversion edges.

Failure modes:
    - ValidationFailedError on a non-positive conversion rate.
"""

from collections import deque
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from ledger_kernel.exceptions import ValidationFailedError

QUANTITY_QUANTUM = Decimal("0.000000001")


def _check_rate(rate: Decimal) -> Decimal:
    rate = Decimal(rate)
    if rate <= 0:
        raise ValidationFailedError(
            f"Conversion rate must be positive, got {rate}", field="conversion_rate"
        )
    return rate


def to_base_quantity(
    quantity: Decimal,
    line_unit_id: UUID | None,
    default_unit_id: UUID | None,
    base_unit_id: UUID | None,
    conversion_rate: Decimal,
) -> Decimal:
    """Convert a line quantity into the product's base unit."""
    rate = _check_rate(conversion_rate)
    if base_unit_id is None or line_unit_id == base_unit_id:
        return quantity
    if line_unit_id == default_unit_id and default_unit_id != base_unit_id:
        return quantity * rate
    return quantity


def from_base_quantity(
    base_quantity: Decimal,
    line_unit_id: UUID | None,
    default_unit_id: UUID | None,
    base_unit_id: UUID | None,
    conversion_rate: Decimal,
) -> Decimal:
    """Inverse of to_base_quantity on the same default/base pair."""
    rate = _check_rate(conversion_rate)
    if base_unit_id is None or line_unit_id == base_unit_id:
        return base_quantity
    if line_unit_id == default_unit_id and default_unit_id != base_unit_id:
        return (base_quantity / rate).quantize(QUANTITY_QUANTUM, rounding=ROUND_HALF_UP)
    return base_quantity


def unit_cost_in_base(
    unit_cost: Decimal, quantity: Decimal, base_quantity: Decimal
) -> Decimal:
    """Spread a per-line-unit cost over the converted base quantity."""
    if base_quantity == 0 or base_quantity == quantity:
        return unit_cost
    return (unit_cost * quantity / base_quantity).quantize(
        QUANTITY_QUANTUM, rounding=ROUND_HALF_UP
    )


@dataclass(frozen=True)
class ConversionEdge:
    """One product-specific rate: 1 ``from_unit`` equals ``rate`` ``to_unit``."""
    from_unit_id: UUID
    to_unit_id: UUID
    rate: Decimal


def resolve_rate(
    edges: list[ConversionEdge] | tuple[ConversionEdge, ...],
    from_unit_id: UUID,
    to_unit_id: UUID,
) -> Decimal | None:
    """
    Find the multiplier converting ``from_unit`` quantities into ``to_unit``.

    Breadth-first over the edges, each usable forwards (times rate) or
    backwards (divided by rate).  Shortest hop count wins.  Returns None when
    the units are not connected.
    """
    if from_unit_id == to_unit_id:
        return Decimal(1)

    adjacency: dict[UUID, list[tuple[UUID, Decimal]]] = {}
    for edge in edges:
        rate = _check_rate(edge.rate)
        adjacency.setdefault(edge.from_unit_id, []).append((edge.to_unit_id, rate))
        adjacency.setdefault(edge.to_unit_id, []).append(
            (edge.from_unit_id, Decimal(1) / rate)
        )

    queue: deque[tuple[UUID, Decimal]] = deque([(from_unit_id, Decimal(1))])
    seen = {from_unit_id}
    while queue:
        unit, factor = queue.popleft()
        for neighbour, rate in adjacency.get(unit, ()):
            if neighbour in seen:
                continue
            if neighbour == to_unit_id:
                return factor * rate
            seen.add(neighbour)
            queue.append((neighbour, factor * rate))
    return None
