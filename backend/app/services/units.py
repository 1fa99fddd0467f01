"""Fabric quantity units and conversion.

Length units convert through meters (1 yard = 0.9144 m).  Pieces are a
counting unit: ``to_meters`` passes them through unchanged, they never
convert to or from a length unit, and inventory keeps them on their own
item (see ``stock_unit``).
"""

from __future__ import annotations

from dataclasses import dataclass

METERS = "meters"
YARDS = "yards"
PIECES = "pieces"

UNITS = (METERS, YARDS, PIECES)
LENGTH_UNITS = (METERS, YARDS)

YARD_IN_METERS = 0.9144

# Significant digits kept on converted quantities
PRECISION = 6


def _check_unit(unit: str) -> None:
    if unit not in UNITS:
        raise ValueError(f"Unknown unit: {unit!r}")


def to_meters(quantity: float, unit: str) -> float:
    """Meters-equivalent of ``quantity`` expressed in ``unit``."""
    _check_unit(unit)
    if unit == YARDS:
        return round(quantity * YARD_IN_METERS, PRECISION)
    return quantity


def from_meters(meters: float, unit: str) -> float:
    _check_unit(unit)
    if unit == YARDS:
        return round(meters / YARD_IN_METERS, PRECISION)
    return meters


def stock_unit(unit: str) -> str:
    """Unit of the inventory item a quantity in ``unit`` is stocked on."""
    _check_unit(unit)
    return PIECES if unit == PIECES else METERS


def is_convertible(from_unit: str, to_unit: str) -> bool:
    _check_unit(from_unit)
    _check_unit(to_unit)
    if from_unit == to_unit:
        return True
    return from_unit in LENGTH_UNITS and to_unit in LENGTH_UNITS


def convert(quantity: float, from_unit: str, to_unit: str) -> float:
    """Convert between two units; pieces only convert to pieces."""
    if not is_convertible(from_unit, to_unit):
        raise ValueError(f"Cannot convert {from_unit} to {to_unit}")
    if from_unit == to_unit:
        return quantity
    return from_meters(to_meters(quantity, from_unit), to_unit)


@dataclass(frozen=True)
class Quantity:
    """A quantity with its unit.  Used everywhere instead of bare numbers."""
    value: float
    unit: str

    def __post_init__(self):
        _check_unit(self.unit)

    def to_meters(self) -> float:
        return to_meters(self.value, self.unit)

    def to(self, unit: str) -> "Quantity":
        return Quantity(convert(self.value, self.unit, unit), unit)

    def to_stock(self) -> "Quantity":
        """This quantity in the unit of the inventory item it is stocked on."""
        return self.to(stock_unit(self.unit))

    def __str__(self) -> str:
        return f"{self.value:g} {self.unit}"


@dataclass(frozen=True)
class Elongation:
    quantity_meters: float
    percentage: float


def calculate_elongation(input_qty: Quantity, output_qty: Quantity) -> Elongation:
    """Yield change between the fabric fed into processing and the output.

    Positive when the output is longer than the input.  Percentage is 0
    when the input is 0.
    """
    input_m = input_qty.to_meters()
    output_m = output_qty.to_meters()
    diff = round(output_m - input_m, PRECISION)
    pct = round(diff / input_m * 100, 2) if input_m > 0 else 0.0
    return Elongation(quantity_meters=diff, percentage=pct)
