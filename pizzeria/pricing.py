"""
Price Computation

Pure functions that turn a menu item configuration into a unit price and
a set of cart lines into checkout totals. All money is Decimal, rounded
half-up to cents.

Usage:
    from pizzeria.pricing import quote_unit_price, compute_totals

    quote = quote_unit_price(
        base_price=1000,
        size_label="L",
        size_multipliers={"S": 0.9, "M": 1.0, "L": 1.2},
        selected_extras=["Olives", "Extra Cheese"],
        extra_surcharge=80,
    )
    quote.unit_price  # Decimal("1360.00")
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional, Union

from pizzeria.exceptions import ConfigurationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]
ExtrasInput = Union[str, Iterable[str], None]


@dataclass(frozen=True)
class PriceQuote:
    """
    Unit price for a prospective cart addition.

    Attributes:
        base_price: Menu price before size and extras
        size_label: Normalized size label the multiplier was taken from
        multiplier: Size multiplier applied to the base price
        extras_count: Number of distinct extras selected
        extra_surcharge: Flat price added per extra
        unit_price: base_price * multiplier + extra_surcharge * extras_count
    """
    base_price: Decimal
    size_label: str
    multiplier: Decimal
    extras_count: int
    extra_surcharge: Decimal
    unit_price: Decimal

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "base_price": self.base_price,
            "size_label": self.size_label,
            "multiplier": self.multiplier,
            "extras_count": self.extras_count,
            "extra_surcharge": self.extra_surcharge,
            "unit_price": self.unit_price,
        }


@dataclass(frozen=True)
class OrderTotals:
    """Aggregate checkout amounts for one branch cart."""
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
        }


def _to_decimal(value: Any, what: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(f"{what} must be a number, got {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ConfigurationError(f"{what} must be a number, got {value!r}")
    if not result.is_finite():
        raise ConfigurationError(f"{what} must be finite, got {value!r}")
    return result


def round_money(value: Number) -> Decimal:
    """Round an amount half-up to currency precision."""
    return _to_decimal(value, "amount").quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_size_label(label: Optional[str]) -> str:
    return (label or "").strip().upper()


def parse_size_multipliers(
    table: Union[str, Mapping[str, Number], None],
) -> dict[str, Decimal]:
    """
    Parse and validate a size multiplier table.

    Accepts either a mapping or the "S:0.9,M:1.0,L:1.2" string form used in
    configuration. Labels are normalized to upper case.

    Raises:
        ConfigurationError: If the table is empty, a label is blank, or a
            multiplier is not a non-negative finite number
    """
    if table is None:
        raise ConfigurationError("Size multiplier table is missing")

    if isinstance(table, str):
        pairs = []
        for chunk in table.split(","):
            if not chunk.strip():
                continue
            label, sep, raw = chunk.partition(":")
            if not sep:
                raise ConfigurationError(
                    f"Malformed size multiplier entry {chunk.strip()!r}, expected LABEL:MULTIPLIER"
                )
            pairs.append((label, raw))
    else:
        pairs = list(table.items())

    result: dict[str, Decimal] = {}
    for label, raw in pairs:
        key = normalize_size_label(label)
        if not key:
            raise ConfigurationError("Size multiplier table has a blank size label")
        multiplier = _to_decimal(raw, f"Multiplier for size {key}")
        if multiplier < 0:
            raise ConfigurationError(f"Multiplier for size {key} must not be negative")
        result[key] = multiplier

    if not result:
        raise ConfigurationError("Size multiplier table is empty")
    return result


def split_extras(extras: ExtrasInput) -> list[str]:
    """Split an extras selection into distinct, non-blank names."""
    if extras is None:
        return []
    if isinstance(extras, str):
        extras = extras.split(",")

    seen = set()
    names = []
    for name in extras:
        cleaned = (name or "").strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            names.append(cleaned)
    return names


def canonical_extras(extras: ExtrasInput) -> str:
    """
    Build the extras descriptor used in a cart line's identity key.

    The same selection in any order, with any spacing or duplicates,
    yields the same string. No extras yields "".
    """
    return ",".join(sorted(split_extras(extras), key=lambda n: (n.lower(), n)))


def quote_unit_price(
    base_price: Number,
    size_label: str,
    size_multipliers: Union[str, Mapping[str, Number]],
    selected_extras: ExtrasInput,
    extra_surcharge: Number,
) -> PriceQuote:
    """
    Compute the unit price of a menu item configuration.

    Args:
        base_price: Menu price of the item
        size_label: Selected size (looked up case-insensitively)
        size_multipliers: Multiplier table for the item
        selected_extras: Names of the selected extras
        extra_surcharge: Flat price added per selected extra

    Returns:
        PriceQuote with unit_price rounded half-up to 2 decimal places

    Raises:
        ConfigurationError: Unknown size, malformed table or negative prices
    """
    multipliers = parse_size_multipliers(size_multipliers)
    label = normalize_size_label(size_label)
    if label not in multipliers:
        raise ConfigurationError(
            f"Unknown size {size_label!r}. Options: {sorted(multipliers)}"
        )

    base = _to_decimal(base_price, "Base price")
    surcharge = _to_decimal(extra_surcharge, "Extra surcharge")
    if base < 0:
        raise ConfigurationError("Base price must not be negative")
    if surcharge < 0:
        raise ConfigurationError("Extra surcharge must not be negative")

    count = len(split_extras(selected_extras))
    multiplier = multipliers[label]
    unit_price = (base * multiplier + surcharge * count).quantize(CENT, rounding=ROUND_HALF_UP)

    return PriceQuote(
        base_price=base,
        size_label=label,
        multiplier=multiplier,
        extras_count=count,
        extra_surcharge=surcharge,
        unit_price=unit_price,
    )


def compute_totals(
    lines: Iterable[Any],
    free_delivery_threshold: Number,
    flat_delivery_fee: Number,
) -> OrderTotals:
    """
    Aggregate subtotal, delivery fee and total over cart lines.

    Each line needs `unit_price` and `quantity` attributes. Delivery is
    free when there are no lines or when the subtotal reaches the
    threshold (inclusive).
    """
    lines = list(lines)
    subtotal = sum(
        (_to_decimal(line.unit_price, "Unit price") * line.quantity for line in lines),
        ZERO,
    ).quantize(CENT, rounding=ROUND_HALF_UP)

    threshold = _to_decimal(free_delivery_threshold, "Free delivery threshold")
    if not lines or subtotal >= threshold:
        delivery_fee = ZERO
    else:
        delivery_fee = round_money(flat_delivery_fee)

    return OrderTotals(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        total=subtotal + delivery_fee,
    )
