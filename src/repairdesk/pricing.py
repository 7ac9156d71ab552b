"""Cost model: labor tiers, diagnostic fees, part-line pricing and totals.

Everything here is pure. Currency is ``Decimal`` quantized to cents with
ROUND_HALF_UP; floats are accepted only through their ``str`` form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Mapping, Optional

from .domain import PartLine
from .errors import ComputationError, ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# work_order money columns are NUMERIC(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")
DEFAULT_MARKUP = Decimal("75")
# part_line.markup_percentage is NUMERIC(7, 2), part_line.quantity is INTEGER
MAX_MARKUP = Decimal("99999.99")
MAX_QUANTITY = 2147483647
# work_order.labor_level CHECK (labor_level BETWEEN 0 AND 10)
MAX_LABOR_LEVEL = 10


def to_money(value) -> Decimal:
    """Quantize an amount to cents, failing loudly on anything unrepresentable."""
    if not isinstance(value, Decimal):
        value = parse_decimal(value, "amount")
    try:
        if not value.is_finite():
            raise ComputationError(f"Non-finite currency value: {value}")
        money = value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ComputationError(f"Unrepresentable currency value: {value}") from e
    if abs(money) > MAX_AMOUNT:
        raise ComputationError(f"Currency value out of range: {money}")
    return money


def parse_decimal(value, name: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{name} must be a number.")
    if isinstance(value, Decimal):
        return value
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{name} is not a valid number: {value!r}") from e
    if not d.is_finite():
        raise ValidationError(f"{name} must be finite.")
    return d


def normalize_markup(value) -> Decimal:
    """Markup percentage at two decimals, half-up, within the stored column's range."""
    markup = parse_decimal(value, "markup_percentage")
    if markup < 0:
        raise ValidationError("Part markup cannot be negative.")
    if markup >= 100000:
        raise ValidationError(f"Part markup must be below 100000%, got {markup}.")
    markup = markup.quantize(CENT, rounding=ROUND_HALF_UP)
    if markup > MAX_MARKUP:
        raise ValidationError(f"Part markup must be below 100000%, got {markup}.")
    return markup


@dataclass(frozen=True)
class PricingTable:
    version: str
    labor: Mapping[int, Decimal]
    diagnostic_fees: Mapping[str, Decimal]
    default_markup: Decimal = DEFAULT_MARKUP
    labor_labels: Mapping[int, str] = field(default_factory=dict)

    @classmethod
    def tiered(
        cls,
        *,
        version: str,
        base: Decimal | int | str = 110,
        step: Decimal | int | str = 40,
        max_level: int = 10,
        diagnostic_fees: Optional[Mapping[str, Decimal | int | str]] = None,
        default_markup: Decimal | int | str = DEFAULT_MARKUP,
    ) -> "PricingTable":
        """Level 0 is complimentary, level 1 costs ``base``, each further level adds ``step``."""
        if not 1 <= max_level <= MAX_LABOR_LEVEL:
            raise ValidationError(f"max_labor_level must be between 1 and {MAX_LABOR_LEVEL}.")
        base_d = to_money(parse_decimal(base, "labor_base"))
        step_d = to_money(parse_decimal(step, "labor_step"))

        labor = {0: ZERO}
        labels = {0: "Complimentary"}
        for level in range(1, max_level + 1):
            labor[level] = to_money(base_d + (level - 1) * step_d)
            labels[level] = f"Level {level}"

        fees_src = diagnostic_fees if diagnostic_fees is not None else _DEFAULT_FEES
        fees = {str(k): to_money(parse_decimal(v, f"diagnostic fee {k}")) for k, v in fees_src.items()}

        return cls(
            version=version,
            labor=labor,
            diagnostic_fees=fees,
            default_markup=normalize_markup(default_markup),
            labor_labels=labels,
        )

    @property
    def max_labor_level(self) -> int:
        return max(self.labor)


_DEFAULT_FEES = {"standard": 99, "built-in": 125, "boutique": 150}

DEFAULT_PRICING = PricingTable.tiered(version="2024-01")


@dataclass(frozen=True)
class CostBreakdown:
    labor_cost: Decimal
    diagnostic_fee: Decimal
    parts_cost: Decimal
    total_cost: Decimal


def validate_labor_level(level, pricing: PricingTable = DEFAULT_PRICING) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValidationError(f"Labor level must be an integer, got {level!r}.")
    if level not in pricing.labor:
        raise ValidationError(f"Labor level must be between 0 and {pricing.max_labor_level}, got {level}.")
    return level


def labor_cost(level: int, pricing: PricingTable = DEFAULT_PRICING) -> Decimal:
    return pricing.labor[validate_labor_level(level, pricing)]


def normalize_diagnostic_fee_type(category: Optional[str], pricing: PricingTable = DEFAULT_PRICING) -> Optional[str]:
    if category is None:
        return None
    key = str(category).strip().lower()
    if not key or key == "none":
        return None
    if key not in pricing.diagnostic_fees:
        allowed = ", ".join(sorted(pricing.diagnostic_fees))
        raise ValidationError(f"Unknown diagnostic fee type: {category!r} (expected one of: {allowed}).")
    return key


def diagnostic_fee(category: Optional[str], pricing: PricingTable = DEFAULT_PRICING) -> Decimal:
    key = normalize_diagnostic_fee_type(category, pricing)
    if key is None:
        return ZERO
    return pricing.diagnostic_fees[key]


def final_price(unit_cost, markup_percentage) -> Decimal:
    cost = parse_decimal(unit_cost, "unit_cost")
    markup = parse_decimal(markup_percentage, "markup_percentage")
    return to_money(cost * (1 + markup / 100))


def make_part_line(
    *,
    part_name: str,
    part_number: str,
    unit_cost,
    quantity,
    markup_percentage=None,
    pricing: PricingTable = DEFAULT_PRICING,
) -> PartLine:
    """Validate one part line and price it from its unit cost and markup."""
    name = (part_name or "").strip()
    number = (part_number or "").strip()
    if not name and not number:
        raise ValidationError("Part line needs a part name or part number.")

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Part quantity must be an integer, got {quantity!r}.")
    if quantity <= 0:
        raise ValidationError("Part quantity must be > 0.")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Part quantity must be at most {MAX_QUANTITY}.")

    cost = to_money(parse_decimal(unit_cost, "unit_cost"))
    if cost < 0:
        raise ValidationError("Part unit cost cannot be negative.")

    # price from the markup exactly as it will be stored
    markup = normalize_markup(pricing.default_markup if markup_percentage is None else markup_percentage)

    return PartLine(
        part_name=name,
        part_number=number,
        unit_cost=cost,
        markup_percentage=markup,
        final_price=final_price(cost, markup),
        quantity=quantity,
    )


def part_line_total(line: PartLine) -> Decimal:
    return to_money(line.final_price * line.quantity)


def parts_total(lines: Iterable[PartLine]) -> Decimal:
    total = ZERO
    for ln in lines:
        total += part_line_total(ln)
    return to_money(total)


def total_cost(
    labor_level: int,
    diagnostic_fee_amount,
    lines: Iterable[PartLine],
    pricing: PricingTable = DEFAULT_PRICING,
) -> Decimal:
    return to_money(labor_cost(labor_level, pricing) + to_money(diagnostic_fee_amount) + parts_total(lines))


def cost_breakdown(
    labor_level: int,
    diagnostic_fee_amount,
    lines: Iterable[PartLine],
    pricing: PricingTable = DEFAULT_PRICING,
) -> CostBreakdown:
    lines = list(lines)
    labor = labor_cost(labor_level, pricing)
    fee = to_money(diagnostic_fee_amount)
    parts = parts_total(lines)
    return CostBreakdown(
        labor_cost=labor,
        diagnostic_fee=fee,
        parts_cost=parts,
        total_cost=to_money(labor + fee + parts),
    )
