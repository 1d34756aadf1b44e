"""
Three-way commission split for a closed transaction.

gross  = price * commission% / 100 * sides
master = gross * royalty% / 100      (platform)
net    = gross * split% / 100        (agent)
office = gross - master - net        (brokerage; may be negative)

All arithmetic is Decimal under a wide local context so stored values carry no
rounding; round_currency is for presentation only.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext
from typing import Union

from brokerage.core.errors import ValidationError

Number = Union[Decimal, int, float, str]

HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# Enough digits for price up to 1e12 times three percentages without rounding.
_CALC_CONTEXT = Context(prec=60)


def to_decimal(value: Number) -> Decimal:
    """Coerce numeric input to Decimal; floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("booleans are not amounts")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class CommissionSplit:
    """Result of calculate_commission. master + net + office == gross exactly."""

    gross: Decimal
    master: Decimal
    net: Decimal
    office: Decimal

    def as_transaction_fields(self) -> dict[str, Decimal]:
        return {
            "gross_commission": self.gross,
            "master_commission_amount": self.master,
            "net_commission": self.net,
            "office_commission_amount": self.office,
        }


# PUBLIC_INTERFACE
def calculate_commission(
    price: Number,
    sides: int,
    commission_pct: Number,
    split_pct: Number,
    royalty_pct: Number,
) -> CommissionSplit:
    """
    Split the gross commission of a deal between platform, agent and office.

    The function is pure and does not validate economic sanity: when
    split_pct + royalty_pct > 100 the office share comes out negative and is
    returned as such.
    """
    with localcontext(_CALC_CONTEXT):
        gross = to_decimal(price) * (to_decimal(commission_pct) / HUNDRED) * int(sides)
        master = gross * to_decimal(royalty_pct) / HUNDRED
        net = gross * to_decimal(split_pct) / HUNDRED
        office = gross - master - net
    return CommissionSplit(gross=gross, master=master, net=net, office=office)


def _check_percentage(name: str, value: Decimal) -> None:
    if value < 0 or value > HUNDRED:
        raise ValidationError(f"{name} must be between 0 and 100", details={"field": name, "value": str(value)})


# PUBLIC_INTERFACE
def validate_commission_inputs(
    price: Number | None,
    sides: int,
    commission_pct: Number,
    split_pct: Number,
    royalty_pct: Number = 0,
) -> None:
    """Raise ValidationError for inputs the ledger refuses to persist."""
    if price is None:
        raise ValidationError("actual_price is required", details={"field": "actual_price"})
    if to_decimal(price) <= 0:
        raise ValidationError("actual_price must be greater than 0", details={"field": "actual_price"})
    if int(sides) < 1:
        raise ValidationError("sides must be at least 1", details={"field": "sides"})
    _check_percentage("commission_percentage", to_decimal(commission_pct))
    _check_percentage("agent_split_percentage", to_decimal(split_pct))
    _check_percentage("royalty_percentage", to_decimal(royalty_pct))


# PUBLIC_INTERFACE
def round_currency(value: Number | None) -> Decimal | None:
    """Quantize an amount to cents, half-up. Presentation only."""
    if value is None:
        return None
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
