"""Invoice arithmetic, done in Decimal and rounded to the cent."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple, Union

Number = Union[int, float, str, Decimal]
CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_amount(quantity: Number, unit_price: Number) -> Decimal:
    return round_cents(to_decimal(quantity) * to_decimal(unit_price))


def compute_invoice_totals(
    lines: Iterable[Tuple[Number, Number]],
    vat_rate: Number,
    vat_inclusive: bool,
) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Return ``(subtotal, vat_amount, total)`` for ``(quantity, unit_price)`` lines.

    Inclusive VAT treats the line sum as the gross total:
    ``vat = total * rate / (100 + rate)`` and ``subtotal = total - vat``.
    Exclusive VAT adds on top: ``vat = subtotal * rate / 100``.
    """
    rate = to_decimal(vat_rate)
    gross = sum((line_amount(q, p) for q, p in lines), Decimal("0"))

    if vat_inclusive:
        total = gross
        vat_amount = round_cents(total * rate / (Decimal("100") + rate))
        subtotal = total - vat_amount
    else:
        subtotal = gross
        vat_amount = round_cents(subtotal * rate / Decimal("100"))
        total = subtotal + vat_amount

    return subtotal, vat_amount, total


def format_naira(amount: Number) -> str:
    return f"₦{to_decimal(amount):,.2f}"
