from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from supplyhub.errors import ValidationError


CENTS = Decimal('0.01')
QTY_PLACES = Decimal('0.001')


def to_money(value, *, field: str = 'amount') -> Decimal:
    """Coerce an input amount to a two-decimal ``Decimal``.

    Floats go through ``str`` so ``108.25`` stays ``108.25`` instead of the
    binary approximation.
    """
    if isinstance(value, Decimal):
        raw = value
    else:
        try:
            raw = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f'Invalid {field}') from exc
    if not raw.is_finite():
        raise ValidationError(f'Invalid {field}')
    return raw.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_quantity(value, *, field: str = 'quantity') -> Decimal:
    if isinstance(value, Decimal):
        raw = value
    else:
        try:
            raw = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f'Invalid {field}') from exc
    if not raw.is_finite():
        raise ValidationError(f'Invalid {field}')
    return raw.quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def order_total(*, subtotal, tax, delivery_fee, discount) -> Decimal:
    return to_money(to_money(subtotal) + to_money(tax) + to_money(delivery_fee) - to_money(discount))


def invoice_total(*, subtotal, tax) -> Decimal:
    return to_money(to_money(subtotal) + to_money(tax))


def money_to_float(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(to_money(value))


def quantity_to_float(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(to_quantity(value))


def format_currency(value) -> str:
    return f'${to_money(value):,.2f}'
