from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from supplyhub.config import settings
from supplyhub.errors import InvalidState
from supplyhub.models import (
    Invoice,
    InvoiceStatus,
    NotificationType,
    Order,
    OrderItem,
    OrderStatus,
    SupplierProduct,
)
from supplyhub.services.money import format_currency, invoice_total, money_to_float, to_money, to_quantity
from supplyhub.services.notification_service import create_notification, find_restaurant_recipient, format_due_date


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceGenerationResult:
    invoice: Invoice
    created: bool
    disputed: bool = False


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def format_invoice_number(supplier_id, sequence: int) -> str:
    suffix = str(supplier_id)[-4:].upper()
    return f'INV-{suffix}-{sequence:05d}'


def _number_taken(db: Session, *, supplier_id: int, number: str) -> bool:
    found = db.execute(
        select(Invoice.id).where(Invoice.supplier_id == supplier_id, Invoice.invoice_number == number)
    ).first()
    return found is not None


def next_invoice_number(db: Session, *, supplier_id: int) -> str:
    """Next free ``INV-`` number for the supplier.

    Starts at the supplier's invoice count + 1 and steps past numbers that
    manual invoices already hold.
    """
    count = db.execute(select(func.count(Invoice.id)).where(Invoice.supplier_id == supplier_id)).scalar_one()
    sequence = int(count) + 1
    number = format_invoice_number(supplier_id, sequence)
    while _number_taken(db, supplier_id=supplier_id, number=number):
        sequence += 1
        number = format_invoice_number(supplier_id, sequence)
    return number


def find_invoice_for_order(db: Session, *, order_id: int) -> Invoice | None:
    return db.execute(select(Invoice).where(Invoice.order_id == order_id)).scalar_one_or_none()


def expected_invoice_total(db: Session, *, order_id: int) -> Decimal | None:
    """Order lines priced at the current catalog price, plus the expected tax.

    ``None`` when the order carries no lines to price.
    """
    rows = db.execute(
        select(OrderItem.quantity, SupplierProduct.price)
        .join(SupplierProduct, SupplierProduct.id == OrderItem.supplier_product_id)
        .where(OrderItem.order_id == order_id)
    ).all()
    if not rows:
        return None
    subtotal = sum((to_quantity(quantity) * to_money(price) for quantity, price in rows), Decimal('0'))
    return to_money(subtotal * (1 + settings.expected_tax_rate))


def _check_for_dispute(db: Session, *, invoice: Invoice, order: Order, now: datetime) -> bool:
    expected = expected_invoice_total(db, order_id=order.id)
    if expected is None or expected <= 0:
        return False
    total = to_money(invoice.total)
    if total <= expected * (1 + settings.invoice_dispute_tolerance):
        return False

    invoice.status = InvoiceStatus.DISPUTED
    invoice.updated_at = now
    discrepancy = ((total - expected) / expected * 100).quantize(Decimal('0.01'))
    logger.warning(
        'Invoice %s auto-disputed: total %s exceeds expected %s by %s%%',
        invoice.invoice_number,
        total,
        expected,
        discrepancy,
    )
    recipient = find_restaurant_recipient(db, restaurant_id=order.restaurant_id, fallback_user_id=order.created_by_id)
    if recipient is not None:
        create_notification(
            db,
            user_id=recipient.id,
            type=NotificationType.SYSTEM,
            title='Invoice Auto-Disputed',
            message=(
                f'Invoice {invoice.invoice_number} ({format_currency(total)}) is {discrepancy}% higher than the '
                f'expected total ({format_currency(expected)}) based on current catalog prices.'
            ),
            metadata={
                'invoiceId': invoice.id,
                'orderId': order.id,
                'invoiceTotal': money_to_float(total),
                'expectedTotal': money_to_float(expected),
                'discrepancyPercent': float(discrepancy),
            },
        )
    return True


def generate_invoice_for_order(db: Session, *, order: Order, now: datetime | None = None) -> InvoiceGenerationResult:
    """Create the invoice for a delivered order inside the caller's transaction.

    Safe to call more than once for the same order: an existing invoice is
    returned unchanged. The unique constraint on ``invoices.order_id`` is
    the final arbiter when two deliveries race past the lookup.
    """
    if order.status != OrderStatus.DELIVERED:
        raise InvalidState('Invoices are only generated for delivered orders')

    existing = find_invoice_for_order(db, order_id=order.id)
    if existing is not None:
        return InvoiceGenerationResult(invoice=existing, created=False)

    now = now or _now()
    # Delivery fee and discount fold into the invoice subtotal so the invoice
    # total equals the order total and still equals subtotal + tax.
    subtotal = to_money(order.subtotal) + to_money(order.delivery_fee) - to_money(order.discount)
    tax = to_money(order.tax)
    invoice = Invoice(
        invoice_number=next_invoice_number(db, supplier_id=order.supplier_id),
        status=InvoiceStatus.PENDING,
        subtotal=subtotal,
        tax=tax,
        total=invoice_total(subtotal=subtotal, tax=tax),
        issue_date=now,
        due_date=now + timedelta(days=settings.invoice_payment_terms_days),
        notes=f'Auto-generated from delivered order {order.order_number}',
        restaurant_id=order.restaurant_id,
        supplier_id=order.supplier_id,
        order_id=order.id,
        updated_at=now,
    )
    db.flush()
    try:
        with db.begin_nested():
            db.add(invoice)
            db.flush()
    except IntegrityError:
        existing = find_invoice_for_order(db, order_id=order.id)
        if existing is None:
            raise
        return InvoiceGenerationResult(invoice=existing, created=False)

    recipient = find_restaurant_recipient(db, restaurant_id=order.restaurant_id, fallback_user_id=order.created_by_id)
    if recipient is not None:
        create_notification(
            db,
            user_id=recipient.id,
            type=NotificationType.INVOICE,
            title='Invoice Generated',
            message=(
                f'Invoice {invoice.invoice_number} ({format_currency(invoice.total)}) generated for order '
                f'{order.order_number}. Payment due by {format_due_date(invoice.due_date)}.'
            ),
            metadata={'invoiceId': invoice.id, 'orderId': order.id, 'invoiceNumber': invoice.invoice_number},
        )
    disputed = _check_for_dispute(db, invoice=invoice, order=order, now=now)
    db.flush()
    return InvoiceGenerationResult(invoice=invoice, created=True, disputed=disputed)
