from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from supplyhub.auth import Principal
from supplyhub.errors import InvalidTransition, NotFound, ValidationError
from supplyhub.models import Invoice, InvoiceStatus, Order, OrderStatus, Supplier
from supplyhub.services.audit_service import log_audit
from supplyhub.services.invoice_generator_service import find_invoice_for_order, next_invoice_number
from supplyhub.services.money import invoice_total, money_to_float, to_money


# PAID and CANCELLED are terminal and have no outgoing edges.
VALID_INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.OVERDUE: frozenset(
        {InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.CANCELLED, InvoiceStatus.DISPUTED}
    ),
    InvoiceStatus.PARTIALLY_PAID: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.DISPUTED: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
}

OUTSTANDING_STATUSES = frozenset({InvoiceStatus.PENDING, InvoiceStatus.OVERDUE})

_UNSET = object()


@dataclass(frozen=True)
class InvoiceSummary:
    total_pending: Decimal
    total_paid: Decimal
    overdue_count: int
    total_invoices: int


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def initial_status_for(due_date: datetime, *, now: datetime | None = None) -> InvoiceStatus:
    now = now or _now()
    return InvoiceStatus.PENDING if _as_utc(due_date) > now else InvoiceStatus.OVERDUE


def check_transition(current: InvoiceStatus, target: str | InvoiceStatus) -> InvoiceStatus:
    """Validate ``current -> target`` against the transition table.

    Unknown target strings are reported literally in the error message.
    """
    allowed = VALID_INVOICE_TRANSITIONS.get(current)
    if not allowed:
        raise InvalidTransition(f'Cannot transition from {current.value}')
    target_label = target.value if isinstance(target, InvoiceStatus) else str(target)
    try:
        resolved = InvoiceStatus(target_label)
    except ValueError:
        resolved = None
    if resolved is None or resolved not in allowed:
        raise InvalidTransition(f'Invalid transition from {current.value} to {target_label}')
    return resolved


def validate_payment(target: InvoiceStatus, *, paid_amount: Decimal | None, total: Decimal) -> None:
    if target == InvoiceStatus.PAID:
        if paid_amount is not None and paid_amount <= 0:
            raise ValidationError('PAID requires paidAmount > 0 when given')
        return
    if target != InvoiceStatus.PARTIALLY_PAID:
        return
    if paid_amount is None or paid_amount <= 0:
        raise ValidationError('PARTIALLY_PAID requires paidAmount > 0')
    if paid_amount >= total:
        raise ValidationError('PARTIALLY_PAID requires paidAmount < total')


def _scope_clause(principal: Principal):
    scopes = []
    if principal.restaurant_id is not None:
        scopes.append(Invoice.restaurant_id == principal.restaurant_id)
    if principal.supplier_id is not None:
        scopes.append(Invoice.supplier_id == principal.supplier_id)
    if not scopes:
        raise NotFound('Restaurant not found')
    return or_(*scopes)


def get_invoice(db: Session, principal: Principal, *, invoice_id: int, for_update: bool = False) -> Invoice:
    query = select(Invoice).where(Invoice.id == invoice_id, _scope_clause(principal))
    if for_update:
        query = query.with_for_update()
    invoice = db.execute(query).scalar_one_or_none()
    if invoice is None:
        raise NotFound('Invoice not found')
    return invoice


def update_invoice(
    db: Session,
    principal: Principal,
    *,
    invoice_id: int,
    status: str | InvoiceStatus | None = None,
    paid_amount=None,
    payment_method: str | None = None,
    payment_reference: str | None = None,
    notes=_UNSET,
    due_date: datetime | None = None,
    ip: str | None = None,
) -> Invoice:
    invoice = get_invoice(db, principal, invoice_id=invoice_id, for_update=True)
    previous_status = invoice.status
    amount = to_money(paid_amount, field='paidAmount') if paid_amount is not None else None

    target = None
    if status:
        target = check_transition(invoice.status, status)
        validate_payment(target, paid_amount=amount, total=to_money(invoice.total))

    now = _now()
    if notes is not _UNSET:
        invoice.notes = notes
    if due_date is not None:
        invoice.due_date = due_date

    if target == InvoiceStatus.PAID:
        invoice.status = target
        invoice.paid_at = now
        invoice.paid_amount = amount if amount is not None else to_money(invoice.total)
        if payment_method:
            invoice.payment_method = payment_method
        if payment_reference:
            invoice.payment_reference = payment_reference
    elif target == InvoiceStatus.PARTIALLY_PAID:
        invoice.status = target
        invoice.paid_amount = amount
        if payment_method:
            invoice.payment_method = payment_method
        if payment_reference:
            invoice.payment_reference = payment_reference
    elif target is not None:
        invoice.status = target
    invoice.updated_at = now

    log_audit(
        db,
        actor_user_id=principal.id,
        action='INVOICE_STATUS_CHANGED' if target is not None else 'INVOICE_UPDATED',
        entity_type='invoice',
        entity_id=invoice.id,
        ip=ip,
        metadata={
            'previous_status': previous_status.value,
            'new_status': invoice.status.value,
            'paid_amount': str(invoice.paid_amount) if invoice.paid_amount is not None else None,
        },
    )
    db.flush()
    return invoice


def create_invoice(
    db: Session,
    principal: Principal,
    *,
    subtotal,
    due_date: datetime,
    tax=0,
    supplier_id: int | None = None,
    order_id: int | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
    ip: str | None = None,
) -> Invoice:
    """Record an invoice outside the delivery flow.

    Restaurant users pick the supplier; supplier users always invoice as
    themselves and must reference one of their orders.
    """
    if principal.is_supplier:
        supplier_id = principal.supplier_id
        if order_id is None:
            raise ValidationError('orderId is required')
    elif principal.restaurant_id is None:
        raise NotFound('Restaurant not found')
    if supplier_id is None:
        raise ValidationError('supplierId is required')

    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound('Supplier not found')

    restaurant_id = principal.restaurant_id
    if order_id is not None:
        order_scope = [Order.id == order_id, Order.supplier_id == supplier_id]
        if principal.restaurant_id is not None:
            order_scope.append(Order.restaurant_id == principal.restaurant_id)
        order = db.execute(select(Order).where(*order_scope).with_for_update()).scalar_one_or_none()
        if order is None:
            raise NotFound('Order not found')
        if order.status in {OrderStatus.DRAFT, OrderStatus.CANCELLED}:
            raise ValidationError('Cannot invoice a draft or cancelled order')
        if find_invoice_for_order(db, order_id=order.id) is not None:
            raise ValidationError('Order already has an invoice')
        restaurant_id = order.restaurant_id

    number = (invoice_number or '').strip() or next_invoice_number(db, supplier_id=supplier_id)
    duplicate = db.execute(
        select(Invoice.id).where(Invoice.supplier_id == supplier_id, Invoice.invoice_number == number)
    ).first()
    if duplicate:
        raise ValidationError('Invoice number already exists for this supplier')

    amount = to_money(subtotal, field='subtotal')
    tax_amount = to_money(tax, field='tax')
    if amount < 0 or tax_amount < 0:
        raise ValidationError('Invoice amounts cannot be negative')

    now = _now()
    invoice = Invoice(
        invoice_number=number,
        status=initial_status_for(due_date, now=now),
        subtotal=amount,
        tax=tax_amount,
        total=invoice_total(subtotal=amount, tax=tax_amount),
        issue_date=now,
        due_date=due_date,
        notes=notes,
        restaurant_id=restaurant_id,
        supplier_id=supplier_id,
        order_id=order_id,
        updated_at=now,
    )
    db.add(invoice)
    db.flush()
    log_audit(
        db,
        actor_user_id=principal.id,
        action='INVOICE_CREATED',
        entity_type='invoice',
        entity_id=invoice.id,
        ip=ip,
        metadata={'invoice_number': number, 'order_id': order_id, 'status': invoice.status.value},
    )
    return invoice


def list_invoices(
    db: Session,
    principal: Principal,
    *,
    status: InvoiceStatus | None = None,
    supplier_id: int | None = None,
) -> tuple[list[Invoice], InvoiceSummary]:
    scope = _scope_clause(principal)
    query = select(Invoice).where(scope)
    if status is not None:
        query = query.where(Invoice.status == status)
    if supplier_id is not None:
        query = query.where(Invoice.supplier_id == supplier_id)
    invoices = db.execute(query.order_by(Invoice.created_at.desc(), Invoice.id.desc())).scalars().all()

    everything = db.execute(select(Invoice).where(scope)).scalars().all()
    summary = InvoiceSummary(
        total_pending=sum((to_money(i.total) for i in everything if i.status in OUTSTANDING_STATUSES), Decimal('0.00')),
        total_paid=sum((to_money(i.total) for i in everything if i.status == InvoiceStatus.PAID), Decimal('0.00')),
        overdue_count=sum(1 for i in everything if i.status == InvoiceStatus.OVERDUE),
        total_invoices=len(everything),
    )
    return invoices, summary


def serialize_invoice(invoice: Invoice) -> dict:
    return {
        'id': invoice.id,
        'invoiceNumber': invoice.invoice_number,
        'status': invoice.status.value,
        'subtotal': money_to_float(invoice.subtotal),
        'tax': money_to_float(invoice.tax),
        'total': money_to_float(invoice.total),
        'issueDate': invoice.issue_date.isoformat() if invoice.issue_date else None,
        'dueDate': invoice.due_date.isoformat() if invoice.due_date else None,
        'paidAt': invoice.paid_at.isoformat() if invoice.paid_at else None,
        'paidAmount': money_to_float(invoice.paid_amount),
        'paymentMethod': invoice.payment_method,
        'paymentReference': invoice.payment_reference,
        'notes': invoice.notes,
        'restaurantId': invoice.restaurant_id,
        'supplierId': invoice.supplier_id,
        'orderId': invoice.order_id,
    }


def serialize_summary(summary: InvoiceSummary) -> dict:
    return {
        'totalPending': money_to_float(summary.total_pending),
        'totalPaid': money_to_float(summary.total_paid),
        'overdueCount': summary.overdue_count,
        'totalInvoices': summary.total_invoices,
    }
