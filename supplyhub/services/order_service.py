from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from supplyhub.auth import Principal
from supplyhub.errors import BelowMinimum, Forbidden, InvalidState, NotFound, SupplierUnavailable, ValidationError
from supplyhub.models import (
    ApprovalStatus,
    Invoice,
    Order,
    OrderApproval,
    OrderStatus,
    Restaurant,
    Supplier,
    SupplierStatus,
)
from supplyhub.services.approval_rule_service import ApprovalDecision, evaluate_for_restaurant
from supplyhub.services.audit_service import log_audit
from supplyhub.services.invoice_generator_service import generate_invoice_for_order
from supplyhub.services.money import format_currency, money_to_float, to_money
from supplyhub.services.notification_service import (
    order_confirmed_email,
    order_delivered_email,
    order_placed_email,
    order_shipped_email,
)
from supplyhub.services.outbox import Outbox


class OrderAction(str, Enum):
    SUBMIT = 'submit'
    CANCEL = 'cancel'
    CONFIRM = 'confirm'
    SHIP = 'ship'
    DELIVER = 'deliver'
    REJECT = 'reject'


RESTAURANT_ACTIONS = frozenset({OrderAction.SUBMIT, OrderAction.CANCEL, OrderAction.CONFIRM, OrderAction.SHIP, OrderAction.DELIVER})
SUPPLIER_ACTIONS = frozenset({OrderAction.CONFIRM, OrderAction.SHIP, OrderAction.DELIVER, OrderAction.REJECT})

CANCELLABLE_STATUSES = frozenset({OrderStatus.DRAFT, OrderStatus.AWAITING_APPROVAL, OrderStatus.PENDING})


@dataclass
class TransitionContext:
    db: Session
    outbox: Outbox
    principal: Principal
    order: Order
    supplier: Supplier
    restaurant: Restaurant
    now: datetime


@dataclass
class TransitionResult:
    order: Order
    previous_status: OrderStatus
    approval: OrderApproval | None = None
    decision: ApprovalDecision | None = None
    invoice: Invoice | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_action(raw: str | OrderAction) -> OrderAction:
    if isinstance(raw, OrderAction):
        return raw
    try:
        return OrderAction(str(raw or '').strip().lower())
    except ValueError as exc:
        raise ValidationError('Invalid action') from exc


def get_order_for_principal(db: Session, principal: Principal, *, order_id: int, for_update: bool = False) -> Order:
    scopes = []
    if principal.restaurant_id is not None:
        scopes.append(Order.restaurant_id == principal.restaurant_id)
    if principal.supplier_id is not None:
        scopes.append(Order.supplier_id == principal.supplier_id)
    if not scopes:
        raise NotFound('Restaurant not found')

    query = select(Order).where(Order.id == order_id, or_(*scopes))
    if for_update:
        query = query.with_for_update()
    order = db.execute(query).scalar_one_or_none()
    if order is None:
        raise NotFound('Order not found')
    return order


def _allowed_actions(principal: Principal, order: Order) -> frozenset[OrderAction]:
    if principal.restaurant_id is not None and order.restaurant_id == principal.restaurant_id:
        return RESTAURANT_ACTIONS
    return SUPPLIER_ACTIONS


def _set_status(ctx: TransitionContext, status: OrderStatus) -> None:
    ctx.order.status = status
    ctx.order.updated_at = ctx.now


def place_with_supplier(ctx: TransitionContext) -> None:
    """Move an order to PENDING and tell the supplier about it."""
    order = ctx.order
    _set_status(ctx, OrderStatus.PENDING)
    order.delivery_date = ctx.now + timedelta(days=ctx.supplier.lead_time_days or 0)
    subject, html = order_placed_email(order.order_number, ctx.restaurant.name, order.total)
    ctx.outbox.send_email(to=ctx.supplier.email, subject=subject, html=html)


def _check_supplier_can_accept(order: Order, supplier: Supplier) -> None:
    if supplier.status == SupplierStatus.SUSPENDED:
        raise SupplierUnavailable('Cannot submit order: supplier is suspended')
    if supplier.status == SupplierStatus.INACTIVE:
        raise SupplierUnavailable('Cannot submit order: supplier is inactive')
    if supplier.minimum_order is not None:
        subtotal = to_money(order.subtotal)
        minimum = to_money(supplier.minimum_order)
        if subtotal < minimum:
            raise BelowMinimum(
                f'Order subtotal {format_currency(subtotal)} is below supplier minimum of {format_currency(minimum)}'
            )


def _submit(ctx: TransitionContext) -> TransitionResult:
    order = ctx.order
    previous = order.status
    if order.status != OrderStatus.DRAFT:
        raise InvalidState('Can only submit draft orders')
    _check_supplier_can_accept(order, ctx.supplier)

    decision = evaluate_for_restaurant(
        ctx.db,
        restaurant_id=order.restaurant_id,
        total=order.total,
        submitter_role=ctx.principal.role,
    )
    if not decision.requires_approval:
        place_with_supplier(ctx)
        return TransitionResult(order=order, previous_status=previous, decision=decision)

    _set_status(ctx, OrderStatus.AWAITING_APPROVAL)
    approval = OrderApproval(
        order_id=order.id,
        status=ApprovalStatus.PENDING,
        requested_by_id=ctx.principal.id,
    )
    ctx.db.add(approval)
    ctx.db.flush()
    ctx.outbox.emit(
        'order/approval.requested',
        {
            'orderId': order.id,
            'orderNumber': order.order_number,
            'approvalId': approval.id,
            'requesterName': ctx.principal.display_name,
            'total': money_to_float(order.total),
            'restaurantId': order.restaurant_id,
            'requiredRole': decision.required_role.value if decision.required_role else None,
        },
    )
    return TransitionResult(order=order, previous_status=previous, approval=approval, decision=decision)


def _cancel(ctx: TransitionContext) -> TransitionResult:
    previous = ctx.order.status
    if ctx.order.status not in CANCELLABLE_STATUSES:
        raise InvalidState('Can only cancel draft, awaiting approval, or pending orders')
    _set_status(ctx, OrderStatus.CANCELLED)
    closed = None
    if previous == OrderStatus.AWAITING_APPROVAL:
        outstanding = ctx.db.execute(
            select(OrderApproval)
            .where(OrderApproval.order_id == ctx.order.id, OrderApproval.status == ApprovalStatus.PENDING)
            .with_for_update()
        ).scalars().all()
        for approval in outstanding:
            approval.status = ApprovalStatus.REJECTED
            approval.notes = 'Order cancelled'
            approval.reviewed_by_id = ctx.principal.id
            approval.reviewed_at = ctx.now
            closed = approval
    return TransitionResult(order=ctx.order, previous_status=previous, approval=closed)


def _reject(ctx: TransitionContext) -> TransitionResult:
    previous = ctx.order.status
    if ctx.order.status != OrderStatus.PENDING:
        raise InvalidState('Can only reject pending orders')
    _set_status(ctx, OrderStatus.CANCELLED)
    return TransitionResult(order=ctx.order, previous_status=previous)


def _confirm(ctx: TransitionContext) -> TransitionResult:
    previous = ctx.order.status
    if ctx.order.status != OrderStatus.PENDING:
        raise InvalidState('Can only confirm pending orders')
    _set_status(ctx, OrderStatus.CONFIRMED)
    subject, html = order_confirmed_email(ctx.order.order_number, ctx.supplier.name)
    ctx.outbox.send_email(to=ctx.restaurant.email, subject=subject, html=html)
    return TransitionResult(order=ctx.order, previous_status=previous)


def _ship(ctx: TransitionContext) -> TransitionResult:
    previous = ctx.order.status
    if ctx.order.status != OrderStatus.CONFIRMED:
        raise InvalidState('Can only ship confirmed orders')
    _set_status(ctx, OrderStatus.SHIPPED)
    subject, html = order_shipped_email(ctx.order.order_number, ctx.supplier.name)
    ctx.outbox.send_email(to=ctx.restaurant.email, subject=subject, html=html)
    return TransitionResult(order=ctx.order, previous_status=previous)


def _deliver(ctx: TransitionContext) -> TransitionResult:
    order = ctx.order
    previous = order.status
    if order.status != OrderStatus.SHIPPED:
        raise InvalidState('Can only mark shipped orders as delivered')
    _set_status(ctx, OrderStatus.DELIVERED)
    order.delivered_at = ctx.now

    generated = generate_invoice_for_order(ctx.db, order=order, now=ctx.now)
    subject, html = order_delivered_email(order.order_number, generated.invoice.invoice_number, order.total)
    ctx.outbox.send_email(to=ctx.restaurant.email, subject=subject, html=html)
    return TransitionResult(order=order, previous_status=previous, invoice=generated.invoice)


_ACTION_HANDLERS: dict[OrderAction, Callable[[TransitionContext], TransitionResult]] = {
    OrderAction.SUBMIT: _submit,
    OrderAction.CANCEL: _cancel,
    OrderAction.CONFIRM: _confirm,
    OrderAction.SHIP: _ship,
    OrderAction.DELIVER: _deliver,
    OrderAction.REJECT: _reject,
}

_missing_handlers = set(OrderAction) - set(_ACTION_HANDLERS)
if _missing_handlers:
    raise RuntimeError(f'Order actions without a handler: {sorted(a.value for a in _missing_handlers)}')


def queue_status_events(outbox: Outbox, *, order: Order, previous_status: OrderStatus, invoice: Invoice | None = None) -> None:
    outbox.emit(
        'order/status.changed',
        {
            'orderId': order.id,
            'previousStatus': previous_status.value,
            'newStatus': order.status.value,
            'restaurantId': order.restaurant_id,
            'supplierId': order.supplier_id,
        },
    )
    if order.status == OrderStatus.DELIVERED:
        outbox.emit(
            'order/delivered',
            {
                'orderId': order.id,
                'restaurantId': order.restaurant_id,
                'supplierId': order.supplier_id,
                'invoiceId': invoice.id if invoice is not None else None,
                'invoiceNumber': invoice.invoice_number if invoice is not None else None,
                'invoiceStatus': invoice.status.value if invoice is not None else None,
                'total': money_to_float(order.total),
            },
        )


def _build_context(db: Session, outbox: Outbox, principal: Principal, order: Order, now: datetime) -> TransitionContext:
    supplier = db.get(Supplier, order.supplier_id)
    restaurant = db.get(Restaurant, order.restaurant_id)
    if supplier is None or restaurant is None:
        raise NotFound('Order not found')
    return TransitionContext(
        db=db,
        outbox=outbox,
        principal=principal,
        order=order,
        supplier=supplier,
        restaurant=restaurant,
        now=now,
    )


def apply_order_action(
    db: Session,
    outbox: Outbox,
    principal: Principal,
    *,
    order_id: int,
    action: str | OrderAction,
    ip: str | None = None,
) -> TransitionResult:
    command = parse_action(action)
    order = get_order_for_principal(db, principal, order_id=order_id, for_update=True)
    if command not in _allowed_actions(principal, order):
        raise Forbidden()

    ctx = _build_context(db, outbox, principal, order, _now())
    result = _ACTION_HANDLERS[command](ctx)

    log_audit(
        db,
        actor_user_id=principal.id,
        action=f'ORDER_{command.name}',
        entity_type='order',
        entity_id=order.id,
        ip=ip,
        metadata={'previous_status': result.previous_status.value, 'new_status': order.status.value},
    )
    db.flush()
    queue_status_events(outbox, order=order, previous_status=result.previous_status, invoice=result.invoice)
    return result


def resume_after_review(
    db: Session,
    outbox: Outbox,
    principal: Principal,
    *,
    order: Order,
    decision: ApprovalStatus,
) -> TransitionResult:
    """Continue an order parked in AWAITING_APPROVAL once a reviewer decides.

    Only the approval lifecycle calls this; clients cannot reach it directly.
    """
    if order.status != OrderStatus.AWAITING_APPROVAL:
        raise InvalidState('Order is not awaiting approval')
    previous = order.status
    ctx = _build_context(db, outbox, principal, order, _now())
    if decision == ApprovalStatus.APPROVED:
        place_with_supplier(ctx)
    elif decision == ApprovalStatus.REJECTED:
        _set_status(ctx, OrderStatus.DRAFT)
    else:
        raise ValidationError('Approval decision must be APPROVED or REJECTED')
    db.flush()
    queue_status_events(outbox, order=order, previous_status=previous)
    return TransitionResult(order=order, previous_status=previous)


def delete_draft_order(db: Session, principal: Principal, *, order_id: int, ip: str | None = None) -> None:
    if principal.restaurant_id is None:
        raise NotFound('Restaurant not found')
    order = db.execute(
        select(Order).where(Order.id == order_id, Order.restaurant_id == principal.restaurant_id).with_for_update()
    ).scalar_one_or_none()
    if order is None:
        raise NotFound('Order not found')
    if order.status != OrderStatus.DRAFT:
        raise InvalidState('Can only delete draft orders')
    log_audit(
        db,
        actor_user_id=principal.id,
        action='ORDER_DELETED',
        entity_type='order',
        entity_id=order.id,
        ip=ip,
        metadata={'order_number': order.order_number},
    )
    db.delete(order)
    db.flush()


def serialize_order(order: Order) -> dict:
    return {
        'id': order.id,
        'orderNumber': order.order_number,
        'status': order.status.value,
        'subtotal': money_to_float(order.subtotal),
        'tax': money_to_float(order.tax),
        'deliveryFee': money_to_float(order.delivery_fee),
        'discount': money_to_float(order.discount),
        'total': money_to_float(order.total),
        'restaurantId': order.restaurant_id,
        'supplierId': order.supplier_id,
        'createdById': order.created_by_id,
        'deliveryDate': order.delivery_date.isoformat() if order.delivery_date else None,
        'deliveredAt': order.delivered_at.isoformat() if order.delivered_at else None,
        'notes': order.notes,
    }
