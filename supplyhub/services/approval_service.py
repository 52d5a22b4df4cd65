from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, Role, assert_min_role, require_restaurant_id
from supplyhub.errors import NotFound, ValidationError
from supplyhub.models import ApprovalStatus, Order, OrderApproval, OrderStatus, Supplier, User
from supplyhub.services.audit_service import log_audit
from supplyhub.services.money import money_to_float
from supplyhub.services.notification_service import approval_decision_email, create_notification
from supplyhub.services.order_service import resume_after_review
from supplyhub.services.outbox import Outbox


REVIEW_DECISIONS = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED})


@dataclass
class ReviewResult:
    order: Order
    approval: OrderApproval


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_decision(raw: str | ApprovalStatus) -> ApprovalStatus:
    try:
        decision = ApprovalStatus(raw.value if isinstance(raw, ApprovalStatus) else str(raw or '').strip().upper())
    except ValueError as exc:
        raise ValidationError('status must be APPROVED or REJECTED') from exc
    if decision not in REVIEW_DECISIONS:
        raise ValidationError('status must be APPROVED or REJECTED')
    return decision


def review_approval(
    db: Session,
    outbox: Outbox,
    principal: Principal,
    *,
    order_id: int,
    status: str | ApprovalStatus,
    notes: str | None = None,
    ip: str | None = None,
) -> ReviewResult:
    restaurant_id = require_restaurant_id(principal)
    assert_min_role(principal, Role.MANAGER)
    decision = parse_decision(status)

    order = db.execute(
        select(Order)
        .where(
            Order.id == order_id,
            Order.restaurant_id == restaurant_id,
            Order.status == OrderStatus.AWAITING_APPROVAL,
        )
        .with_for_update()
    ).scalar_one_or_none()
    if order is None:
        raise NotFound('Order not found or not awaiting approval')

    approval = db.execute(
        select(OrderApproval)
        .where(OrderApproval.order_id == order.id, OrderApproval.status == ApprovalStatus.PENDING)
        .order_by(OrderApproval.id.desc())
        .with_for_update()
    ).scalars().first()
    if approval is None:
        raise NotFound('No pending approval found')

    clean_notes = (notes or '').strip() or None
    approval.status = decision
    approval.notes = clean_notes
    approval.reviewed_by_id = principal.id
    approval.reviewed_at = _now()

    resume_after_review(db, outbox, principal, order=order, decision=decision)

    requester = db.get(User, approval.requested_by_id)
    reviewer_name = principal.display_name
    if decision == ApprovalStatus.APPROVED:
        title = 'Order Approved'
        message = f'Your order {order.order_number} has been approved by {reviewer_name} and submitted to the supplier.'
    else:
        title = 'Order Rejected'
        message = f'Your order {order.order_number} was rejected by {reviewer_name}.'
        if clean_notes:
            message += f' Reason: {clean_notes}'
    create_notification(
        db,
        user_id=approval.requested_by_id,
        title=title,
        message=message,
        metadata={'orderId': order.id, 'status': order.status.value, 'decision': decision.value, 'notes': clean_notes},
    )
    if requester is not None:
        subject, html = approval_decision_email(order.order_number, decision.value, reviewer_name, clean_notes)
        outbox.send_email(to=requester.email, subject=subject, html=html)

    log_audit(
        db,
        actor_user_id=principal.id,
        action=f'ORDER_APPROVAL_{decision.value}',
        entity_type='order_approval',
        entity_id=approval.id,
        ip=ip,
        metadata={'order_id': order.id, 'new_status': order.status.value},
    )
    db.flush()
    return ReviewResult(order=order, approval=approval)


def list_pending_approvals(db: Session, principal: Principal) -> list[dict]:
    restaurant_id = require_restaurant_id(principal)
    assert_min_role(principal, Role.MANAGER)

    rows = db.execute(
        select(Order, OrderApproval, Supplier.name, User)
        .join(OrderApproval, OrderApproval.order_id == Order.id)
        .join(Supplier, Supplier.id == Order.supplier_id)
        .join(User, User.id == OrderApproval.requested_by_id)
        .where(
            Order.restaurant_id == restaurant_id,
            Order.status == OrderStatus.AWAITING_APPROVAL,
            OrderApproval.status == ApprovalStatus.PENDING,
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
    ).all()
    return [
        {
            'id': order.id,
            'orderNumber': order.order_number,
            'subtotal': money_to_float(order.subtotal),
            'total': money_to_float(order.total),
            'supplier': {'id': order.supplier_id, 'name': supplier_name},
            'approval': {
                'id': approval.id,
                'requestedBy': {'id': requester.id, 'name': requester.display_name, 'email': requester.email},
            },
        }
        for order, approval, supplier_name, requester in rows
    ]


def serialize_approval(approval: OrderApproval) -> dict:
    return {
        'id': approval.id,
        'orderId': approval.order_id,
        'status': approval.status.value,
        'notes': approval.notes,
        'requestedById': approval.requested_by_id,
        'reviewedById': approval.reviewed_by_id,
        'reviewedAt': approval.reviewed_at.isoformat() if approval.reviewed_at else None,
    }
