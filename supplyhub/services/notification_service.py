from __future__ import annotations

from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader
from sqlalchemy import select
from sqlalchemy.orm import Session

from supplyhub.models import Notification, NotificationType, User, UserRole
from supplyhub.services.money import format_currency


TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates'
email_templates = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=True)


def create_notification(
    db: Session,
    *,
    user_id: int,
    title: str,
    message: str,
    type: NotificationType = NotificationType.ORDER_UPDATE,
    metadata: dict | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        meta=metadata or {},
    )
    db.add(notification)
    return notification


def find_restaurant_recipient(db: Session, *, restaurant_id: int, fallback_user_id: int | None = None) -> User | None:
    """Owner first, then any active user of the restaurant, then the fallback."""
    users = db.execute(
        select(User)
        .where(User.restaurant_id == restaurant_id, User.active.is_(True))
        .order_by(User.id.asc())
    ).scalars().all()
    for user in users:
        if user.role == UserRole.OWNER:
            return user
    if users:
        return users[0]
    if fallback_user_id is not None:
        return db.get(User, fallback_user_id)
    return None


def render_email(template_name: str, **context) -> str:
    return email_templates.get_template(f'emails/{template_name}').render(**context)


def order_placed_email(order_number: str, restaurant_name: str, total) -> tuple[str, str]:
    subject = f'New Order {order_number} from {restaurant_name}'
    html = render_email(
        'order_placed.html',
        order_number=order_number,
        restaurant_name=restaurant_name,
        total=format_currency(total),
    )
    return subject, html


def order_confirmed_email(order_number: str, supplier_name: str) -> tuple[str, str]:
    subject = f'Order {order_number} Confirmed'
    return subject, render_email('order_confirmed.html', order_number=order_number, supplier_name=supplier_name)


def order_shipped_email(order_number: str, supplier_name: str) -> tuple[str, str]:
    subject = f'Order {order_number} Shipped'
    return subject, render_email('order_shipped.html', order_number=order_number, supplier_name=supplier_name)


def order_delivered_email(order_number: str, invoice_number: str, total) -> tuple[str, str]:
    subject = f'Order {order_number} Delivered'
    html = render_email(
        'order_delivered.html',
        order_number=order_number,
        invoice_number=invoice_number,
        total=format_currency(total),
    )
    return subject, html


def approval_decision_email(order_number: str, decision: str, reviewer_name: str, notes: str | None) -> tuple[str, str]:
    verb = 'approved' if decision == 'APPROVED' else 'rejected'
    subject = f'Order {order_number} {verb.capitalize()}'
    html = render_email(
        'approval_decision.html',
        order_number=order_number,
        verb=verb,
        reviewer_name=reviewer_name,
        notes=notes,
    )
    return subject, html

def format_due_date(value: datetime) -> str:
    return value.strftime('%Y-%m-%d')
