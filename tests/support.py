from __future__ import annotations

import itertools
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from supplyhub.auth import Principal, Role
from supplyhub.models import (
    ApprovalRule,
    Base,
    Invoice,
    InvoiceStatus,
    Order,
    OrderItem,
    OrderStatus,
    Restaurant,
    Supplier,
    SupplierProduct,
    SupplierStatus,
    User,
    UserRole,
)
from supplyhub.services.money import invoice_total, order_total
from supplyhub.services.outbox import Outbox


_order_numbers = itertools.count(1)


def make_engine():
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave.
    @event.listens_for(engine, 'connect')
    def _connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin(conn):
        conn.exec_driver_sql('BEGIN')

    Base.metadata.create_all(engine)
    return engine


class RecordingPublisher:
    def __init__(self, fail: bool = False) -> None:
        self.events = []
        self.fail = fail

    def publish(self, event) -> None:
        if self.fail:
            raise RuntimeError('bus unavailable')
        self.events.append(event)


class RecordingEmailSender:
    def __init__(self, fail: bool = False) -> None:
        self.emails = []
        self.fail = fail

    def send(self, email) -> None:
        if self.fail:
            raise RuntimeError('smtp unavailable')
        self.emails.append(email)


def principal_for(user: User) -> Principal:
    return Principal(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=Role(user.role.value),
        restaurant_id=user.restaurant_id,
        supplier_id=user.supplier_id,
        active=user.active,
    )


class DatabaseTestCase(unittest.TestCase):
    """Fresh in-memory database, session and recording outbox per test."""

    def setUp(self) -> None:
        self.engine = make_engine()
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.db = self.SessionLocal()
        self.publisher = RecordingPublisher()
        self.email_sender = RecordingEmailSender()
        self.outbox = Outbox(self.publisher, self.email_sender)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def event_names(self) -> list[str]:
        return [event.name for event in self.outbox.events]

    def make_restaurant(self, name: str = 'Harbor Bistro') -> Restaurant:
        restaurant = Restaurant(name=name, email=f'{name.lower().replace(" ", ".")}@example.test', active=True)
        self.db.add(restaurant)
        self.db.flush()
        return restaurant

    def make_supplier(
        self,
        name: str = 'Coastal Produce',
        *,
        status: SupplierStatus = SupplierStatus.ACTIVE,
        minimum_order=None,
        lead_time_days: int = 2,
    ) -> Supplier:
        supplier = Supplier(
            name=name,
            email='orders@coastal.example.test',
            status=status,
            minimum_order=Decimal(str(minimum_order)) if minimum_order is not None else None,
            lead_time_days=lead_time_days,
        )
        self.db.add(supplier)
        self.db.flush()
        return supplier

    def make_user(
        self,
        role: UserRole = UserRole.STAFF,
        *,
        restaurant: Restaurant | None = None,
        supplier: Supplier | None = None,
        email: str | None = None,
        first_name: str | None = None,
    ) -> User:
        user = User(
            email=email or f'{role.value.lower()}-{next(_order_numbers)}@example.test',
            first_name=first_name,
            role=role,
            restaurant_id=restaurant.id if restaurant else None,
            supplier_id=supplier.id if supplier else None,
            active=True,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def make_order(
        self,
        restaurant: Restaurant,
        supplier: Supplier,
        created_by: User,
        *,
        subtotal='100.00',
        tax='0.00',
        delivery_fee='0.00',
        discount='0.00',
        status: OrderStatus = OrderStatus.DRAFT,
    ) -> Order:
        order = Order(
            order_number=f'ORD-{next(_order_numbers):05d}',
            status=status,
            subtotal=Decimal(subtotal),
            tax=Decimal(tax),
            delivery_fee=Decimal(delivery_fee),
            discount=Decimal(discount),
            total=order_total(subtotal=subtotal, tax=tax, delivery_fee=delivery_fee, discount=discount),
            restaurant_id=restaurant.id,
            supplier_id=supplier.id,
            created_by_id=created_by.id,
        )
        self.db.add(order)
        self.db.flush()
        return order

    def make_rule(self, restaurant: Restaurant, *, min_amount='500.00', max_amount=None, required_role=UserRole.MANAGER):
        rule = ApprovalRule(
            restaurant_id=restaurant.id,
            min_amount=Decimal(min_amount),
            max_amount=Decimal(max_amount) if max_amount is not None else None,
            required_role=required_role,
            is_active=True,
        )
        self.db.add(rule)
        self.db.flush()
        return rule

    def make_invoice(
        self,
        restaurant: Restaurant,
        supplier: Supplier,
        *,
        subtotal='100.00',
        tax='8.25',
        status: InvoiceStatus = InvoiceStatus.PENDING,
        number: str | None = None,
    ) -> Invoice:
        now = datetime.now(tz=timezone.utc)
        invoice = Invoice(
            invoice_number=number or f'INV-TEST-{next(_order_numbers):05d}',
            status=status,
            subtotal=Decimal(subtotal),
            tax=Decimal(tax),
            total=invoice_total(subtotal=subtotal, tax=tax),
            issue_date=now,
            due_date=now + timedelta(days=30),
            restaurant_id=restaurant.id,
            supplier_id=supplier.id,
            updated_at=now,
        )
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def make_product(self, supplier: Supplier, *, name: str = 'Roma tomatoes', unit: str = 'case', price='20.00') -> SupplierProduct:
        product = SupplierProduct(supplier_id=supplier.id, name=name, unit=unit, price=Decimal(price))
        self.db.add(product)
        self.db.flush()
        return product

    def add_line(self, order: Order, product: SupplierProduct, *, quantity='1', unit_price=None) -> OrderItem:
        price = Decimal(unit_price) if unit_price is not None else product.price
        line = OrderItem(
            order_id=order.id,
            supplier_product_id=product.id,
            quantity=Decimal(quantity),
            unit_price=price,
            subtotal=price * Decimal(quantity),
        )
        self.db.add(line)
        self.db.flush()
        return line
