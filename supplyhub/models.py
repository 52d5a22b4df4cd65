from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigId = BigInteger().with_variant(Integer(), 'sqlite')

MONEY = Numeric(12, 2)
QUANTITY = Numeric(14, 3)


class UserRole(str, Enum):
    STAFF = 'STAFF'
    MANAGER = 'MANAGER'
    OWNER = 'OWNER'


class SupplierStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'
    SUSPENDED = 'SUSPENDED'


class OrderStatus(str, Enum):
    DRAFT = 'DRAFT'
    AWAITING_APPROVAL = 'AWAITING_APPROVAL'
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    SHIPPED = 'SHIPPED'
    DELIVERED = 'DELIVERED'
    CANCELLED = 'CANCELLED'


class ApprovalStatus(str, Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class InvoiceStatus(str, Enum):
    PENDING = 'PENDING'
    OVERDUE = 'OVERDUE'
    PARTIALLY_PAID = 'PARTIALLY_PAID'
    DISPUTED = 'DISPUTED'
    PAID = 'PAID'
    CANCELLED = 'CANCELLED'


class InventoryChangeType(str, Enum):
    RECEIVED = 'RECEIVED'
    USED = 'USED'
    ADJUSTED = 'ADJUSTED'
    WASTE = 'WASTE'
    TRANSFERRED = 'TRANSFERRED'
    COUNT = 'COUNT'


class NotificationType(str, Enum):
    ORDER_UPDATE = 'ORDER_UPDATE'
    INVOICE = 'INVOICE'
    SYSTEM = 'SYSTEM'


class Restaurant(Base):
    __tablename__ = 'restaurants'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Supplier(Base):
    __tablename__ = 'suppliers'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text)
    status: Mapped[SupplierStatus] = mapped_column(
        SQLEnum(SupplierStatus, name='supplier_status'),
        nullable=False,
        default=SupplierStatus.ACTIVE,
        server_default='ACTIVE',
    )
    minimum_order: Mapped[Decimal | None] = mapped_column(MONEY)
    lead_time_days: Mapped[int] = mapped_column(Integer, nullable=False, default=2, server_default='2')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    first_name: Mapped[str | None] = mapped_column(Text)
    last_name: Mapped[str | None] = mapped_column(Text)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name='user_role'), nullable=False, default=UserRole.STAFF, server_default='STAFF'
    )
    restaurant_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('restaurants.id'))
    supplier_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('suppliers.id'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full_name or self.email


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(BigId, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    order_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status'),
        nullable=False,
        default=OrderStatus.DRAFT,
        server_default='DRAFT',
    )
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0.00'))
    tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0.00'))
    delivery_fee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0.00'))
    discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0.00'))
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0.00'))
    restaurant_id: Mapped[int] = mapped_column(BigId, ForeignKey('restaurants.id'), nullable=False)
    supplier_id: Mapped[int] = mapped_column(BigId, ForeignKey('suppliers.id'), nullable=False)
    created_by_id: Mapped[int] = mapped_column(BigId, ForeignKey('users.id'), nullable=False)
    delivery_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SupplierProduct(Base):
    __tablename__ = 'supplier_products'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    supplier_id: Mapped[int] = mapped_column(BigId, ForeignKey('suppliers.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    # Current catalog price; order lines keep the price agreed at order time.
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OrderItem(Base):
    __tablename__ = 'order_items'
    __table_args__ = (CheckConstraint('quantity > 0', name='order_items_quantity_positive_ck'),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    order_id: Mapped[int] = mapped_column(BigId, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    supplier_product_id: Mapped[int] = mapped_column(BigId, ForeignKey('supplier_products.id'), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False)


class ApprovalRule(Base):
    __tablename__ = 'approval_rules'
    __table_args__ = (
        CheckConstraint('min_amount >= 0', name='approval_rules_min_non_negative_ck'),
        CheckConstraint('max_amount IS NULL OR max_amount >= min_amount', name='approval_rules_range_ck'),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(BigId, ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(MONEY)
    required_role: Mapped[UserRole] = mapped_column(SQLEnum(UserRole, name='user_role'), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OrderApproval(Base):
    __tablename__ = 'order_approvals'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    order_id: Mapped[int] = mapped_column(BigId, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus, name='approval_status'),
        nullable=False,
        default=ApprovalStatus.PENDING,
        server_default='PENDING',
    )
    notes: Mapped[str | None] = mapped_column(Text)
    requested_by_id: Mapped[int] = mapped_column(BigId, ForeignKey('users.id'), nullable=False)
    reviewed_by_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('users.id'))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Invoice(Base):
    __tablename__ = 'invoices'
    __table_args__ = (
        UniqueConstraint('order_id', name='invoices_order_id_key'),
        UniqueConstraint('supplier_id', 'invoice_number', name='invoices_supplier_number_key'),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus, name='invoice_status'),
        nullable=False,
        default=InvoiceStatus.PENDING,
        server_default='PENDING',
    )
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0.00'))
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_amount: Mapped[Decimal | None] = mapped_column(MONEY)
    payment_method: Mapped[str | None] = mapped_column(Text)
    payment_reference: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    restaurant_id: Mapped[int] = mapped_column(BigId, ForeignKey('restaurants.id'), nullable=False)
    supplier_id: Mapped[int] = mapped_column(BigId, ForeignKey('suppliers.id'), nullable=False)
    order_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('orders.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryItem(Base):
    __tablename__ = 'inventory_items'
    __table_args__ = (
        CheckConstraint('current_quantity >= 0', name='inventory_items_non_negative_ck'),
        CheckConstraint('par_level IS NULL OR par_level >= 0', name='inventory_items_par_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(BigId, ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    current_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False, default=Decimal('0'))
    par_level: Mapped[Decimal | None] = mapped_column(QUANTITY)
    cost_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    location: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    supplier_product_ref: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryLog(Base):
    __tablename__ = 'inventory_logs'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    inventory_item_id: Mapped[int] = mapped_column(
        BigId, ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False, index=True
    )
    change_type: Mapped[InventoryChangeType] = mapped_column(
        SQLEnum(InventoryChangeType, name='inventory_change_type'), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    previous_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    reference: Mapped[str | None] = mapped_column(Text)
    created_by_id: Mapped[int] = mapped_column(BigId, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Notification(Base):
    __tablename__ = 'notifications'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigId, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type: Mapped[NotificationType] = mapped_column(SQLEnum(NotificationType, name='notification_type'), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('users.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str | None] = mapped_column(Text)
    entity_id: Mapped[int | None] = mapped_column(BigId)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
