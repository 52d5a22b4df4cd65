from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from supplyhub.auth import Role


class ApiBody(BaseModel):
    """Request bodies accept camelCase keys and snake_case field names."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


# ---------- Orders ----------
class OrderActionBody(ApiBody):
    action: str


class ApprovalReviewBody(ApiBody):
    status: str
    notes: str | None = None


# ---------- Approval rules ----------
class ApprovalRuleCreate(ApiBody):
    min_amount: Decimal = Field(alias='minAmount')
    max_amount: Decimal | None = Field(default=None, alias='maxAmount')
    required_role: Role = Field(alias='requiredRole')
    is_active: bool = Field(default=True, alias='isActive')


class ApprovalRuleUpdate(ApiBody):
    min_amount: Decimal | None = Field(default=None, alias='minAmount')
    max_amount: Decimal | None = Field(default=None, alias='maxAmount')
    required_role: Role | None = Field(default=None, alias='requiredRole')
    is_active: bool | None = Field(default=None, alias='isActive')


# ---------- Invoices ----------
class InvoiceCreate(ApiBody):
    supplier_id: int | None = Field(default=None, alias='supplierId')
    order_id: int | None = Field(default=None, alias='orderId')
    invoice_number: str | None = Field(default=None, alias='invoiceNumber')
    subtotal: Decimal
    tax: Decimal = Decimal('0')
    due_date: datetime = Field(alias='dueDate')
    notes: str | None = None


class InvoiceUpdate(ApiBody):
    status: str | None = None
    paid_amount: Decimal | None = Field(default=None, alias='paidAmount')
    payment_method: str | None = Field(default=None, alias='paymentMethod')
    payment_reference: str | None = Field(default=None, alias='paymentReference')
    notes: str | None = None
    due_date: datetime | None = Field(default=None, alias='dueDate')


# ---------- Inventory ----------
class InventoryItemCreate(ApiBody):
    name: str
    unit: str
    category: str | None = None
    current_quantity: Decimal = Field(default=Decimal('0'), alias='currentQuantity')
    par_level: Decimal | None = Field(default=None, alias='parLevel')
    cost_per_unit: Decimal | None = Field(default=None, alias='costPerUnit')
    location: str | None = None
    notes: str | None = None
    supplier_product_ref: str | None = Field(default=None, alias='supplierProductRef')


class InventoryItemUpdate(ApiBody):
    # Ledger adjustment; when change_type is present the metadata fields are ignored.
    adjust_quantity: Decimal | None = Field(default=None, alias='adjustQuantity')
    change_type: str | None = Field(default=None, alias='changeType')
    adjustment_notes: str | None = Field(default=None, alias='adjustmentNotes')
    reference: str | None = None

    name: str | None = None
    category: str | None = None
    unit: str | None = None
    par_level: Decimal | None = Field(default=None, alias='parLevel')
    cost_per_unit: Decimal | None = Field(default=None, alias='costPerUnit')
    location: str | None = None
    notes: str | None = None
    supplier_product_ref: str | None = Field(default=None, alias='supplierProductRef')
