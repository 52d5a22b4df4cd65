from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, get_current_principal
from supplyhub.db import get_db
from supplyhub.dependencies import get_client_ip
from supplyhub.models import InvoiceStatus
from supplyhub.schemas import InvoiceCreate, InvoiceUpdate
from supplyhub.services.invoice_service import (
    create_invoice,
    get_invoice,
    list_invoices,
    serialize_invoice,
    serialize_summary,
    update_invoice,
)

router = APIRouter(prefix='/invoices', tags=['invoices'])


@router.get('')
def get_invoices(
    status: InvoiceStatus | None = None,
    supplier_id: int | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    invoices, summary = list_invoices(db, principal, status=status, supplier_id=supplier_id)
    return {
        'invoices': [serialize_invoice(invoice) for invoice in invoices],
        'summary': serialize_summary(summary),
    }


@router.post('', status_code=201)
def post_invoice(
    body: InvoiceCreate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    invoice = create_invoice(
        db,
        principal,
        supplier_id=body.supplier_id,
        order_id=body.order_id,
        invoice_number=body.invoice_number,
        subtotal=body.subtotal,
        tax=body.tax,
        due_date=body.due_date,
        notes=body.notes,
        ip=get_client_ip(request),
    )
    db.commit()
    return serialize_invoice(invoice)


@router.get('/{invoice_id}')
def get_invoice_detail(
    invoice_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return serialize_invoice(get_invoice(db, principal, invoice_id=invoice_id))


@router.patch('/{invoice_id}')
def patch_invoice(
    invoice_id: int,
    body: InvoiceUpdate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    optional = {}
    if 'notes' in body.model_fields_set:
        optional['notes'] = body.notes
    invoice = update_invoice(
        db,
        principal,
        invoice_id=invoice_id,
        status=body.status,
        paid_amount=body.paid_amount,
        payment_method=body.payment_method,
        payment_reference=body.payment_reference,
        due_date=body.due_date,
        ip=get_client_ip(request),
        **optional,
    )
    db.commit()
    return serialize_invoice(invoice)
