from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, get_current_principal
from supplyhub.db import get_db
from supplyhub.dependencies import commit_and_dispatch, get_client_ip, get_outbox
from supplyhub.schemas import OrderActionBody
from supplyhub.services.invoice_generator_service import find_invoice_for_order
from supplyhub.services.invoice_service import serialize_invoice
from supplyhub.services.order_service import (
    apply_order_action,
    delete_draft_order,
    get_order_for_principal,
    serialize_order,
)
from supplyhub.services.outbox import Outbox

router = APIRouter(prefix='/orders', tags=['orders'])


@router.get('/{order_id}')
def get_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    order = get_order_for_principal(db, principal, order_id=order_id)
    invoice = find_invoice_for_order(db, order_id=order.id)
    payload = serialize_order(order)
    payload['invoice'] = serialize_invoice(invoice) if invoice is not None else None
    return payload


@router.patch('/{order_id}')
def update_order(
    order_id: int,
    body: OrderActionBody,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    result = apply_order_action(
        db,
        outbox,
        principal,
        order_id=order_id,
        action=body.action,
        ip=get_client_ip(request),
    )
    commit_and_dispatch(db, outbox)
    payload = serialize_order(result.order)
    if result.invoice is not None:
        payload['invoice'] = serialize_invoice(result.invoice)
    if result.decision is not None:
        payload['requiresApproval'] = result.decision.requires_approval
    return payload


@router.delete('/{order_id}')
def delete_order(
    order_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    delete_draft_order(db, principal, order_id=order_id, ip=get_client_ip(request))
    db.commit()
    return {'success': True}
