from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, get_current_principal
from supplyhub.db import get_db
from supplyhub.dependencies import commit_and_dispatch, get_client_ip, get_outbox
from supplyhub.errors import ValidationError
from supplyhub.schemas import InventoryItemCreate, InventoryItemUpdate
from supplyhub.services.inventory_service import (
    EDITABLE_FIELDS,
    adjust_quantity,
    create_item,
    get_item_detail,
    list_items,
    serialize_adjustment,
    serialize_item,
    serialize_log,
    update_item_fields,
)
from supplyhub.services.outbox import Outbox

router = APIRouter(prefix='/inventory', tags=['inventory'])


@router.get('')
def get_inventory(
    category: str | None = None,
    below_par: bool = False,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    items = list_items(db, principal, category=category, below_par_only=below_par)
    return {'items': [serialize_item(item) for item in items]}


@router.post('', status_code=201)
def post_inventory_item(
    body: InventoryItemCreate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    item = create_item(
        db,
        principal,
        name=body.name,
        unit=body.unit,
        category=body.category,
        current_quantity=body.current_quantity,
        par_level=body.par_level,
        cost_per_unit=body.cost_per_unit,
        location=body.location,
        notes=body.notes,
        supplier_product_ref=body.supplier_product_ref,
        ip=get_client_ip(request),
    )
    db.commit()
    return serialize_item(item)


@router.get('/{item_id}')
def get_inventory_item(
    item_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    item, logs = get_item_detail(db, principal, item_id=item_id)
    payload = serialize_item(item)
    payload['logs'] = [serialize_log(entry) for entry in logs]
    return payload


@router.patch('/{item_id}')
def patch_inventory_item(
    item_id: int,
    body: InventoryItemUpdate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    ip = get_client_ip(request)
    if body.change_type:
        if body.adjust_quantity is None:
            raise ValidationError('adjustQuantity is required with changeType')
        adjustment = adjust_quantity(
            db,
            outbox,
            principal,
            item_id=item_id,
            change_type=body.change_type,
            magnitude=body.adjust_quantity,
            notes=body.adjustment_notes,
            reference=body.reference,
            ip=ip,
        )
        commit_and_dispatch(db, outbox)
        return serialize_adjustment(adjustment)

    provided = body.model_fields_set
    fields = {name: getattr(body, name) for name in EDITABLE_FIELDS if name in provided}
    extra = {}
    if 'par_level' in provided:
        extra['par_level'] = body.par_level
    if 'cost_per_unit' in provided:
        extra['cost_per_unit'] = body.cost_per_unit
    item = update_item_fields(db, principal, item_id=item_id, ip=ip, **extra, **fields)
    db.commit()
    return serialize_item(item)
