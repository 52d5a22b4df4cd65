from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, require_restaurant_id
from supplyhub.config import settings
from supplyhub.errors import NotFound, ValidationError
from supplyhub.models import InventoryChangeType, InventoryItem, InventoryLog
from supplyhub.services.audit_service import log_audit
from supplyhub.services.money import quantity_to_float, to_money, to_quantity
from supplyhub.services.outbox import Outbox


ZERO = Decimal('0.000')
DEPLETING_TYPES = frozenset({InventoryChangeType.USED, InventoryChangeType.WASTE})

_UNSET = object()

# Metadata fields a plain update may touch; the quantity only moves through the ledger.
EDITABLE_FIELDS = ('name', 'category', 'unit', 'location', 'notes', 'supplier_product_ref')


@dataclass(frozen=True)
class Adjustment:
    item: InventoryItem
    log: InventoryLog
    previous_quantity: Decimal
    new_quantity: Decimal
    change_type: InventoryChangeType

    @property
    def below_par(self) -> bool:
        return is_below_par(self.item.par_level, self.new_quantity)


@dataclass(frozen=True)
class Reconciliation:
    recorded: Decimal
    replayed: Decimal

    @property
    def consistent(self) -> bool:
        return self.recorded == self.replayed


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_change_type(raw: str | InventoryChangeType) -> InventoryChangeType:
    if isinstance(raw, InventoryChangeType):
        return raw
    try:
        return InventoryChangeType(str(raw or '').strip().upper())
    except ValueError as exc:
        raise ValidationError('Invalid changeType') from exc


def apply_change(previous: Decimal, change_type: InventoryChangeType, magnitude: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(new_quantity, logged_delta)`` for one ledger entry.

    COUNT sets the quantity outright and logs ``new - previous``. USED and
    WASTE remove ``abs(magnitude)``. Everything else adds ``magnitude``.
    The result never drops below zero, but non-COUNT entries keep the
    magnitude exactly as it was requested.
    """
    if change_type == InventoryChangeType.COUNT:
        new_quantity = max(ZERO, magnitude)
        return new_quantity, new_quantity - previous
    return max(ZERO, previous + _signed(change_type, magnitude)), magnitude


def _signed(change_type: InventoryChangeType, magnitude: Decimal) -> Decimal:
    if change_type in DEPLETING_TYPES:
        return -abs(magnitude)
    return magnitude


def is_below_par(par_level: Decimal | None, quantity: Decimal) -> bool:
    return par_level is not None and to_quantity(quantity) < to_quantity(par_level)


def replay_ledger(entries: Iterable[InventoryLog], *, start: Decimal = ZERO) -> Decimal:
    """Rebuild a quantity from log entries, oldest first."""
    quantity = to_quantity(start)
    for entry in entries:
        # COUNT entries store new - previous, so adding them lands on the count.
        quantity = max(ZERO, quantity + _signed(entry.change_type, to_quantity(entry.quantity)))
    return quantity


def _item_query(restaurant_id: int, item_id: int):
    return select(InventoryItem).where(InventoryItem.id == item_id, InventoryItem.restaurant_id == restaurant_id)


def get_item(db: Session, principal: Principal, *, item_id: int, for_update: bool = False) -> InventoryItem:
    query = _item_query(require_restaurant_id(principal), item_id)
    if for_update:
        query = query.with_for_update()
    item = db.execute(query).scalar_one_or_none()
    if item is None:
        raise NotFound('Item not found')
    return item


def _append_log(
    db: Session,
    *,
    item: InventoryItem,
    change_type: InventoryChangeType,
    delta: Decimal,
    previous: Decimal,
    new: Decimal,
    actor_id: int,
    notes: str | None,
    reference: str | None,
) -> InventoryLog:
    entry = InventoryLog(
        inventory_item_id=item.id,
        change_type=change_type,
        quantity=delta,
        previous_quantity=previous,
        new_quantity=new,
        notes=notes,
        reference=reference,
        created_by_id=actor_id,
    )
    db.add(entry)
    return entry


def adjust_quantity(
    db: Session,
    outbox: Outbox,
    principal: Principal,
    *,
    item_id: int,
    change_type: str | InventoryChangeType,
    magnitude,
    notes: str | None = None,
    reference: str | None = None,
    ip: str | None = None,
) -> Adjustment:
    kind = parse_change_type(change_type)
    amount = to_quantity(magnitude, field='adjustQuantity')
    item = get_item(db, principal, item_id=item_id, for_update=True)

    previous = to_quantity(item.current_quantity)
    new_quantity, delta = apply_change(previous, kind, amount)

    now = _now()
    item.current_quantity = new_quantity
    item.updated_at = now
    entry = _append_log(
        db,
        item=item,
        change_type=kind,
        delta=delta,
        previous=previous,
        new=new_quantity,
        actor_id=principal.id,
        notes=notes,
        reference=reference,
    )
    log_audit(
        db,
        actor_user_id=principal.id,
        action=f'INVENTORY_{kind.value}',
        entity_type='inventory_item',
        entity_id=item.id,
        ip=ip,
        metadata={'previous_quantity': str(previous), 'new_quantity': str(new_quantity), 'delta': str(delta)},
    )
    db.flush()

    adjustment = Adjustment(
        item=item,
        log=entry,
        previous_quantity=previous,
        new_quantity=new_quantity,
        change_type=kind,
    )
    if adjustment.below_par:
        outbox.emit(
            'inventory/below.par',
            {
                'itemId': item.id,
                'itemName': item.name,
                'currentQuantity': quantity_to_float(new_quantity),
                'parLevel': quantity_to_float(item.par_level),
                'unit': item.unit,
                'restaurantId': item.restaurant_id,
            },
        )
    return adjustment


def _clean_par_level(value) -> Decimal | None:
    if value is None:
        return None
    par_level = to_quantity(value, field='parLevel')
    if par_level < 0:
        raise ValidationError('parLevel cannot be negative')
    return par_level


def _clean_cost(value) -> Decimal | None:
    if value is None:
        return None
    cost = to_money(value, field='costPerUnit')
    if cost < 0:
        raise ValidationError('costPerUnit cannot be negative')
    return cost


def update_item_fields(
    db: Session,
    principal: Principal,
    *,
    item_id: int,
    par_level=_UNSET,
    cost_per_unit=_UNSET,
    ip: str | None = None,
    **fields,
) -> InventoryItem:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f'Unknown fields: {", ".join(sorted(unknown))}')
    if 'name' in fields and not (fields['name'] or '').strip():
        raise ValidationError('name is required')
    if 'unit' in fields and not (fields['unit'] or '').strip():
        raise ValidationError('unit is required')

    item = get_item(db, principal, item_id=item_id, for_update=True)
    changed = {}
    if par_level is not _UNSET:
        item.par_level = _clean_par_level(par_level)
        changed['par_level'] = str(item.par_level) if item.par_level is not None else None
    if cost_per_unit is not _UNSET:
        item.cost_per_unit = _clean_cost(cost_per_unit)
        changed['cost_per_unit'] = str(item.cost_per_unit) if item.cost_per_unit is not None else None
    for name, value in fields.items():
        setattr(item, name, value.strip() if isinstance(value, str) else value)
        changed[name] = getattr(item, name)
    item.updated_at = _now()

    log_audit(
        db,
        actor_user_id=principal.id,
        action='INVENTORY_ITEM_UPDATED',
        entity_type='inventory_item',
        entity_id=item.id,
        ip=ip,
        metadata=changed,
    )
    db.flush()
    return item


def create_item(
    db: Session,
    principal: Principal,
    *,
    name: str,
    unit: str,
    current_quantity=0,
    par_level=None,
    cost_per_unit=None,
    category: str | None = None,
    location: str | None = None,
    notes: str | None = None,
    supplier_product_ref: str | None = None,
    ip: str | None = None,
) -> InventoryItem:
    restaurant_id = require_restaurant_id(principal)
    clean_name = (name or '').strip()
    clean_unit = (unit or '').strip()
    if not clean_name:
        raise ValidationError('name is required')
    if not clean_unit:
        raise ValidationError('unit is required')
    opening = to_quantity(current_quantity or 0, field='currentQuantity')
    if opening < 0:
        raise ValidationError('currentQuantity cannot be negative')

    item = InventoryItem(
        restaurant_id=restaurant_id,
        name=clean_name,
        unit=clean_unit,
        category=category,
        location=location,
        notes=notes,
        supplier_product_ref=supplier_product_ref,
        current_quantity=opening,
        par_level=_clean_par_level(par_level),
        cost_per_unit=_clean_cost(cost_per_unit),
    )
    db.add(item)
    db.flush()
    if opening > 0:
        _append_log(
            db,
            item=item,
            change_type=InventoryChangeType.RECEIVED,
            delta=opening,
            previous=ZERO,
            new=opening,
            actor_id=principal.id,
            notes='Initial quantity',
            reference=None,
        )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='INVENTORY_ITEM_CREATED',
        entity_type='inventory_item',
        entity_id=item.id,
        ip=ip,
        metadata={'name': clean_name, 'current_quantity': str(opening)},
    )
    db.flush()
    return item


def list_items(
    db: Session,
    principal: Principal,
    *,
    category: str | None = None,
    below_par_only: bool = False,
) -> list[InventoryItem]:
    restaurant_id = require_restaurant_id(principal)
    query = select(InventoryItem).where(InventoryItem.restaurant_id == restaurant_id)
    if category:
        query = query.where(InventoryItem.category == category)
    items = db.execute(query.order_by(InventoryItem.name.asc(), InventoryItem.id.asc())).scalars().all()
    if below_par_only:
        items = [item for item in items if is_below_par(item.par_level, item.current_quantity)]
    return items


def recent_logs(db: Session, *, item_id: int, limit: int | None = None) -> list[InventoryLog]:
    return db.execute(
        select(InventoryLog)
        .where(InventoryLog.inventory_item_id == item_id)
        .order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
        .limit(limit or settings.inventory_log_history_limit)
    ).scalars().all()


def get_item_detail(db: Session, principal: Principal, *, item_id: int) -> tuple[InventoryItem, list[InventoryLog]]:
    item = get_item(db, principal, item_id=item_id)
    return item, recent_logs(db, item_id=item.id)


def reconcile_item(db: Session, principal: Principal, *, item_id: int) -> Reconciliation:
    item = get_item(db, principal, item_id=item_id)
    entries = db.execute(
        select(InventoryLog).where(InventoryLog.inventory_item_id == item.id).order_by(InventoryLog.id.asc())
    ).scalars().all()
    return Reconciliation(recorded=to_quantity(item.current_quantity), replayed=replay_ledger(entries))


def serialize_adjustment(adjustment: Adjustment) -> dict:
    return {
        'previousQuantity': quantity_to_float(adjustment.previous_quantity),
        'newQuantity': quantity_to_float(adjustment.new_quantity),
        'changeType': adjustment.change_type.value,
    }


def serialize_log(entry: InventoryLog) -> dict:
    return {
        'id': entry.id,
        'changeType': entry.change_type.value,
        'quantity': quantity_to_float(entry.quantity),
        'previousQuantity': quantity_to_float(entry.previous_quantity),
        'newQuantity': quantity_to_float(entry.new_quantity),
        'notes': entry.notes,
        'reference': entry.reference,
        'createdById': entry.created_by_id,
        'createdAt': entry.created_at.isoformat() if entry.created_at else None,
    }


def serialize_item(item: InventoryItem) -> dict:
    return {
        'id': item.id,
        'name': item.name,
        'category': item.category,
        'unit': item.unit,
        'currentQuantity': quantity_to_float(item.current_quantity),
        'parLevel': quantity_to_float(item.par_level),
        'costPerUnit': float(item.cost_per_unit) if item.cost_per_unit is not None else None,
        'location': item.location,
        'notes': item.notes,
        'supplierProductRef': item.supplier_product_ref,
        'belowPar': is_below_par(item.par_level, item.current_quantity),
        'restaurantId': item.restaurant_id,
    }
