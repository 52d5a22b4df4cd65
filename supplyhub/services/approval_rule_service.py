from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, Role, assert_min_role, has_min_role, require_restaurant_id, role_rank
from supplyhub.errors import NotFound, ValidationError
from supplyhub.models import ApprovalRule, UserRole
from supplyhub.services.money import to_money


_UNSET = object()


@dataclass(frozen=True)
class ApprovalDecision:
    requires_approval: bool
    required_role: Role | None = None
    matched_rule_ids: list[int] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return bool(self.matched_rule_ids)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def rule_matches(rule: ApprovalRule, total: Decimal) -> bool:
    if not rule.is_active:
        return False
    if total < to_money(rule.min_amount):
        return False
    if rule.max_amount is not None and total > to_money(rule.max_amount):
        return False
    return True


def evaluate_rules(rules: Iterable[ApprovalRule], *, total, submitter_role) -> ApprovalDecision:
    """Decide whether an order total needs sign-off above the submitter's role.

    The strictest matching rule wins: if the submitter ranks at or above the
    highest required role among matching rules, submission bypasses approval.
    """
    amount = to_money(total)
    matching = [rule for rule in rules if rule_matches(rule, amount)]
    if not matching:
        return ApprovalDecision(requires_approval=False)

    strictest = max(matching, key=lambda rule: role_rank(rule.required_role))
    required_role = Role(strictest.required_role.value)
    return ApprovalDecision(
        requires_approval=not has_min_role(submitter_role, required_role),
        required_role=required_role,
        matched_rule_ids=[rule.id for rule in matching],
    )


def load_active_rules(db: Session, *, restaurant_id: int) -> list[ApprovalRule]:
    return db.execute(
        select(ApprovalRule)
        .where(ApprovalRule.restaurant_id == restaurant_id, ApprovalRule.is_active.is_(True))
        .order_by(ApprovalRule.min_amount.asc(), ApprovalRule.id.asc())
    ).scalars().all()


def evaluate_for_restaurant(db: Session, *, restaurant_id: int, total, submitter_role) -> ApprovalDecision:
    # Rules are read once per submission; concurrent edits apply to the next one.
    rules = load_active_rules(db, restaurant_id=restaurant_id)
    return evaluate_rules(rules, total=total, submitter_role=submitter_role)


def _validate_range(min_amount: Decimal, max_amount: Decimal | None) -> None:
    if min_amount < 0:
        raise ValidationError('minAmount must be zero or greater')
    if max_amount is not None and max_amount < min_amount:
        raise ValidationError('maxAmount must be greater than or equal to minAmount')


def _clean_role(value) -> UserRole:
    try:
        return UserRole(Role(value).value)
    except ValueError as exc:
        raise ValidationError('requiredRole must be one of STAFF, MANAGER, OWNER') from exc


def _clean_flag(value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError('isActive must be true or false')
    return value


def list_rules(db: Session, principal: Principal, *, include_inactive: bool = False) -> list[ApprovalRule]:
    restaurant_id = require_restaurant_id(principal)
    if not include_inactive:
        return load_active_rules(db, restaurant_id=restaurant_id)
    return db.execute(
        select(ApprovalRule)
        .where(ApprovalRule.restaurant_id == restaurant_id)
        .order_by(ApprovalRule.min_amount.asc(), ApprovalRule.id.asc())
    ).scalars().all()


def create_rule(
    db: Session,
    principal: Principal,
    *,
    min_amount,
    max_amount=None,
    required_role: Role,
    is_active: bool = True,
) -> ApprovalRule:
    restaurant_id = require_restaurant_id(principal)
    assert_min_role(principal, Role.MANAGER)

    minimum = to_money(min_amount, field='minAmount')
    maximum = to_money(max_amount, field='maxAmount') if max_amount is not None else None
    _validate_range(minimum, maximum)

    rule = ApprovalRule(
        restaurant_id=restaurant_id,
        min_amount=minimum,
        max_amount=maximum,
        required_role=_clean_role(required_role),
        is_active=_clean_flag(is_active),
    )
    db.add(rule)
    db.flush()
    return rule


def _get_rule(db: Session, *, restaurant_id: int, rule_id: int) -> ApprovalRule:
    rule = db.execute(
        select(ApprovalRule).where(ApprovalRule.id == rule_id, ApprovalRule.restaurant_id == restaurant_id)
    ).scalar_one_or_none()
    if rule is None:
        raise NotFound('Rule not found')
    return rule


def update_rule(
    db: Session,
    principal: Principal,
    *,
    rule_id: int,
    min_amount=_UNSET,
    max_amount=_UNSET,
    required_role=_UNSET,
    is_active=_UNSET,
) -> ApprovalRule:
    restaurant_id = require_restaurant_id(principal)
    assert_min_role(principal, Role.MANAGER)
    rule = _get_rule(db, restaurant_id=restaurant_id, rule_id=rule_id)

    minimum = to_money(min_amount, field='minAmount') if min_amount is not _UNSET else to_money(rule.min_amount)
    if max_amount is _UNSET:
        maximum = to_money(rule.max_amount) if rule.max_amount is not None else None
    else:
        maximum = to_money(max_amount, field='maxAmount') if max_amount is not None else None
    _validate_range(minimum, maximum)
    role = _clean_role(required_role) if required_role is not _UNSET else rule.required_role
    active = _clean_flag(is_active) if is_active is not _UNSET else rule.is_active

    rule.min_amount = minimum
    rule.max_amount = maximum
    rule.required_role = role
    rule.is_active = active
    rule.updated_at = _now()
    db.flush()
    return rule


def delete_rule(db: Session, principal: Principal, *, rule_id: int) -> None:
    restaurant_id = require_restaurant_id(principal)
    assert_min_role(principal, Role.OWNER, 'Only owners can delete approval rules')
    rule = _get_rule(db, restaurant_id=restaurant_id, rule_id=rule_id)
    db.delete(rule)
    db.flush()


def serialize_rule(rule: ApprovalRule) -> dict:
    return {
        'id': rule.id,
        'minAmount': float(to_money(rule.min_amount)),
        'maxAmount': float(to_money(rule.max_amount)) if rule.max_amount is not None else None,
        'requiredRole': rule.required_role.value,
        'isActive': rule.is_active,
        'restaurantId': rule.restaurant_id,
    }
