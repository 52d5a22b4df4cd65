from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, Role, get_current_principal, require_min_role
from supplyhub.db import get_db
from supplyhub.dependencies import commit_and_dispatch, get_client_ip, get_outbox
from supplyhub.schemas import ApprovalReviewBody, ApprovalRuleCreate, ApprovalRuleUpdate
from supplyhub.services.approval_rule_service import create_rule, delete_rule, list_rules, serialize_rule, update_rule
from supplyhub.services.approval_service import list_pending_approvals, review_approval, serialize_approval
from supplyhub.services.audit_service import log_audit
from supplyhub.services.order_service import serialize_order
from supplyhub.services.outbox import Outbox

router = APIRouter(tags=['approvals'])
reviewer_access = require_min_role(Role.MANAGER)


def _audit_value(value):
    if value is None:
        return None
    return str(getattr(value, 'value', value))


@router.post('/orders/{order_id}/approval')
def review_order_approval(
    order_id: int,
    body: ApprovalReviewBody,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    result = review_approval(
        db,
        outbox,
        principal,
        order_id=order_id,
        status=body.status,
        notes=body.notes,
        ip=get_client_ip(request),
    )
    commit_and_dispatch(db, outbox)
    return {'order': serialize_order(result.order), 'approval': serialize_approval(result.approval)}


@router.get('/approvals')
def pending_approvals(
    principal: Principal = Depends(reviewer_access),
    db: Session = Depends(get_db),
):
    return {'approvals': list_pending_approvals(db, principal)}


@router.get('/approval-rules')
def get_approval_rules(
    include_inactive: bool = False,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    rules = list_rules(db, principal, include_inactive=include_inactive)
    return {'rules': [serialize_rule(rule) for rule in rules]}


@router.post('/approval-rules', status_code=201)
def post_approval_rule(
    body: ApprovalRuleCreate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    rule = create_rule(
        db,
        principal,
        min_amount=body.min_amount,
        max_amount=body.max_amount,
        required_role=body.required_role,
        is_active=body.is_active,
    )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='APPROVAL_RULE_CREATED',
        entity_type='approval_rule',
        entity_id=rule.id,
        ip=get_client_ip(request),
        metadata={'min_amount': str(rule.min_amount), 'required_role': rule.required_role.value},
    )
    db.commit()
    return serialize_rule(rule)


@router.patch('/approval-rules/{rule_id}')
def patch_approval_rule(
    rule_id: int,
    body: ApprovalRuleUpdate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    rule = update_rule(db, principal, rule_id=rule_id, **changes)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='APPROVAL_RULE_UPDATED',
        entity_type='approval_rule',
        entity_id=rule.id,
        ip=get_client_ip(request),
        metadata={key: _audit_value(value) for key, value in changes.items()},
    )
    db.commit()
    return serialize_rule(rule)


@router.delete('/approval-rules/{rule_id}')
def remove_approval_rule(
    rule_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    delete_rule(db, principal, rule_id=rule_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='APPROVAL_RULE_DELETED',
        entity_type='approval_rule',
        entity_id=rule_id,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'success': True}
