from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from supplyhub.auth import Principal, get_current_principal
from supplyhub.db import get_db
from supplyhub.dependencies import get_client_ip
from supplyhub.security.sessions import extract_bearer_token, revoke_web_session
from supplyhub.services.audit_service import log_audit

router = APIRouter(prefix='/auth', tags=['auth'])


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return {
        'id': principal.id,
        'email': principal.email,
        'name': principal.display_name,
        'role': principal.role.value,
        'restaurantId': principal.restaurant_id,
        'supplierId': principal.supplier_id,
        'isSupplier': principal.is_supplier,
    }


@router.post('/logout')
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    token = extract_bearer_token(request.headers.get('authorization'))
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='AUTH_LOGOUT',
        entity_type='user',
        entity_id=principal.id,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'success': True}
