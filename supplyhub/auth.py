from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from supplyhub.db import get_db
from supplyhub.errors import Forbidden, NotFound, Unauthenticated
from supplyhub.security.sessions import extract_bearer_token, load_user_from_token


class Role(str, Enum):
    STAFF = "STAFF"
    MANAGER = "MANAGER"
    OWNER = "OWNER"


# Single source of truth for role comparisons.
ROLE_RANK = {
    Role.STAFF: 0,
    Role.MANAGER: 1,
    Role.OWNER: 2,
}


def role_rank(role) -> int:
    return ROLE_RANK[Role(role.value if hasattr(role, "value") else role)]


def has_min_role(role, minimum) -> bool:
    return role_rank(role) >= role_rank(minimum)


@dataclass(frozen=True)
class Principal:
    id: int
    email: str
    display_name: str
    role: Role
    restaurant_id: int | None
    supplier_id: int | None
    active: bool = True

    @property
    def is_supplier(self) -> bool:
        return self.supplier_id is not None and self.restaurant_id is None


def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    token = extract_bearer_token(request.headers.get("authorization"))
    user = load_user_from_token(db, token)
    if user is None:
        raise Unauthenticated()
    db.commit()
    if not user.active:
        raise Forbidden()
    role = Role(user.role.value if hasattr(user.role, "value") else user.role)
    return Principal(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=role,
        restaurant_id=user.restaurant_id,
        supplier_id=user.supplier_id,
        active=user.active,
    )


def require_min_role(minimum: Role, message: str = "Insufficient permissions"):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        assert_min_role(principal, minimum, message)
        return principal

    return _dep


def assert_min_role(principal: Principal, minimum: Role, message: str = "Insufficient permissions") -> None:
    if not has_min_role(principal.role, minimum):
        raise Forbidden(message)


def require_restaurant_id(principal: Principal) -> int:
    if principal.restaurant_id is None:
        raise NotFound("Restaurant not found")
    return principal.restaurant_id
