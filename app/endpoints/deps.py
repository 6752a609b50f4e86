# app/endpoints/deps.py
from typing import Optional

from fastapi import Depends, Header, HTTPException

from app.db.unit_of_work import MongoUnitOfWork, UnitOfWork
from app.models.principal import Principal, Role
from app.services.approval_policy import ApprovalPolicy, get_policy


def get_uow() -> UnitOfWork:
    return MongoUnitOfWork()


def get_approval_policy() -> ApprovalPolicy:
    return get_policy()


def get_principal(
        x_user_id: Optional[str] = Header(None),
        x_user_role: Optional[str] = Header(None),
        x_user_email: Optional[str] = Header(None),
) -> Principal:
    """Caller identity forwarded by the auth gateway."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid role '{x_user_role}'") from None
    return Principal(id=x_user_id.strip(), role=role, email=x_user_email)


def require_roles(*roles: Role):
    def _check(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail=f"Forbidden: requires role {', '.join(r.value for r in roles)}")
        return principal
    return _check
