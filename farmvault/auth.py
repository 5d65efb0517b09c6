from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    DEVELOPER = "DEVELOPER"
    COMPANY_ADMIN = "COMPANY_ADMIN"
    MANAGER = "MANAGER"
    BROKER = "BROKER"
    EMPLOYEE = "EMPLOYEE"


@dataclass
class Principal:
    id: int
    username: str
    name: str
    role: Role
    company_id: int | None
    active: bool

    @property
    def display_name(self) -> str:
        return self.name or self.username


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def is_admin_role(role: Role) -> bool:
    # Developers administer every company.
    return role in {Role.DEVELOPER, Role.COMPANY_ADMIN}


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def assert_company_scope(principal: Principal, target_company_id: int | None) -> None:
    if principal.role == Role.DEVELOPER:
        return
    if target_company_id is None or principal.company_id != target_company_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
