from dataclasses import dataclass
from enum import Enum

from fastapi import HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    BARTENDER = "bartender"
    GUEST = "guest"

    @classmethod
    def parse(cls, value: "str | Role | None") -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.GUEST


@dataclass(frozen=True)
class Principal:
    email: str
    display_name: str
    role: Role
    active: bool = True
    directory_miss: bool = False


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return principal
