# app/models/principal.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    ADMIN = "admin"
    INSTITUTION = "institution"
    WAREHOUSE = "warehouse"


class Principal(BaseModel):
    """Authenticated caller as forwarded by the identity gateway."""
    id: str
    role: Role
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
