from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models import ROLES


def _check_role(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in ROLES:
        raise ValueError(f"role must be one of {', '.join(ROLES)}")
    return value


class UserCreate(BaseModel):
    name: Optional[str] = None
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: str = "seller"
    is_active: bool = True

    @field_validator("role")
    @classmethod
    def valid_role(cls, value):
        return _check_role(value)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("role")
    @classmethod
    def valid_role(cls, value):
        return _check_role(value)


class ActivityUpdateRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
