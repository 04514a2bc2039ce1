import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PriceEntryCreate(BaseModel):
    fabric_id: str = Field(..., min_length=1, max_length=200)
    fabric_name: Optional[str] = None
    provider: str = Field(..., min_length=1)
    date: dt.date
    quantity: float = Field(..., gt=0, description="Price per unit")
    unit: Optional[str] = None

    @field_validator("fabric_id")
    @classmethod
    def no_path_characters(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or ".." in value:
            raise ValueError("fabric_id contains invalid characters")
        return value
