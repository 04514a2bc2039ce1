from typing import List, Optional, Union

from pydantic import BaseModel, Field


class SoldRoll(BaseModel):
    roll_number: int = Field(..., gt=0)
    fabric_type: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    lot: Optional[int] = None
    oc: str = Field(..., min_length=1)
    almacen: Optional[str] = None
    sold_quantity: float = Field(..., gt=0)
    units: str = "MTS"
    costo: float = Field(0, ge=0)


class SaleRequest(BaseModel):
    rolls: List[SoldRoll] = Field(..., min_length=1)
    sale_notes: Optional[str] = None
    customer_info: Optional[str] = None


class ReturnRoll(BaseModel):
    roll_number: Union[int, str]
    fabric_type: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    lot: Optional[int] = None
    oc: str = Field(..., min_length=1)
    almacen: str = ""
    return_quantity: float = Field(..., gt=0)
    units: str = "MTS"
    costo: float = Field(0, ge=0)
    sale_id: Optional[str] = None


class ReturnRequest(BaseModel):
    rolls: List[ReturnRoll] = Field(..., min_length=1)
    return_reason: str = Field(..., min_length=1)
    notes: Optional[str] = None
