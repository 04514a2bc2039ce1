from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class OrderItem(BaseModel):
    Tela: str = Field(..., min_length=1)
    Color: str = Field(..., min_length=1)
    Cantidad: float = Field(..., gt=0)
    Unidades: str = "MTS"
    Costo: Optional[float] = Field(None, ge=0)
    Cliente: Optional[str] = None


class OrderCreateRequest(BaseModel):
    orden_de_compra: str = Field(..., min_length=1, max_length=100)
    fecha_pedido: Optional[date] = None
    cliente: Optional[str] = None
    notas: Optional[str] = None
    items: List[OrderItem] = Field(..., min_length=1)

    @field_validator("orden_de_compra")
    @classmethod
    def no_path_characters(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or ".." in value:
            raise ValueError("orden_de_compra contains invalid characters")
        return value


class PendingOrderSave(BaseModel):
    orden_de_compra: str = Field(..., min_length=1, max_length=100)
    orders: List[Dict[str, Any]] = Field(..., min_length=1)

    @field_validator("orden_de_compra")
    @classmethod
    def no_path_characters(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or ".." in value:
            raise ValueError("orden_de_compra contains invalid characters")
        return value
