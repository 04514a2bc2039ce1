from typing import Optional

from pydantic import BaseModel, Field


class InventoryRowCreate(BaseModel):
    OC: str = Field(..., min_length=1)
    Tela: str = Field(..., min_length=1)
    Color: str = Field(..., min_length=1)
    Ubicacion: str = ""
    Cantidad: float = Field(..., ge=0)
    Costo: float = Field(..., ge=0)
    Unidades: str = "MTS"
    Importacion: Optional[str] = None
    FacturaDragonAzteca: Optional[str] = None


class InventoryRowChanges(BaseModel):
    OC: Optional[str] = None
    Tela: Optional[str] = None
    Color: Optional[str] = None
    Ubicacion: Optional[str] = None
    Cantidad: Optional[float] = Field(None, ge=0)
    Costo: Optional[float] = Field(None, ge=0)
    Unidades: Optional[str] = None
    status: Optional[str] = None


class InventoryRowUpdate(BaseModel):
    file_key: str
    row_index: int = Field(0, ge=0)
    changes: InventoryRowChanges
