from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PackingListRoll(BaseModel):
    model_config = ConfigDict(extra="allow")

    rollo_id: Union[int, str]
    OC: str = Field(..., min_length=1)
    tela: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    lote: Union[int, str]
    unidad: Literal["KG", "MTS"]
    cantidad: float = Field(..., gt=0)
    status: Optional[Literal["pending", "active", "sold", "returned"]] = None
    fecha_ingreso: Optional[str] = None


class EditRollsRequest(BaseModel):
    oc: str = Field(..., min_length=1)
    updatedRolls: List[PackingListRoll] = Field(..., min_length=1)


class DeletePendingRequest(BaseModel):
    oc: str = Field(..., min_length=1)
