from typing import List, Optional

from pydantic import BaseModel, Field


class FichaEditRequest(BaseModel):
    key: str = Field(..., description="Current object key under Inventario/Fichas Tecnicas/")
    new_name: Optional[str] = Field(None, description="New display name (without .pdf)")
    allowed_roles: Optional[List[str]] = Field(None, description="Roles allowed to see the ficha")
