import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ProveedorRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    Empresa: str = Field(..., min_length=1)
    nombre_contacto: Optional[str] = Field(None, alias="Nombre de contacto")
    telefono: Optional[str] = Field(None, alias="Teléfono")
    Correo: str = Field(..., min_length=1)
    Producto: Optional[str] = None

    @field_validator("Empresa")
    @classmethod
    def empresa_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Empresa es obligatoria")
        return value

    @field_validator("Correo")
    @classmethod
    def valid_email(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("El formato del correo no es válido")
        return value


class ProveedorUpdate(ProveedorRequest):
    fileKey: str = Field(..., min_length=1)


class ProveedorDelete(BaseModel):
    fileKey: str = Field(..., min_length=1)
