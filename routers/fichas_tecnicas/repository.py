"""Fichas técnicas repository layer (object storage)."""

import asyncio
from typing import List, Optional

from models import ROLE_MAJOR_ADMIN, ROLES
from utils.storage import ObjectStorage, StoredObject

FICHAS_PREFIX = "Inventario/Fichas Tecnicas/"
PDF_SUFFIX = ".pdf"
ROLES_MARKER = "_roles_"
ROLES_METADATA_KEY = "allowedroles"
DEFAULT_ALLOWED_ROLES = [ROLE_MAJOR_ADMIN]


def parse_roles(raw: Optional[str], *, separator: str) -> List[str]:
    if not raw:
        return []
    roles = [part.strip() for part in raw.split(separator)]
    return [role for role in dict.fromkeys(roles) if role in ROLES]


def roles_from_key(key: str) -> List[str]:
    name = key.rsplit("/", 1)[-1]
    if ROLES_MARKER not in name or not name.lower().endswith(PDF_SUFFIX):
        return []
    segment = name.rsplit(ROLES_MARKER, 1)[1][: -len(PDF_SUFFIX)]
    return parse_roles(segment, separator="-")


def display_name(key: str) -> str:
    name = key.rsplit("/", 1)[-1]
    if name.lower().endswith(PDF_SUFFIX):
        name = name[: -len(PDF_SUFFIX)]
    if ROLES_MARKER in name:
        name = name.rsplit(ROLES_MARKER, 1)[0]
    return name


def build_key(name: str) -> str:
    name = name.strip().replace("/", "-")
    if not name.lower().endswith(PDF_SUFFIX):
        name += PDF_SUFFIX
    return FICHAS_PREFIX + name


async def allowed_roles(storage: ObjectStorage, key: str) -> List[str]:
    roles = roles_from_key(key)
    if roles:
        return roles
    metadata = await storage.head_metadata(key)
    return parse_roles(metadata.get(ROLES_METADATA_KEY), separator=",") or list(DEFAULT_ALLOWED_ROLES)


async def list_fichas(storage: ObjectStorage) -> List[dict]:
    objects: List[StoredObject] = [
        obj for obj in await storage.list_objects(FICHAS_PREFIX) if obj.key.lower().endswith(PDF_SUFFIX)
    ]
    roles = await asyncio.gather(*(allowed_roles(storage, obj.key) for obj in objects))
    fichas = [
        {
            "name": display_name(obj.key),
            "key": obj.key,
            "size": obj.size,
            "last_modified": obj.last_modified.isoformat() if obj.last_modified else None,
            "allowed_roles": obj_roles,
        }
        for obj, obj_roles in zip(objects, roles)
    ]
    fichas.sort(key=lambda f: f["name"].lower())
    return fichas


async def save_ficha(storage: ObjectStorage, key: str, content: bytes, roles: List[str], uploaded_by: str) -> None:
    await storage.put_bytes(
        key,
        content,
        content_type="application/pdf",
        metadata={ROLES_METADATA_KEY: ",".join(roles), "uploadedby": uploaded_by},
    )


async def move_ficha(storage: ObjectStorage, source_key: str, dest_key: str, roles: List[str]) -> None:
    metadata = await storage.head_metadata(source_key)
    metadata[ROLES_METADATA_KEY] = ",".join(roles)
    await storage.copy(source_key, dest_key, metadata=metadata)
    if dest_key != source_key:
        await storage.delete(source_key)
