from typing import Optional

from pydantic import BaseModel, Field


class CacheInvalidateRequest(BaseModel):
    resource: Optional[str] = Field(None, description="Resource name; omit to invalidate every cache key")
