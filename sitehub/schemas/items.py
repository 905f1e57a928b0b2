import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, conint


class ItemCreate(BaseModel):
    name: str
    item_type: Literal["equipment", "material"]
    quantity: conint(ge=0) = 0


class ItemResponse(BaseModel):
    id: uuid.UUID
    name: str
    item_type: str
    quantity: int
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ItemCounts(BaseModel):
    equipment: int
    material: int
    total: int
