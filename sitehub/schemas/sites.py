import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, conint


class SiteCreate(BaseModel):
    name: str
    location: str = ""
    description: str = ""


class SiteResponse(SiteCreate):
    id: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SiteItemAdd(BaseModel):
    item_id: uuid.UUID
    quantity: conint(gt=0)


class SiteItemReduce(BaseModel):
    quantity: conint(gt=0)


class SiteItemResponse(BaseModel):
    id: uuid.UUID
    site_id: uuid.UUID
    item_id: uuid.UUID
    item_name: str
    item_type: str
    photo_url: Optional[str] = None
    quantity: int
