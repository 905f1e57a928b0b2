import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, conint, model_validator


class TransferCreate(BaseModel):
    item_id: uuid.UUID
    from_site_id: Optional[uuid.UUID] = None  # None = storage
    to_site_id: Optional[uuid.UUID] = None
    quantity: conint(gt=0)

    @model_validator(mode="after")
    def check_endpoints(self):
        if self.from_site_id is None and self.to_site_id is None:
            raise ValueError("A transfer needs at least one site")
        if self.from_site_id == self.to_site_id:
            raise ValueError("Source and destination must differ")
        return self


class TransferResponse(BaseModel):
    id: uuid.UUID
    item_id: Optional[uuid.UUID] = None
    item_name: Optional[str] = None
    from_site_id: Optional[uuid.UUID] = None
    from_label: str
    to_site_id: Optional[uuid.UUID] = None
    to_label: str
    quantity: int
    transferred_by: Optional[uuid.UUID] = None
    transferred_by_name: Optional[str] = None
    created_at: Optional[datetime] = None
