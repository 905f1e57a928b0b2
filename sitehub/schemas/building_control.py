import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ReportNotesUpdate(BaseModel):
    notes: str = ""


class PhotoResponse(BaseModel):
    id: uuid.UUID
    photo_url: str
    notes: str = ""
    created_by_name: Optional[str] = None
    created_at: Optional[datetime] = None


class ReportResponse(BaseModel):
    id: uuid.UUID
    site_id: uuid.UUID
    notes: str = ""
    created_by_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    photos: List[PhotoResponse] = []
