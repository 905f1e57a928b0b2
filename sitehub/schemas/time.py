import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ClockInRequest(BaseModel):
    site_id: uuid.UUID


class TimeLogResponse(BaseModel):
    id: uuid.UUID
    worker_id: uuid.UUID
    site_id: Optional[uuid.UUID] = None
    clock_in: datetime
    clock_out: Optional[datetime] = None
    total_hours: Optional[float] = None

    class Config:
        from_attributes = True


class TimeSummary(BaseModel):
    status: str
    open_log: Optional[TimeLogResponse] = None
    hours_today: float
