import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class AssignWorkerRequest(BaseModel):
    worker_id: uuid.UUID


class AssignManagerRequest(BaseModel):
    manager_id: uuid.UUID


class WorkerStatusRequest(BaseModel):
    status: Literal["off", "sick"]


class WorkerSummary(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str
    phone: str = ""
    status: str


class WorkerAssignmentResponse(BaseModel):
    id: uuid.UUID
    site_id: uuid.UUID
    worker: WorkerSummary
    assigned_at: Optional[datetime] = None


class SiteManagerResponse(BaseModel):
    id: uuid.UUID
    site_id: uuid.UUID
    manager_id: uuid.UUID
    full_name: str
    email: str
    assigned_at: Optional[datetime] = None
