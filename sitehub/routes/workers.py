import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..models.models import SiteManager, Worker, WorkerAssignment
from ..schemas.workers import (
    AssignManagerRequest,
    AssignWorkerRequest,
    SiteManagerResponse,
    WorkerAssignmentResponse,
    WorkerStatusRequest,
)
from ..services import assignments
from ..services.ledger import get_active_site


router = APIRouter(tags=["workers"])


def _worker_to_dict(w: Worker) -> dict:
    return {
        "id": w.id,
        "full_name": w.profile.full_name if w.profile else "",
        "email": w.profile.email if w.profile else "",
        "phone": w.phone or "",
        "status": w.status,
    }


def _assignment_to_dict(a: WorkerAssignment) -> dict:
    return {
        "id": a.id,
        "site_id": a.site_id,
        "worker": _worker_to_dict(a.worker),
        "assigned_at": a.assigned_at,
    }


def _manager_to_dict(m: SiteManager) -> dict:
    return {
        "id": m.id,
        "site_id": m.site_id,
        "manager_id": m.manager_id,
        "full_name": m.manager.full_name,
        "email": m.manager.email,
        "assigned_at": m.assigned_at,
    }


# ---------- WORKERS ON A SITE ----------
@router.get("/sites/{site_id}/workers", response_model=List[WorkerAssignmentResponse])
def list_site_workers(
    site_id: uuid.UUID,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    assignments.ensure_site_access(db, session, site_id)
    get_active_site(db, site_id)
    return [_assignment_to_dict(a) for a in assignments.site_assignments(db, site_id)]


@router.post("/sites/{site_id}/workers", response_model=WorkerAssignmentResponse)
def assign_worker(
    site_id: uuid.UUID,
    body: AssignWorkerRequest,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    assignments.ensure_site_access(db, session, site_id)
    row = assignments.assign_worker(db, site_id, body.worker_id, actor_id=session.user_id)
    return _assignment_to_dict(row)


@router.delete("/sites/{site_id}/workers/{assignment_id}")
def remove_worker(
    site_id: uuid.UUID,
    assignment_id: uuid.UUID,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    assignments.ensure_site_access(db, session, site_id)
    assignments.remove_worker(db, site_id, assignment_id)
    return {"message": "Worker removed from site"}


@router.get("/workers/available")
def available_workers(db: Session = Depends(get_db), _=Depends(require_roles("admin", "site_manager"))):
    return [_worker_to_dict(w) for w in assignments.available_workers(db)]


@router.put("/workers/{worker_id}/status")
def set_status(
    worker_id: uuid.UUID,
    body: WorkerStatusRequest,
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin", "site_manager")),
):
    worker = assignments.set_worker_status(db, worker_id, body.status)
    return _worker_to_dict(worker)


# ---------- SITE MANAGERS ----------
@router.get("/sites/{site_id}/managers", response_model=List[SiteManagerResponse])
def list_site_managers(site_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    get_active_site(db, site_id)
    return [_manager_to_dict(m) for m in assignments.site_managers(db, site_id)]


@router.post("/sites/{site_id}/managers", response_model=SiteManagerResponse)
def assign_manager(
    site_id: uuid.UUID,
    body: AssignManagerRequest,
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    return _manager_to_dict(assignments.assign_manager(db, site_id, body.manager_id))


@router.delete("/sites/{site_id}/managers/{assignment_id}")
def remove_manager(
    site_id: uuid.UUID,
    assignment_id: uuid.UUID,
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    assignments.remove_manager(db, site_id, assignment_id)
    return {"message": "Manager removed from site"}
