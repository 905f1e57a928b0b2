"""
Worker-to-site and manager-to-site assignments.

A worker has at most one active assignment (removed_at NULL), enforced by the
partial unique index `uq_worker_assignments_active_worker`. The denormalized
`workers.status` is kept in step here and in `time_tracking`.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.security import AuthSession
from ..models.models import Profile, SiteManager, Worker, WorkerAssignment
from .errors import AlreadyAssigned, Conflict, NotFound, PermissionDenied, ValidationFailed
from .ledger import get_active_site
from .time_tracking import close_log, get_open_log, get_worker


logger = structlog.get_logger(__name__)

SETTABLE_STATUSES = ("off", "sick")


def managed_site_ids(db: Session, manager_id: uuid.UUID) -> set[uuid.UUID]:
    rows = db.query(SiteManager.site_id).filter(SiteManager.manager_id == manager_id).all()
    return {r[0] for r in rows}


def ensure_site_access(db: Session, session: AuthSession, site_id: uuid.UUID) -> None:
    """Admins reach every site; site managers only the ones they manage."""
    if session.is_admin:
        return
    if session.role == "site_manager" and site_id in managed_site_ids(db, session.user_id):
        return
    raise PermissionDenied("You do not manage this site")


def active_assignment(db: Session, worker_id: uuid.UUID) -> Optional[WorkerAssignment]:
    return (
        db.query(WorkerAssignment)
        .filter(WorkerAssignment.worker_id == worker_id, WorkerAssignment.removed_at.is_(None))
        .first()
    )


def site_assignments(db: Session, site_id: uuid.UUID) -> list[WorkerAssignment]:
    return (
        db.query(WorkerAssignment)
        .join(Worker, Worker.id == WorkerAssignment.worker_id)
        .join(Profile, Profile.id == Worker.id)
        .filter(
            WorkerAssignment.site_id == site_id,
            WorkerAssignment.removed_at.is_(None),
            Profile.deleted_at.is_(None),
        )
        .order_by(Profile.full_name)
        .all()
    )


def available_workers(db: Session) -> list[Worker]:
    """Active workers without a current assignment."""
    assigned = select(WorkerAssignment.worker_id).where(WorkerAssignment.removed_at.is_(None))
    return (
        db.query(Worker)
        .join(Profile, Profile.id == Worker.id)
        .filter(Profile.deleted_at.is_(None), Worker.id.notin_(assigned))
        .order_by(Profile.full_name)
        .all()
    )


def assign_worker(db: Session, site_id: uuid.UUID, worker_id: uuid.UUID, actor_id: Optional[uuid.UUID]) -> WorkerAssignment:
    get_active_site(db, site_id)
    worker = get_worker(db, worker_id)
    if worker.profile is None or worker.profile.deleted_at is not None:
        raise NotFound("Worker not found")
    if active_assignment(db, worker_id) is not None:
        raise AlreadyAssigned("Worker is already assigned to a site")
    row = WorkerAssignment(worker_id=worker_id, site_id=site_id, assigned_by=actor_id, assigned_at=datetime.now(timezone.utc))
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyAssigned("Worker is already assigned to a site")
    db.refresh(row)
    logger.info("assignment.worker_assigned", worker_id=str(worker_id), site_id=str(site_id))
    return row


def _end_assignment(db: Session, row: WorkerAssignment, now: datetime) -> bool:
    """Close the assignment and any open log; returns whether a log was closed."""
    row.removed_at = now
    worker = get_worker(db, row.worker_id)
    open_log = get_open_log(db, row.worker_id)
    if open_log is not None:
        close_log(db, open_log, worker, now)
    elif worker.status != "sick":
        worker.status = "off"
    return open_log is not None


def remove_worker(db: Session, site_id: uuid.UUID, assignment_id: uuid.UUID) -> WorkerAssignment:
    """End an assignment. An open time log is closed and the worker goes off."""
    row = (
        db.query(WorkerAssignment)
        .filter(
            WorkerAssignment.id == assignment_id,
            WorkerAssignment.site_id == site_id,
            WorkerAssignment.removed_at.is_(None),
        )
        .first()
    )
    if row is None:
        raise NotFound("Assignment not found")
    closed = _end_assignment(db, row, datetime.now(timezone.utc))
    db.commit()
    logger.info(
        "assignment.worker_removed",
        worker_id=str(row.worker_id),
        site_id=str(site_id),
        closed_time_log=closed,
    )
    return row


def end_site_assignments(db: Session, site_id: uuid.UUID) -> int:
    """End every active assignment at a site without committing."""
    now = datetime.now(timezone.utc)
    rows = (
        db.query(WorkerAssignment)
        .filter(WorkerAssignment.site_id == site_id, WorkerAssignment.removed_at.is_(None))
        .all()
    )
    for row in rows:
        _end_assignment(db, row, now)
    return len(rows)


def set_worker_status(db: Session, worker_id: uuid.UUID, status: str) -> Worker:
    """Set `sick` or `off`. `working` is only reachable by clocking in."""
    if status not in SETTABLE_STATUSES:
        raise ValidationFailed("Status must be 'off' or 'sick'")
    worker = get_worker(db, worker_id)
    if status == "off" and get_open_log(db, worker_id) is not None:
        raise Conflict("Worker is clocked in; clock out instead")
    worker.status = status
    db.commit()
    db.refresh(worker)
    logger.info("worker.status_set", worker_id=str(worker_id), status=status)
    return worker


def site_managers(db: Session, site_id: uuid.UUID) -> list[SiteManager]:
    return (
        db.query(SiteManager)
        .join(Profile, Profile.id == SiteManager.manager_id)
        .filter(SiteManager.site_id == site_id, Profile.deleted_at.is_(None))
        .order_by(Profile.full_name)
        .all()
    )


def assign_manager(db: Session, site_id: uuid.UUID, manager_id: uuid.UUID) -> SiteManager:
    get_active_site(db, site_id)
    profile = db.query(Profile).filter(Profile.id == manager_id, Profile.deleted_at.is_(None)).first()
    if profile is None:
        raise NotFound("User not found")
    if profile.role != "site_manager":
        raise ValidationFailed("User is not a site manager")
    existing = db.query(SiteManager).filter(SiteManager.site_id == site_id, SiteManager.manager_id == manager_id).first()
    if existing is not None:
        raise Conflict("Manager already assigned to this site")
    row = SiteManager(site_id=site_id, manager_id=manager_id, assigned_at=datetime.now(timezone.utc))
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("assignment.manager_assigned", manager_id=str(manager_id), site_id=str(site_id))
    return row


def remove_manager(db: Session, site_id: uuid.UUID, assignment_id: uuid.UUID) -> None:
    row = db.query(SiteManager).filter(SiteManager.id == assignment_id, SiteManager.site_id == site_id).first()
    if row is None:
        raise NotFound("Assignment not found")
    db.delete(row)
    db.commit()
