"""
Time tracking.

Worker states: off -> clock_in -> working -> clock_out -> off. `sick` is set
from outside (see assignments.set_worker_status) and is never entered or left
by clock actions. At most one open log (clock_out NULL) exists per worker,
backed by the partial unique index `uq_time_logs_open_worker`.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytz
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import TimeLog, Worker, WorkerAssignment
from .audit import create_audit_log
from .errors import AlreadyClockedIn, NotClockedIn, NotFound, ValidationFailed
from .ledger import get_active_site


logger = structlog.get_logger(__name__)

WORKER_STATUSES = ("working", "off", "sick")


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def elapsed_hours(clock_in: datetime, clock_out: datetime) -> float:
    return (as_utc(clock_out) - as_utc(clock_in)).total_seconds() / 3600


def get_worker(db: Session, worker_id: uuid.UUID) -> Worker:
    worker = db.query(Worker).filter(Worker.id == worker_id).first()
    if worker is None:
        raise NotFound("Worker not found")
    return worker


def get_open_log(db: Session, worker_id: uuid.UUID) -> Optional[TimeLog]:
    return (
        db.query(TimeLog)
        .filter(TimeLog.worker_id == worker_id, TimeLog.clock_out.is_(None))
        .first()
    )


def clock_in(db: Session, worker_id: uuid.UUID, site_id: uuid.UUID, now: Optional[datetime] = None) -> TimeLog:
    worker = get_worker(db, worker_id)
    if get_open_log(db, worker_id) is not None:
        raise AlreadyClockedIn("Already clocked in")
    if worker.status == "sick":
        raise ValidationFailed("Worker is marked sick")
    get_active_site(db, site_id)
    assigned = (
        db.query(WorkerAssignment)
        .filter(
            WorkerAssignment.worker_id == worker_id,
            WorkerAssignment.site_id == site_id,
            WorkerAssignment.removed_at.is_(None),
        )
        .first()
    )
    if assigned is None:
        raise ValidationFailed("Worker is not assigned to this site")

    log = TimeLog(worker_id=worker_id, site_id=site_id, clock_in=now or datetime.now(timezone.utc))
    db.add(log)
    worker.status = "working"
    try:
        db.flush()
        create_audit_log(
            db,
            entity_type="time_log",
            entity_id=log.id,
            action="CLOCK_IN",
            actor_id=worker_id,
            actor_role="worker",
            source="api",
            context={"site_id": site_id},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyClockedIn("Already clocked in")
    db.refresh(log)
    logger.info("time.clock_in", worker_id=str(worker_id), site_id=str(site_id), time_log_id=str(log.id))
    return log


def close_log(db: Session, log: TimeLog, worker: Worker, now: Optional[datetime] = None) -> TimeLog:
    """Close an open log in the current transaction without committing."""
    clock_out_at = now or datetime.now(timezone.utc)
    log.clock_out = clock_out_at
    log.total_hours = elapsed_hours(log.clock_in, clock_out_at)
    if worker.status != "sick":
        worker.status = "off"
    db.flush()
    return log


def clock_out(db: Session, worker_id: uuid.UUID, now: Optional[datetime] = None) -> TimeLog:
    worker = get_worker(db, worker_id)
    log = get_open_log(db, worker_id)
    if log is None:
        raise NotClockedIn("Not clocked in")
    close_log(db, log, worker, now)
    create_audit_log(
        db,
        entity_type="time_log",
        entity_id=log.id,
        action="CLOCK_OUT",
        actor_id=worker_id,
        actor_role="worker",
        source="api",
        context={"site_id": log.site_id, "total_hours": log.total_hours},
    )
    db.commit()
    db.refresh(log)
    logger.info("time.clock_out", worker_id=str(worker_id), time_log_id=str(log.id), total_hours=log.total_hours)
    return log


def local_day_bounds(day: Optional[datetime] = None, tz_name: Optional[str] = None) -> tuple[datetime, datetime]:
    """UTC start/end of the local calendar day containing `day`."""
    tz = pytz.timezone(tz_name or settings.tz_default)
    local = as_utc(day or datetime.now(timezone.utc)).astimezone(tz)
    start_local = tz.localize(datetime(local.year, local.month, local.day))
    end_local = tz.localize(datetime(local.year, local.month, local.day) + timedelta(days=1))
    return start_local.astimezone(pytz.UTC), end_local.astimezone(pytz.UTC)


def hours_for_day(db: Session, worker_id: uuid.UUID, day: Optional[datetime] = None) -> float:
    start, end = local_day_bounds(day)
    logs = (
        db.query(TimeLog)
        .filter(
            TimeLog.worker_id == worker_id,
            TimeLog.clock_in >= start,
            TimeLog.clock_in < end,
            TimeLog.total_hours.isnot(None),
        )
        .all()
    )
    return sum(log.total_hours or 0 for log in logs)


def list_logs(
    db: Session,
    worker_id: uuid.UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[TimeLog]:
    query = db.query(TimeLog).filter(TimeLog.worker_id == worker_id)
    if start:
        query = query.filter(TimeLog.clock_in >= start)
    if end:
        query = query.filter(TimeLog.clock_in < end)
    return query.order_by(TimeLog.clock_in.desc()).limit(limit).offset(offset).all()
