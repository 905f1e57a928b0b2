"""
Per-role dashboard summaries.
"""
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.security import AuthSession
from ..models.models import Profile, Site, Worker, WorkerAssignment
from .assignments import managed_site_ids
from .items import item_counts
from .sites import list_sites, site_item_count
from .time_tracking import WORKER_STATUSES, as_utc, get_open_log, hours_for_day


def _workers_by_status(db: Session) -> dict:
    rows = (
        db.query(Worker.status, func.count(Worker.id))
        .join(Profile, Profile.id == Worker.id)
        .filter(Profile.deleted_at.is_(None))
        .group_by(Worker.status)
        .all()
    )
    counts = {s: 0 for s in WORKER_STATUSES}
    for status, n in rows:
        counts[status] = n
    counts["total"] = sum(counts[s] for s in WORKER_STATUSES)
    return counts


def admin_summary(db: Session) -> dict:
    sites = db.query(func.count(Site.id)).filter(Site.deleted_at.is_(None)).scalar() or 0
    return {
        "role": "admin",
        "sites": sites,
        "items": item_counts(db),
        "workers": _workers_by_status(db),
    }


def manager_summary(db: Session, manager_id: uuid.UUID) -> dict:
    site_ids = {s.id for s in list_sites(db, managed_site_ids(db, manager_id))}
    workers = 0
    if site_ids:
        workers = (
            db.query(func.count(WorkerAssignment.id))
            .join(Profile, Profile.id == WorkerAssignment.worker_id)
            .filter(
                WorkerAssignment.site_id.in_(site_ids),
                WorkerAssignment.removed_at.is_(None),
                Profile.deleted_at.is_(None),
            )
            .scalar()
            or 0
        )
    return {
        "role": "site_manager",
        "sites": len(site_ids),
        "site_items": site_item_count(db, site_ids),
        "workers": workers,
    }


def worker_summary(db: Session, worker_id: uuid.UUID) -> dict:
    sites = (
        db.query(Site)
        .join(WorkerAssignment, WorkerAssignment.site_id == Site.id)
        .filter(
            WorkerAssignment.worker_id == worker_id,
            WorkerAssignment.removed_at.is_(None),
            Site.deleted_at.is_(None),
        )
        .order_by(Site.name)
        .all()
    )
    worker = db.query(Worker).filter(Worker.id == worker_id).first()
    open_log = get_open_log(db, worker_id)
    return {
        "role": "worker",
        "status": worker.status if worker else None,
        "sites": [{"id": str(s.id), "name": s.name, "location": s.location} for s in sites],
        "open_log": (
            {
                "id": str(open_log.id),
                "site_id": str(open_log.site_id) if open_log.site_id else None,
                "clock_in": as_utc(open_log.clock_in).isoformat(),
            }
            if open_log
            else None
        ),
        "hours_today": round(hours_for_day(db, worker_id), 2),
    }


def summary_for(db: Session, session: AuthSession) -> dict:
    if session.is_admin:
        return admin_summary(db)
    if session.role == "site_manager":
        return manager_summary(db, session.user_id)
    return worker_summary(db, session.user_id)
