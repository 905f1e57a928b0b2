from datetime import date, datetime, time, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..schemas.time import ClockInRequest, TimeLogResponse, TimeSummary
from ..services import time_tracking


router = APIRouter(prefix="/time", tags=["time"])


@router.post("/clock-in", response_model=TimeLogResponse)
def clock_in(body: ClockInRequest, db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("worker"))):
    return time_tracking.clock_in(db, session.user_id, body.site_id)


@router.post("/clock-out", response_model=TimeLogResponse)
def clock_out(db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("worker"))):
    return time_tracking.clock_out(db, session.user_id)


@router.get("/logs", response_model=List[TimeLogResponse])
def list_logs(
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("worker")),
):
    """Own time logs, newest first. `end` is inclusive."""
    start_dt = time_tracking.local_day_bounds(datetime.combine(start, time(12), tzinfo=timezone.utc))[0] if start else None
    end_dt = time_tracking.local_day_bounds(datetime.combine(end, time(12), tzinfo=timezone.utc))[1] if end else None
    return time_tracking.list_logs(
        db, session.user_id, start=start_dt, end=end_dt, limit=min(max(1, limit), 500), offset=max(0, offset)
    )


@router.get("/summary", response_model=TimeSummary)
def summary(db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("worker"))):
    worker = time_tracking.get_worker(db, session.user_id)
    return {
        "status": worker.status,
        "open_log": time_tracking.get_open_log(db, session.user_id),
        "hours_today": round(time_tracking.hours_for_day(db, session.user_id), 2),
    }
