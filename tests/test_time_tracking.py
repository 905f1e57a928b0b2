from datetime import datetime, timedelta, timezone

import pytest

from sitehub.models.models import TimeLog, Worker
from sitehub.services import assignments, time_tracking
from sitehub.services.errors import AlreadyClockedIn, NotClockedIn, ValidationFailed


@pytest.fixture()
def assigned_worker(db, make_user, make_site):
    admin = make_user("admin")
    worker = make_user("worker")
    site = make_site()
    assignments.assign_worker(db, site.id, worker.id, actor_id=admin.id)
    return worker, site


def _status(db, worker_id):
    return db.query(Worker).filter(Worker.id == worker_id).first().status


def test_clock_in_then_out_records_hours(db, assigned_worker):
    worker, site = assigned_worker
    start = datetime(2024, 5, 1, 7, 30, tzinfo=timezone.utc)

    log = time_tracking.clock_in(db, worker.id, site.id, now=start)
    assert log.clock_out is None
    assert _status(db, worker.id) == "working"

    log = time_tracking.clock_out(db, worker.id, now=start + timedelta(hours=8, minutes=15))
    assert log.total_hours == pytest.approx(8.25)
    assert _status(db, worker.id) == "off"


def test_second_clock_in_is_rejected(db, assigned_worker):
    worker, site = assigned_worker
    time_tracking.clock_in(db, worker.id, site.id)

    with pytest.raises(AlreadyClockedIn):
        time_tracking.clock_in(db, worker.id, site.id)
    assert db.query(TimeLog).filter(TimeLog.clock_out.is_(None)).count() == 1


def test_racing_insert_maps_to_already_clocked_in(db, assigned_worker, monkeypatch):
    worker, site = assigned_worker
    time_tracking.clock_in(db, worker.id, site.id)
    # Simulate a request that read "no open log" before the first insert landed
    monkeypatch.setattr(time_tracking, "get_open_log", lambda *_: None)

    with pytest.raises(AlreadyClockedIn):
        time_tracking.clock_in(db, worker.id, site.id)
    assert db.query(TimeLog).count() == 1


def test_clock_out_without_open_log(db, assigned_worker):
    worker, _ = assigned_worker
    with pytest.raises(NotClockedIn):
        time_tracking.clock_out(db, worker.id)


def test_clock_in_requires_assignment(db, make_user, make_site):
    worker = make_user("worker")
    other = make_site("Elsewhere")
    with pytest.raises(ValidationFailed):
        time_tracking.clock_in(db, worker.id, other.id)


def test_sick_worker_cannot_clock_in(db, assigned_worker):
    worker, site = assigned_worker
    assignments.set_worker_status(db, worker.id, "sick")
    with pytest.raises(ValidationFailed):
        time_tracking.clock_in(db, worker.id, site.id)


def test_sick_status_survives_clock_out(db, assigned_worker):
    worker, site = assigned_worker
    time_tracking.clock_in(db, worker.id, site.id)
    assignments.set_worker_status(db, worker.id, "sick")

    time_tracking.clock_out(db, worker.id)
    assert _status(db, worker.id) == "sick"


def test_hours_for_day_sums_closed_logs(db, assigned_worker):
    worker, site = assigned_worker
    day = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    for start_hour, length in ((8, 2), (13, 3)):
        start = day.replace(hour=start_hour)
        time_tracking.clock_in(db, worker.id, site.id, now=start)
        time_tracking.clock_out(db, worker.id, now=start + timedelta(hours=length))

    assert time_tracking.hours_for_day(db, worker.id, day) == pytest.approx(5.0)
    assert time_tracking.hours_for_day(db, worker.id, day + timedelta(days=1)) == 0


def test_local_day_bounds_follow_timezone():
    # London is UTC+1 in summer
    start, end = time_tracking.local_day_bounds(
        datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc), tz_name="Europe/London"
    )
    assert start == datetime(2024, 6, 30, 23, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(hours=24)
