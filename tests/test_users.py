import pytest

from sitehub.models.models import AuthUser, Profile, TimeLog, Worker, WorkerAssignment
from sitehub.services import assignments, time_tracking, users
from sitehub.services.errors import Conflict, ValidationFailed


def _worker(db, user_id):
    return db.query(Worker).filter(Worker.id == user_id).first()


def test_create_worker_creates_worker_record(db, make_user):
    profile = make_user("worker", phone="07700 900123")

    worker = _worker(db, profile.id)
    assert worker is not None
    assert worker.status == "off"
    assert worker.phone == "07700 900123"


def test_create_manager_has_no_worker_record(db, make_user):
    profile = make_user("site_manager")
    assert _worker(db, profile.id) is None


def test_duplicate_email_leaves_nothing_behind(db, make_user, identity):
    make_user("worker", email="dup@sitehub.io")

    with pytest.raises(Conflict):
        users.create_user(db, identity, "DUP@sitehub.io", "password123", "Other", "worker")
    assert db.query(AuthUser).count() == 1
    assert db.query(Profile).count() == 1


def test_invalid_role_is_rejected(db, identity):
    with pytest.raises(ValidationFailed):
        users.create_user(db, identity, "x@sitehub.io", "password123", "X", "foreman")
    assert db.query(AuthUser).count() == 0


def test_role_change_away_from_worker_deletes_worker(db, make_user, make_site, identity):
    admin = make_user("admin")
    profile = make_user("worker", email="cy@sitehub.io")
    site = make_site()
    assignments.assign_worker(db, site.id, profile.id, actor_id=admin.id)
    time_tracking.clock_in(db, profile.id, site.id)
    time_tracking.clock_out(db, profile.id)

    users.update_user(db, identity, profile.id, "cy@sitehub.io", "Cy", "site_manager")

    assert _worker(db, profile.id) is None
    # Assignments and time logs go with the worker record
    assert db.query(WorkerAssignment).count() == 0
    assert db.query(TimeLog).count() == 0
    assert db.query(Profile).filter(Profile.id == profile.id).first().role == "site_manager"


def test_role_change_to_worker_creates_worker(db, make_user, identity):
    profile = make_user("site_manager", email="di@sitehub.io")

    users.update_user(db, identity, profile.id, "di@sitehub.io", "Di", "worker", phone="123")

    worker = _worker(db, profile.id)
    assert worker is not None
    assert worker.phone == "123"


def test_worker_update_changes_phone_and_email(db, make_user, identity):
    profile = make_user("worker", email="ed@sitehub.io")

    users.update_user(db, identity, profile.id, "edward@sitehub.io", "Edward", "worker", phone="999")

    assert _worker(db, profile.id).phone == "999"
    assert identity.authenticate("edward@sitehub.io", "password123") == profile.id


def test_bootstrap_admin_only_once(db, identity):
    first = users.ensure_bootstrap_admin(db, identity, "root@sitehub.io", "password123")
    second = users.ensure_bootstrap_admin(db, identity, "root2@sitehub.io", "password123")

    assert first is not None and first.role == "admin"
    assert second is None
    assert users.ensure_bootstrap_admin(db, identity, None, None) is None
