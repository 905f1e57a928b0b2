import pytest

from sitehub.models.models import AuditLog, Site, Transfer
from sitehub.services import ledger, transfers
from sitehub.services.audit import verify_integrity
from sitehub.services.errors import InsufficientQuantity, NotFound, ValidationFailed
from sitehub.services.trash import purge, trash_site


@pytest.fixture()
def stocked(db, make_site, make_item, make_user):
    """Site A holds 10 of X, site B holds none."""
    admin = make_user("admin")
    a, b, item = make_site("Site A"), make_site("Site B"), make_item("Item X", quantity=20)
    ledger.add_quantity(db, a.id, item.id, 10)
    db.commit()
    return admin, a, b, item


def test_site_to_site_transfer(db, stocked):
    admin, a, b, item = stocked

    t = transfers.transfer(db, item.id, a.id, b.id, 4, actor_id=admin.id)

    assert ledger.get_active_row(db, a.id, item.id).quantity == 6
    assert ledger.get_active_row(db, b.id, item.id).quantity == 4
    rows = db.query(Transfer).all()
    assert len(rows) == 1
    assert rows[0].id == t.id
    assert rows[0].quantity == 4
    assert rows[0].item_name == "Item X"
    assert rows[0].from_site_name == "Site A"
    assert db.query(AuditLog).filter(AuditLog.action == "TRANSFER", AuditLog.entity_id == t.id).count() == 1


def test_full_transfer_deletes_source_row(db, stocked):
    admin, a, b, item = stocked

    transfers.transfer(db, item.id, a.id, b.id, 10, actor_id=admin.id)

    assert ledger.get_active_row(db, a.id, item.id) is None
    assert ledger.get_active_row(db, b.id, item.id).quantity == 10


def test_storage_round_trip_conserves_total(db, stocked):
    admin, a, b, item = stocked
    before = ledger.item_totals(db, item.id)["total"]

    transfers.transfer(db, item.id, None, b.id, 5, actor_id=admin.id)
    transfers.transfer(db, item.id, a.id, None, 3, actor_id=admin.id)

    totals = ledger.item_totals(db, item.id)
    assert totals["storage"] == 20 - 5 + 3
    assert totals["sites"] == {str(a.id): 7, str(b.id): 5}
    assert totals["total"] == before


def test_insufficient_source_rolls_everything_back(db, stocked):
    admin, a, b, item = stocked

    with pytest.raises(InsufficientQuantity):
        transfers.transfer(db, item.id, a.id, b.id, 11, actor_id=admin.id)

    assert db.query(Transfer).count() == 0
    assert ledger.get_active_row(db, a.id, item.id).quantity == 10
    assert ledger.get_active_row(db, b.id, item.id) is None


def test_failure_after_debit_rolls_back_debit(db, stocked, monkeypatch):
    admin, a, b, item = stocked

    def broken_credit(*args, **kwargs):
        raise RuntimeError("destination write failed")

    monkeypatch.setattr(ledger, "add_quantity", broken_credit)
    with pytest.raises(RuntimeError):
        transfers.transfer(db, item.id, a.id, b.id, 4, actor_id=admin.id)

    assert db.query(Transfer).count() == 0
    assert db.query(AuditLog).filter(AuditLog.action == "TRANSFER").count() == 0
    assert ledger.get_active_row(db, a.id, item.id).quantity == 10


@pytest.mark.parametrize(
    "source,dest",
    [
        ("a", "a"),
        (None, None),
    ],
)
def test_invalid_endpoints(db, stocked, source, dest):
    admin, a, b, item = stocked
    ids = {"a": a.id, None: None}
    with pytest.raises(ValidationFailed):
        transfers.transfer(db, item.id, ids[source], ids[dest], 1, actor_id=admin.id)


def test_trashed_destination_is_rejected(db, stocked):
    admin, a, b, item = stocked
    trash_site(db, b.id, actor_id=admin.id)

    with pytest.raises(NotFound):
        transfers.transfer(db, item.id, a.id, b.id, 1, actor_id=admin.id)
    assert ledger.get_active_row(db, a.id, item.id).quantity == 10


def test_history_survives_site_purge(db, stocked, identity, storage):
    admin, a, b, item = stocked
    transfers.transfer(db, item.id, a.id, b.id, 4, actor_id=admin.id)
    trash_site(db, b.id, actor_id=admin.id)
    purge(db, "sites", b.id, identity, storage, actor_id=admin.id)

    assert db.query(Site).filter(Site.id == b.id).first() is None
    t = transfers.list_transfers(db, item_id=item.id)[0]
    assert t.to_site_id is None
    assert transfers.endpoint_label(t.to_site_id, t.to_site_name, t.to_site) == "Site B"
    assert transfers.endpoint_label(t.from_site_id, t.from_site_name, t.from_site) == "Site A"


def test_list_transfers_filters_by_site(db, stocked, make_site):
    admin, a, b, item = stocked
    c = make_site("Site C")
    transfers.transfer(db, item.id, a.id, b.id, 1, actor_id=admin.id)
    transfers.transfer(db, item.id, None, c.id, 1, actor_id=admin.id)

    assert len(transfers.list_transfers(db)) == 2
    assert len(transfers.list_transfers(db, site_id=c.id)) == 1
    assert len(transfers.list_transfers(db, site_id=a.id)) == 1


def test_transfer_audit_entry_is_tamper_evident(db, stocked):
    admin, a, b, item = stocked
    t = transfers.transfer(db, item.id, a.id, b.id, 4, actor_id=admin.id)
    db.expire_all()

    entry = db.query(AuditLog).filter(AuditLog.entity_id == t.id).one()
    assert verify_integrity(entry)

    entry.context = {**entry.context, "quantity": 40}
    assert not verify_integrity(entry)
