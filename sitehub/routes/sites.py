import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..models.models import SiteItem
from ..schemas.sites import SiteCreate, SiteItemAdd, SiteItemReduce, SiteItemResponse, SiteResponse
from ..services import ledger, sites as site_service, trash
from ..services.assignments import ensure_site_access, managed_site_ids, site_assignments, site_managers
from ..services.audit import create_audit_log
from ..services.errors import NotFound


router = APIRouter(prefix="/sites", tags=["sites"])


def _site_item_to_dict(row: SiteItem) -> dict:
    return {
        "id": row.id,
        "site_id": row.site_id,
        "item_id": row.item_id,
        "item_name": row.item.name if row.item else "",
        "item_type": row.item.item_type if row.item else "",
        "photo_url": row.item.photo_url if row.item else None,
        "quantity": row.quantity,
    }


@router.get("", response_model=List[SiteResponse])
def list_sites(db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("admin", "site_manager"))):
    if session.is_admin:
        return site_service.list_sites(db)
    return site_service.list_sites(db, managed_site_ids(db, session.user_id))


@router.get("/mine", response_model=List[SiteResponse])
def my_sites(db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("site_manager"))):
    return site_service.sites_for_manager(db, session.user_id)


@router.post("", response_model=SiteResponse)
def create_site(body: SiteCreate, db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("admin"))):
    return site_service.create_site(db, body.name, body.location, body.description, actor_id=session.user_id)


@router.get("/{site_id}")
def get_site(
    site_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    """Site with the first page of its items, its workers and its managers."""
    ensure_site_access(db, session, site_id)
    site = ledger.get_active_site(db, site_id)
    limit = min(max(1, limit), 200)
    rows, total = site_service.site_items(db, site_id, limit=limit, offset=max(0, offset))
    return {
        "site": SiteResponse.model_validate(site).model_dump(),
        "items": [_site_item_to_dict(r) for r in rows],
        "items_total": total,
        "workers": [
            {
                "assignment_id": str(a.id),
                "worker_id": str(a.worker_id),
                "full_name": a.worker.profile.full_name if a.worker and a.worker.profile else None,
                "status": a.worker.status if a.worker else None,
            }
            for a in site_assignments(db, site_id)
        ],
        "managers": [
            {"assignment_id": str(m.id), "manager_id": str(m.manager_id), "full_name": m.manager.full_name}
            for m in site_managers(db, site_id)
        ],
    }


@router.put("/{site_id}", response_model=SiteResponse)
def update_site(
    site_id: uuid.UUID,
    body: SiteCreate,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin")),
):
    return site_service.update_site(db, site_id, body.name, body.location, body.description, actor_id=session.user_id)


@router.delete("/{site_id}")
def delete_site(site_id: uuid.UUID, db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("admin"))):
    trash.trash_site(db, site_id, actor_id=session.user_id)
    return {"message": "Site moved to trash"}


# ---------- SITE ITEMS ----------
@router.get("/{site_id}/items")
def list_site_items(
    site_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    ensure_site_access(db, session, site_id)
    ledger.get_active_site(db, site_id)
    limit = min(max(1, limit), 200)
    rows, total = site_service.site_items(db, site_id, limit=limit, offset=max(0, offset))
    return {"items": [_site_item_to_dict(r) for r in rows], "total": total, "limit": limit, "offset": offset}


def _add(db: Session, site_id: uuid.UUID, item_id: uuid.UUID, quantity: int, actor_id: uuid.UUID) -> SiteItem:
    ledger.get_active_site(db, site_id)
    ledger.get_active_item(db, item_id)
    row = ledger.add_quantity(db, site_id, item_id, quantity)
    create_audit_log(
        db, "site_item", row.id, "UPDATE", actor_id=actor_id, source="api",
        context={"site_id": site_id, "item_id": item_id, "added": quantity},
    )
    return row


def _reduce(db: Session, site_id: uuid.UUID, site_item_id: uuid.UUID, quantity: int, actor_id: uuid.UUID):
    row = db.query(SiteItem).filter(
        SiteItem.id == site_item_id, SiteItem.site_id == site_id, SiteItem.deleted_at.is_(None)
    ).first()
    if row is None:
        raise NotFound("Site item not found")
    item_id = row.item_id
    remaining = ledger.reduce_quantity(db, site_id, item_id, quantity)
    create_audit_log(
        db, "site_item", site_item_id, "UPDATE" if remaining else "DELETE", actor_id=actor_id, source="api",
        context={"site_id": site_id, "item_id": item_id, "reduced": quantity},
    )
    return remaining


@router.post("/{site_id}/items", response_model=SiteItemResponse)
def add_site_item(
    site_id: uuid.UUID,
    body: SiteItemAdd,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    ensure_site_access(db, session, site_id)
    row = ledger.run_with_retry(db, _add, site_id, body.item_id, body.quantity, session.user_id)
    db.refresh(row)
    return _site_item_to_dict(row)


@router.post("/{site_id}/items/{site_item_id}/reduce")
def reduce_site_item(
    site_id: uuid.UUID,
    site_item_id: uuid.UUID,
    body: SiteItemReduce,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    ensure_site_access(db, session, site_id)
    row = ledger.run_with_retry(db, _reduce, site_id, site_item_id, body.quantity, session.user_id)
    if row is None:
        return {"removed": True, "quantity": 0}
    db.refresh(row)
    return {"removed": False, "quantity": row.quantity}


@router.delete("/{site_id}/items/{site_item_id}")
def remove_site_item(
    site_id: uuid.UUID,
    site_item_id: uuid.UUID,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    ensure_site_access(db, session, site_id)
    row = db.query(SiteItem).filter(SiteItem.id == site_item_id, SiteItem.site_id == site_id).first()
    if row is None:
        raise NotFound("Site item not found")
    trash.trash_site_item(db, site_item_id, actor_id=session.user_id)
    return {"message": "Item moved to trash"}
