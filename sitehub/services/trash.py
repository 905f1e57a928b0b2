"""
Trash: soft delete, restore and permanent delete.

Sites, items, profiles and site items are trashed by setting `deleted_at`
(site items also record `deleted_by`). Restore clears the tombstone;
purge removes the row and any stored photos.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.orm import Session, joinedload

from ..models.models import BuildingControl, BuildingControlPhoto, Item, Profile, Site, SiteItem
from ..storage.provider import BUILDING_CONTROL_BUCKET, ITEM_PHOTOS_BUCKET, StorageProvider
from . import ledger
from .assignments import end_site_assignments
from .audit import create_audit_log
from .errors import DomainError, NotFound, ValidationFailed
from .identity import IdentityProvider
from .users import revoke_sessions


logger = structlog.get_logger(__name__)

KINDS = {
    "sites": Site,
    "items": Item,
    "site_items": SiteItem,
    "users": Profile,
}
AUDIT_ENTITY = {"sites": "site", "items": "item", "site_items": "site_item", "users": "user"}


def _model(kind: str):
    model = KINDS.get(kind)
    if model is None:
        raise ValidationFailed(f"Unknown trash kind '{kind}'")
    return model


def _now() -> datetime:
    return datetime.now(timezone.utc)


def trash_site(db: Session, site_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Site:
    """Trash a site and release its workers in the same transaction."""
    site = ledger.get_active_site(db, site_id)
    site.deleted_at = _now()
    released = end_site_assignments(db, site.id)
    create_audit_log(
        db, "site", site.id, "DELETE", actor_id=actor_id, source="api",
        context={"workers_released": released} if released else None,
    )
    db.commit()
    logger.info("site.trashed", site_id=str(site.id), workers_released=released)
    return site


def trash_item(db: Session, item_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Item:
    item = ledger.get_active_item(db, item_id)
    item.deleted_at = _now()
    create_audit_log(db, "item", item.id, "DELETE", actor_id=actor_id, source="api")
    db.commit()
    return item


def _trash_site_item(db: Session, site_item_id: uuid.UUID, actor_id: Optional[uuid.UUID]) -> SiteItem:
    row = ledger.remove_from_site(db, site_item_id, actor_id)
    create_audit_log(
        db, "site_item", row.id, "DELETE", actor_id=actor_id, source="api",
        context={"site_id": row.site_id, "item_id": row.item_id, "quantity": row.quantity},
    )
    return row


def trash_site_item(db: Session, site_item_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> SiteItem:
    return ledger.run_with_retry(db, _trash_site_item, site_item_id, actor_id)


def trash_user(
    db: Session,
    identity: IdentityProvider,
    user_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
) -> Profile:
    if actor_id is not None and user_id == actor_id:
        raise ValidationFailed("You cannot delete your own account")
    profile = db.query(Profile).filter(Profile.id == user_id, Profile.deleted_at.is_(None)).first()
    if profile is None:
        raise NotFound("User not found")
    profile.deleted_at = _now()
    identity.set_active(user_id, False)
    revoked = revoke_sessions(db, user_id)
    create_audit_log(db, "user", user_id, "DELETE", actor_id=actor_id, source="api")
    db.commit()
    logger.info("user.trashed", user_id=str(user_id), sessions_revoked=revoked)
    return profile


def list_trash(db: Session) -> dict:
    return {
        "sites": db.query(Site).filter(Site.deleted_at.isnot(None)).order_by(Site.deleted_at.desc()).all(),
        "items": db.query(Item).filter(Item.deleted_at.isnot(None)).order_by(Item.deleted_at.desc()).all(),
        "site_items": (
            db.query(SiteItem)
            .options(
                joinedload(SiteItem.item),
                joinedload(SiteItem.site),
                joinedload(SiteItem.deleted_by_profile),
            )
            .filter(SiteItem.deleted_at.isnot(None))
            .order_by(SiteItem.deleted_at.desc())
            .all()
        ),
        "users": db.query(Profile).filter(Profile.deleted_at.isnot(None)).order_by(Profile.deleted_at.desc()).all(),
    }


def _trashed(db: Session, kind: str, entity_id: uuid.UUID):
    model = _model(kind)
    row = db.query(model).filter(model.id == entity_id, model.deleted_at.isnot(None)).first()
    if row is None:
        raise NotFound("Not found in trash")
    return row


def _restore_site_item(db: Session, site_item_id: uuid.UUID) -> SiteItem:
    row = _trashed(db, "site_items", site_item_id)
    active = ledger.get_active_row(db, row.site_id, row.item_id)
    if active is not None:
        # The pair is held again; fold the trashed quantity into the live row
        active.quantity = active.quantity + row.quantity
        db.delete(row)
        db.flush()
        return active
    row.deleted_at = None
    row.deleted_by = None
    db.flush()
    return row


def _restore(
    db: Session,
    kind: str,
    entity_id: uuid.UUID,
    identity: Optional[IdentityProvider],
    actor_id: Optional[uuid.UUID],
):
    if kind == "site_items":
        row = _restore_site_item(db, entity_id)
    else:
        row = _trashed(db, kind, entity_id)
        row.deleted_at = None
        if kind == "users" and identity is not None:
            identity.set_active(row.id, True)
        db.flush()
    create_audit_log(db, AUDIT_ENTITY[kind], entity_id, "RESTORE", actor_id=actor_id, source="api")
    return row


def restore(
    db: Session,
    kind: str,
    entity_id: uuid.UUID,
    identity: Optional[IdentityProvider] = None,
    actor_id: Optional[uuid.UUID] = None,
):
    """Clear the tombstone and commit. Returns the live row (for site items,
    possibly the active row the trashed quantity was folded into)."""
    _model(kind)
    row = ledger.run_with_retry(db, _restore, kind, entity_id, identity, actor_id)
    logger.info("trash.restored", kind=kind, entity_id=str(entity_id))
    return row


def _remove_site_photos(db: Session, storage: StorageProvider, site_id: uuid.UUID) -> None:
    photos = (
        db.query(BuildingControlPhoto)
        .join(BuildingControl, BuildingControl.id == BuildingControlPhoto.building_control_id)
        .filter(BuildingControl.site_id == site_id)
        .all()
    )
    for photo in photos:
        storage.delete(BUILDING_CONTROL_BUCKET, photo.photo_key)


def purge(
    db: Session,
    kind: str,
    entity_id: uuid.UUID,
    identity: IdentityProvider,
    storage: StorageProvider,
    actor_id: Optional[uuid.UUID] = None,
) -> None:
    """Permanently delete one trashed entity.

    Users are deprovisioned first; when that fails nothing local changes and
    the profile stays in the trash.
    """
    row = _trashed(db, kind, entity_id)
    try:
        if kind == "users":
            identity.delete_user(row.id)
        elif kind == "sites":
            _remove_site_photos(db, storage, row.id)
        elif kind == "items" and row.photo_key:
            storage.delete(ITEM_PHOTOS_BUCKET, row.photo_key)
        db.delete(row)
        create_audit_log(db, AUDIT_ENTITY[kind], entity_id, "PURGE", actor_id=actor_id, source="api")
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("trash.purged", kind=kind, entity_id=str(entity_id))


def empty_trash(
    db: Session,
    identity: IdentityProvider,
    storage: StorageProvider,
    actor_id: Optional[uuid.UUID] = None,
) -> dict:
    """Purge everything in the trash. Users that fail to deprovision stay."""
    purged = {kind: 0 for kind in KINDS}
    failed = []
    # Site items first so site/item cascades never race them
    for kind in ("site_items", "sites", "items", "users"):
        model = KINDS[kind]
        ids = [r[0] for r in db.query(model.id).filter(model.deleted_at.isnot(None)).all()]
        for entity_id in ids:
            try:
                purge(db, kind, entity_id, identity, storage, actor_id)
                purged[kind] += 1
            except NotFound:
                # Already removed by a cascade from an earlier purge
                continue
            except DomainError as exc:
                logger.warning("trash.purge_failed", kind=kind, entity_id=str(entity_id), error=exc.detail)
                failed.append({"kind": kind, "id": str(entity_id), "detail": exc.detail})
    return {"purged": purged, "failed": failed}
