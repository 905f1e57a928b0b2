"""
Item catalog (the storage view).

An item's own `quantity` is the stock in storage. Editing that number
directly is a stock correction, not a transfer, and is audited as an UPDATE.
"""
import uuid
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..models.models import Item
from ..storage.provider import ITEM_PHOTOS_BUCKET, StorageProvider
from . import ledger
from .audit import compute_diff, create_audit_log
from .errors import LedgerConflict, ValidationFailed
from .photos import store_photo


logger = structlog.get_logger(__name__)

ITEM_TYPES = ("equipment", "material")


def _validate(name: str, item_type: str, quantity: int) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Item name is required")
    if item_type not in ITEM_TYPES:
        raise ValidationFailed("Item type must be 'equipment' or 'material'")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationFailed("Quantity must be zero or a positive whole number")
    return name


def list_items(
    db: Session,
    item_type: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Item], int]:
    query = db.query(Item).filter(Item.deleted_at.is_(None))
    if item_type:
        query = query.filter(Item.item_type == item_type)
    if q:
        query = query.filter(Item.name.ilike(f"%{q}%"))
    total = query.count()
    return query.order_by(Item.name).limit(limit).offset(offset).all(), total


def item_counts(db: Session) -> dict:
    rows = (
        db.query(Item.item_type, func.count(Item.id))
        .filter(Item.deleted_at.is_(None))
        .group_by(Item.item_type)
        .all()
    )
    counts = {t: 0 for t in ITEM_TYPES}
    for item_type, n in rows:
        counts[item_type] = n
    counts["total"] = sum(counts[t] for t in ITEM_TYPES)
    return counts


def create_item(
    db: Session,
    name: str,
    item_type: str,
    quantity: int = 0,
    actor_id: Optional[uuid.UUID] = None,
) -> Item:
    item = Item(name=_validate(name, item_type, quantity), item_type=item_type, quantity=quantity)
    db.add(item)
    db.flush()
    create_audit_log(db, "item", item.id, "CREATE", actor_id=actor_id, source="api", context={"quantity": quantity})
    db.commit()
    db.refresh(item)
    logger.info("item.created", item_id=str(item.id), item_type=item_type)
    return item


def _apply_update(db: Session, item_id: uuid.UUID, name: str, item_type: str, quantity: int, actor_id) -> Item:
    item = ledger.get_active_item(db, item_id)
    before = {"name": item.name, "item_type": item.item_type, "quantity": item.quantity}
    item.name = name
    item.item_type = item_type
    item.quantity = quantity
    db.flush()
    after = {"name": item.name, "item_type": item.item_type, "quantity": item.quantity}
    create_audit_log(db, "item", item.id, "UPDATE", actor_id=actor_id, source="api", changes_json=compute_diff(before, after))
    return item


def update_item(
    db: Session,
    item_id: uuid.UUID,
    name: str,
    item_type: str,
    quantity: int,
    actor_id: Optional[uuid.UUID] = None,
) -> Item:
    name = _validate(name, item_type, quantity)
    item = ledger.run_with_retry(db, _apply_update, item_id, name, item_type, quantity, actor_id)
    db.refresh(item)
    return item


def set_item_photo(
    db: Session,
    storage: StorageProvider,
    item_id: uuid.UUID,
    data: bytes,
    original_name: str,
) -> Item:
    """Upload a new photo for the item, replacing (and deleting) any previous one."""
    item = ledger.get_active_item(db, item_id)
    path, url = store_photo(storage, ITEM_PHOTOS_BUCKET, data, original_name, prefix=str(item.id))
    previous = item.photo_key
    item.photo_key = path
    item.photo_url = url
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        storage.delete(ITEM_PHOTOS_BUCKET, path)
        raise LedgerConflict("Item changed while saving; please retry")
    except Exception:
        db.rollback()
        storage.delete(ITEM_PHOTOS_BUCKET, path)
        raise
    if previous and previous != path:
        storage.delete(ITEM_PHOTOS_BUCKET, previous)
    db.refresh(item)
    logger.info("item.photo_set", item_id=str(item.id), path=path)
    return item
