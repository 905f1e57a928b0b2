"""
Inventory ledger.

Per-site quantities live in `site_items`; the storage pool is `items.quantity`.
Both carry a version column (SQLAlchemy `version_id_col`), so every UPDATE or
DELETE is conditional on the version read. A lost race surfaces as
`StaleDataError` at flush time and is retried by `run_with_retry`.

Functions here only flush. Committing is the caller's job, normally through
`run_with_retry`, so a multi-step workflow commits once.
"""
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..models.models import Item, Site, SiteItem
from .errors import InsufficientQuantity, LedgerConflict, NotFound, ValidationFailed


logger = structlog.get_logger(__name__)

T = TypeVar("T")


def run_with_retry(db: Session, operation: Callable[..., T], *args, attempts: Optional[int] = None, **kwargs) -> T:
    """Run `operation(db, *args, **kwargs)` and commit, retrying on ledger races.

    The whole operation is re-run from its first read, so it must not hold
    ORM objects from a previous attempt. An IntegrityError is retried once:
    a concurrent insert of the same active pair is gone on the re-run, a
    CHECK or foreign-key violation is not and propagates.
    """
    attempts = attempts or settings.ledger_retry_attempts
    integrity_retried = False
    for attempt in range(1, attempts + 1):
        try:
            result = operation(db, *args, **kwargs)
            db.commit()
            return result
        except StaleDataError as exc:
            db.rollback()
            _log_retry(operation, attempt, exc)
        except IntegrityError as exc:
            db.rollback()
            if integrity_retried:
                raise
            integrity_retried = True
            _log_retry(operation, attempt, exc)
        except Exception:
            db.rollback()
            raise
    raise LedgerConflict("Stock changed while saving; please retry")


def _log_retry(operation: Callable, attempt: int, exc: Exception) -> None:
    logger.warning(
        "ledger.conflict_retry",
        operation=getattr(operation, "__name__", str(operation)),
        attempt=attempt,
        error=type(exc).__name__,
    )


def require_positive(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationFailed("Quantity must be a positive whole number")
    return quantity


def get_active_site(db: Session, site_id: uuid.UUID) -> Site:
    site = db.query(Site).filter(Site.id == site_id, Site.deleted_at.is_(None)).first()
    if site is None:
        raise NotFound("Site not found")
    return site


def get_active_item(db: Session, item_id: uuid.UUID) -> Item:
    item = db.query(Item).filter(Item.id == item_id, Item.deleted_at.is_(None)).first()
    if item is None:
        raise NotFound("Item not found")
    return item


def get_active_row(db: Session, site_id: uuid.UUID, item_id: uuid.UUID) -> Optional[SiteItem]:
    return (
        db.query(SiteItem)
        .filter(
            SiteItem.site_id == site_id,
            SiteItem.item_id == item_id,
            SiteItem.deleted_at.is_(None),
        )
        .first()
    )


def add_quantity(db: Session, site_id: uuid.UUID, item_id: uuid.UUID, delta: int) -> SiteItem:
    """Increment the site's row for the item, inserting it when absent."""
    require_positive(delta)
    row = get_active_row(db, site_id, item_id)
    if row is not None:
        row.quantity = row.quantity + delta
    else:
        row = SiteItem(site_id=site_id, item_id=item_id, quantity=delta)
        db.add(row)
    db.flush()
    return row


def reduce_quantity(db: Session, site_id: uuid.UUID, item_id: uuid.UUID, delta: int) -> Optional[SiteItem]:
    """Decrement the site's row; a row reduced to zero is deleted and None returned."""
    require_positive(delta)
    row = get_active_row(db, site_id, item_id)
    if row is None:
        raise NotFound("Item is not held at this site")
    if delta > row.quantity:
        raise InsufficientQuantity(f"Only {row.quantity} available at this site")
    remaining = row.quantity - delta
    if remaining == 0:
        db.delete(row)
        db.flush()
        return None
    row.quantity = remaining
    db.flush()
    return row


def credit_storage(db: Session, item: Item, delta: int) -> Item:
    require_positive(delta)
    item.quantity = (item.quantity or 0) + delta
    db.flush()
    return item


def debit_storage(db: Session, item: Item, delta: int) -> Item:
    """Take stock out of storage. Unlike site rows, the item survives at zero."""
    require_positive(delta)
    available = item.quantity or 0
    if delta > available:
        raise InsufficientQuantity(f"Only {available} available in storage")
    item.quantity = available - delta
    db.flush()
    return item


def remove_from_site(db: Session, site_item_id: uuid.UUID, actor_id: Optional[uuid.UUID]) -> SiteItem:
    """Move a whole ledger row to the trash."""
    row = db.query(SiteItem).filter(SiteItem.id == site_item_id, SiteItem.deleted_at.is_(None)).first()
    if row is None:
        raise NotFound("Site item not found")
    row.deleted_at = datetime.now(timezone.utc)
    row.deleted_by = actor_id
    db.flush()
    return row


def item_totals(db: Session, item_id: uuid.UUID) -> dict:
    """Storage quantity, per-site active quantities and their sum for one item."""
    item = db.query(Item).filter(Item.id == item_id).first()
    if item is None:
        raise NotFound("Item not found")
    rows = db.query(SiteItem).filter(SiteItem.item_id == item_id, SiteItem.deleted_at.is_(None)).all()
    per_site = {str(r.site_id): r.quantity for r in rows}
    return {
        "storage": item.quantity or 0,
        "sites": per_site,
        "total": (item.quantity or 0) + sum(per_site.values()),
    }
