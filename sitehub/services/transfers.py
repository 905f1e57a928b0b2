"""
Inventory transfers between sites and the storage pool.

A transfer records the movement, debits the source and credits the
destination in one database transaction. A NULL site on either side stands
for storage (the item's own quantity).
"""
import uuid
from typing import Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..models.models import Transfer
from . import ledger
from .audit import create_audit_log
from .errors import ValidationFailed


logger = structlog.get_logger(__name__)

STORAGE_LABEL = "Storage"


def _apply_transfer(
    db: Session,
    item_id: uuid.UUID,
    from_site_id: Optional[uuid.UUID],
    to_site_id: Optional[uuid.UUID],
    quantity: int,
    actor_id: Optional[uuid.UUID],
    actor_role: Optional[str] = None,
) -> Transfer:
    ledger.require_positive(quantity)
    if from_site_id is None and to_site_id is None:
        raise ValidationFailed("A transfer needs at least one site")
    if from_site_id == to_site_id:
        raise ValidationFailed("Source and destination must differ")

    item = ledger.get_active_item(db, item_id)
    from_site = ledger.get_active_site(db, from_site_id) if from_site_id else None
    to_site = ledger.get_active_site(db, to_site_id) if to_site_id else None

    transfer = Transfer(
        item_id=item.id,
        from_site_id=from_site_id,
        to_site_id=to_site_id,
        quantity=quantity,
        transferred_by=actor_id,
        item_name=item.name,
        from_site_name=from_site.name if from_site else None,
        to_site_name=to_site.name if to_site else None,
    )
    db.add(transfer)
    db.flush()

    if from_site_id:
        ledger.reduce_quantity(db, from_site_id, item.id, quantity)
    else:
        ledger.debit_storage(db, item, quantity)

    if to_site_id:
        ledger.add_quantity(db, to_site_id, item.id, quantity)
    else:
        ledger.credit_storage(db, item, quantity)

    create_audit_log(
        db,
        entity_type="transfer",
        entity_id=transfer.id,
        action="TRANSFER",
        actor_id=actor_id,
        actor_role=actor_role,
        source="api",
        context={
            "item_id": item.id,
            "from_site_id": from_site_id,
            "to_site_id": to_site_id,
            "quantity": quantity,
        },
    )
    return transfer


def transfer(
    db: Session,
    item_id: uuid.UUID,
    from_site_id: Optional[uuid.UUID],
    to_site_id: Optional[uuid.UUID],
    quantity: int,
    actor_id: Optional[uuid.UUID],
    actor_role: Optional[str] = None,
) -> Transfer:
    """Move `quantity` of an item and commit. All-or-nothing."""
    result = ledger.run_with_retry(
        db, _apply_transfer, item_id, from_site_id, to_site_id, quantity, actor_id, actor_role
    )
    logger.info(
        "transfer.completed",
        transfer_id=str(result.id),
        item_id=str(item_id),
        from_site_id=str(from_site_id) if from_site_id else None,
        to_site_id=str(to_site_id) if to_site_id else None,
        quantity=quantity,
    )
    return result


def list_transfers(
    db: Session,
    site_id: Optional[uuid.UUID] = None,
    item_id: Optional[uuid.UUID] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transfer]:
    query = db.query(Transfer).options(
        joinedload(Transfer.item),
        joinedload(Transfer.from_site),
        joinedload(Transfer.to_site),
        joinedload(Transfer.transferred_by_profile),
    )
    if site_id:
        query = query.filter(or_(Transfer.from_site_id == site_id, Transfer.to_site_id == site_id))
    if item_id:
        query = query.filter(Transfer.item_id == item_id)
    return query.order_by(Transfer.created_at.desc()).limit(limit).offset(offset).all()


def endpoint_label(site_id: Optional[uuid.UUID], snapshot_name: Optional[str], site) -> str:
    """Display name for one side of a transfer."""
    if site is not None:
        return site.name
    if site_id is None and snapshot_name is None:
        return STORAGE_LABEL
    return snapshot_name or "Deleted site"
