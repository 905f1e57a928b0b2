import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..models.models import Transfer
from ..schemas.transfers import TransferCreate, TransferResponse
from ..services import transfers as transfer_service
from ..services.assignments import ensure_site_access


router = APIRouter(prefix="/transfers", tags=["transfers"])


def _transfer_to_dict(t: Transfer) -> dict:
    return {
        "id": t.id,
        "item_id": t.item_id,
        "item_name": t.item.name if t.item else t.item_name,
        "from_site_id": t.from_site_id,
        "from_label": transfer_service.endpoint_label(t.from_site_id, t.from_site_name, t.from_site),
        "to_site_id": t.to_site_id,
        "to_label": transfer_service.endpoint_label(t.to_site_id, t.to_site_name, t.to_site),
        "quantity": t.quantity,
        "transferred_by": t.transferred_by,
        "transferred_by_name": t.transferred_by_profile.full_name if t.transferred_by_profile else None,
        "created_at": t.created_at,
    }


@router.get("")
def list_transfers(
    site_id: Optional[uuid.UUID] = None,
    item_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    if site_id and not session.is_admin:
        ensure_site_access(db, session, site_id)
    limit = min(max(1, limit), 200)
    page = max(1, page)
    rows = transfer_service.list_transfers(db, site_id=site_id, item_id=item_id, limit=limit, offset=(page - 1) * limit)
    return {"items": [_transfer_to_dict(t) for t in rows], "page": page, "limit": limit}


@router.post("", response_model=TransferResponse)
def create_transfer(
    body: TransferCreate,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin", "site_manager")),
):
    if not session.is_admin:
        # Managers move stock only between their own sites and storage
        for site_id in (body.from_site_id, body.to_site_id):
            if site_id:
                ensure_site_access(db, session, site_id)
    row = transfer_service.transfer(
        db,
        body.item_id,
        body.from_site_id,
        body.to_site_id,
        body.quantity,
        actor_id=session.user_id,
        actor_role=session.role,
    )
    db.refresh(row)
    return _transfer_to_dict(row)
