import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..schemas.items import ItemCounts, ItemCreate, ItemResponse
from ..services import items as item_service, ledger, trash
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/items", tags=["items"])


@router.get("")
def list_items(
    item_type: Optional[Literal["equipment", "material"]] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin", "site_manager")),
):
    """
    List items in storage with pagination

    Args:
        item_type: equipment or material
        q: Search on item name
        page: Page number (1-indexed)
        limit: Number of items per page (default 50, max 200)
    """
    limit = min(max(1, limit), 200)
    page = max(1, page)
    rows, total = item_service.list_items(db, item_type=item_type, q=q, limit=limit, offset=(page - 1) * limit)
    return {
        "items": [ItemResponse.model_validate(r).model_dump() for r in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


@router.get("/counts", response_model=ItemCounts)
def counts(db: Session = Depends(get_db), _=Depends(require_roles("admin", "site_manager"))):
    return item_service.item_counts(db)


@router.post("", response_model=ItemResponse)
def create_item(body: ItemCreate, db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("admin"))):
    return item_service.create_item(db, body.name, body.item_type, body.quantity, actor_id=session.user_id)


@router.get("/{item_id}")
def get_item(item_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_roles("admin", "site_manager"))):
    item = ledger.get_active_item(db, item_id)
    return {
        "item": ItemResponse.model_validate(item).model_dump(),
        "totals": ledger.item_totals(db, item_id),
    }


@router.put("/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: uuid.UUID,
    body: ItemCreate,
    db: Session = Depends(get_db),
    session: AuthSession = Depends(require_roles("admin")),
):
    return item_service.update_item(db, item_id, body.name, body.item_type, body.quantity, actor_id=session.user_id)


@router.delete("/{item_id}")
def delete_item(item_id: uuid.UUID, db: Session = Depends(get_db), session: AuthSession = Depends(require_roles("admin"))):
    trash.trash_item(db, item_id, actor_id=session.user_id)
    return {"message": "Item moved to trash"}


@router.post("/{item_id}/photo", response_model=ItemResponse)
async def upload_photo(
    item_id: uuid.UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_roles("admin")),
):
    data = await file.read()
    return item_service.set_item_photo(db, storage, item_id, data, file.filename or "photo")
