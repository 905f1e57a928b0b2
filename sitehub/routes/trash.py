import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..services import trash as trash_service
from ..services.identity import IdentityProvider, get_identity_provider
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/trash", tags=["trash"])


def _deleted_at(row) -> str | None:
    return row.deleted_at.isoformat() if row.deleted_at else None


@router.get("")
def list_trash(db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    data = trash_service.list_trash(db)
    return {
        "sites": [{"id": str(s.id), "name": s.name, "location": s.location, "deleted_at": _deleted_at(s)} for s in data["sites"]],
        "items": [{"id": str(i.id), "name": i.name, "item_type": i.item_type, "deleted_at": _deleted_at(i)} for i in data["items"]],
        "site_items": [
            {
                "id": str(r.id),
                "site_id": str(r.site_id),
                "site_name": r.site.name if r.site else None,
                "item_id": str(r.item_id),
                "item_name": r.item.name if r.item else None,
                "quantity": r.quantity,
                "deleted_by_name": r.deleted_by_profile.full_name if r.deleted_by_profile else None,
                "deleted_at": _deleted_at(r),
            }
            for r in data["site_items"]
        ],
        "users": [
            {"id": str(u.id), "email": u.email, "full_name": u.full_name, "role": u.role, "deleted_at": _deleted_at(u)}
            for u in data["users"]
        ],
    }


@router.post("/{kind}/{entity_id}/restore")
def restore(
    kind: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    session: AuthSession = Depends(require_roles("admin")),
):
    row = trash_service.restore(db, kind, entity_id, identity=identity, actor_id=session.user_id)
    return {"message": "Restored", "id": str(row.id)}


@router.delete("/{kind}/{entity_id}")
def purge(
    kind: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    storage: StorageProvider = Depends(get_storage),
    session: AuthSession = Depends(require_roles("admin")),
):
    trash_service.purge(db, kind, entity_id, identity, storage, actor_id=session.user_id)
    return {"message": "Permanently deleted"}


@router.delete("")
def empty_trash(
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    storage: StorageProvider = Depends(get_storage),
    session: AuthSession = Depends(require_roles("admin")),
):
    return trash_service.empty_trash(db, identity, storage, actor_id=session.user_id)
