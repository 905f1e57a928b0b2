import uuid
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..models.models import Profile
from ..schemas.users import UserCreate, UserResponse, UserUpdate
from ..services import trash, users as user_service
from ..services.identity import IdentityProvider, get_identity_provider


router = APIRouter(prefix="/users", tags=["users"])


def _user_to_dict(p: Profile) -> dict:
    worker = p.worker
    return {
        "id": p.id,
        "email": p.email,
        "full_name": p.full_name,
        "role": p.role,
        "phone": worker.phone if worker else None,
        "worker_status": worker.status if worker else None,
        "created_at": p.created_at,
    }


@router.get("", response_model=List[UserResponse])
def list_users(
    role: Optional[Literal["admin", "site_manager", "worker"]] = None,
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin", "site_manager")),
):
    return [_user_to_dict(p) for p in user_service.list_users(db, role)]


@router.post("", response_model=UserResponse)
def create_user(
    body: UserCreate,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    session: AuthSession = Depends(require_roles("admin")),
):
    profile = user_service.create_user(
        db, identity, body.email, body.password, body.full_name, body.role, phone=body.phone, actor_id=session.user_id
    )
    return _user_to_dict(profile)


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    session: AuthSession = Depends(require_roles("admin")),
):
    profile = user_service.update_user(
        db, identity, user_id, body.email, body.full_name, body.role, phone=body.phone, actor_id=session.user_id
    )
    return _user_to_dict(profile)


@router.delete("/{user_id}")
def delete_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    session: AuthSession = Depends(require_roles("admin")),
):
    trash.trash_user(db, identity, user_id, actor_id=session.user_id)
    return {"message": "User moved to trash"}
