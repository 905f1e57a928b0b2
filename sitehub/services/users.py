"""
User management: credentials, profile and worker record move together.

Each operation is one transaction. Credentials come from the identity
provider, which joins that transaction.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..auth.security import ROLES
from ..models.models import LoginSession, Profile, Worker
from .audit import create_audit_log
from .errors import NotFound, ValidationFailed
from .identity import IdentityProvider


logger = structlog.get_logger(__name__)


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise ValidationFailed(f"Role must be one of: {', '.join(ROLES)}")


def get_profile(db: Session, user_id: uuid.UUID, include_deleted: bool = False) -> Profile:
    q = db.query(Profile).filter(Profile.id == user_id)
    if not include_deleted:
        q = q.filter(Profile.deleted_at.is_(None))
    profile = q.first()
    if profile is None:
        raise NotFound("User not found")
    return profile


def list_users(db: Session, role: Optional[str] = None) -> list[Profile]:
    q = db.query(Profile).filter(Profile.deleted_at.is_(None))
    if role:
        q = q.filter(Profile.role == role)
    return q.order_by(Profile.created_at.desc()).all()


def create_user(
    db: Session,
    identity: IdentityProvider,
    email: str,
    password: str,
    full_name: str,
    role: str,
    phone: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> Profile:
    _check_role(role)
    try:
        user_id = identity.create_user(email, password)
        profile = Profile(id=user_id, email=email.strip().lower(), full_name=full_name.strip(), role=role)
        db.add(profile)
        db.flush()
        if role == "worker":
            db.add(Worker(id=user_id, phone=phone or "", status="off"))
        create_audit_log(db, "user", user_id, "CREATE", actor_id=actor_id, source="api", context={"role": role})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(profile)
    logger.info("user.created", user_id=str(profile.id), role=role)
    return profile


def update_user(
    db: Session,
    identity: IdentityProvider,
    user_id: uuid.UUID,
    email: str,
    full_name: str,
    role: str,
    phone: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> Profile:
    """Update a user. Leaving the worker role deletes the Worker record
    (assignments and time logs cascade); joining it creates one."""
    _check_role(role)
    profile = get_profile(db, user_id)
    previous_role = profile.role
    try:
        identity.update_user(user_id, email=email)
        profile.email = email.strip().lower()
        profile.full_name = full_name.strip()
        profile.role = role

        worker = db.query(Worker).filter(Worker.id == user_id).first()
        if role != "worker" and worker is not None:
            db.delete(worker)
        elif role == "worker" and worker is None:
            db.add(Worker(id=user_id, phone=phone or "", status="off"))
        elif role == "worker":
            worker.phone = phone or ""
        create_audit_log(
            db, "user", user_id, "UPDATE", actor_id=actor_id, source="api",
            changes_json={"role": {"before": previous_role, "after": role}} if previous_role != role else None,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(profile)
    logger.info("user.updated", user_id=str(user_id), previous_role=previous_role, role=role)
    return profile


def revoke_sessions(db: Session, user_id: uuid.UUID) -> int:
    now = datetime.now(timezone.utc)
    rows = db.query(LoginSession).filter(LoginSession.user_id == user_id, LoginSession.revoked_at.is_(None)).all()
    for row in rows:
        row.revoked_at = now
    return len(rows)


def ensure_bootstrap_admin(db: Session, identity: IdentityProvider, email: Optional[str], password: Optional[str]) -> Optional[Profile]:
    """Create the first admin from configuration when no active admin exists."""
    if not email or not password:
        return None
    if db.query(Profile).filter(Profile.role == "admin", Profile.deleted_at.is_(None)).first() is not None:
        return None
    profile = create_user(db, identity, email, password, full_name="Administrator", role="admin")
    logger.info("user.bootstrap_admin_created", user_id=str(profile.id))
    return profile
