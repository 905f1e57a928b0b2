"""
Identity provider: owns login credentials (`auth_users`).

Profiles reference credentials by id only. The local provider keeps both in
the same database and joins the caller's transaction (flush, no commit), so a
failed profile insert takes the new credentials down with it.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ..auth.security import get_password_hash, verify_password
from ..db import get_db
from ..models.models import AuthUser
from .errors import Conflict, IdentityError


class IdentityProvider:
    def create_user(self, email: str, password: str) -> uuid.UUID:
        raise NotImplementedError

    def update_user(self, user_id: uuid.UUID, email: Optional[str] = None, password: Optional[str] = None) -> None:
        raise NotImplementedError

    def delete_user(self, user_id: uuid.UUID) -> None:
        raise NotImplementedError

    def set_active(self, user_id: uuid.UUID, active: bool) -> None:
        raise NotImplementedError

    def authenticate(self, email: str, password: str) -> Optional[uuid.UUID]:
        raise NotImplementedError


class LocalIdentityProvider(IdentityProvider):
    def __init__(self, db: Session):
        self.db = db

    def _get(self, user_id: uuid.UUID) -> Optional[AuthUser]:
        return self.db.query(AuthUser).filter(AuthUser.id == user_id).first()

    def _email_taken(self, email: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        q = self.db.query(AuthUser).filter(AuthUser.email == email)
        if exclude_id:
            q = q.filter(AuthUser.id != exclude_id)
        return q.first() is not None

    def create_user(self, email: str, password: str) -> uuid.UUID:
        email = email.strip().lower()
        if self._email_taken(email):
            raise Conflict("A user with this email already exists")
        row = AuthUser(email=email, password_hash=get_password_hash(password))
        self.db.add(row)
        self.db.flush()
        return row.id

    def update_user(self, user_id: uuid.UUID, email: Optional[str] = None, password: Optional[str] = None) -> None:
        row = self._get(user_id)
        if row is None:
            raise IdentityError("Credentials not found for user")
        if email:
            email = email.strip().lower()
            if self._email_taken(email, exclude_id=user_id):
                raise Conflict("A user with this email already exists")
            row.email = email
        if password:
            row.password_hash = get_password_hash(password)
        self.db.flush()

    def delete_user(self, user_id: uuid.UUID) -> None:
        # Already gone counts as deprovisioned
        row = self._get(user_id)
        if row is not None:
            self.db.delete(row)
            self.db.flush()

    def set_active(self, user_id: uuid.UUID, active: bool) -> None:
        row = self._get(user_id)
        if row is not None:
            row.is_active = active
            self.db.flush()

    def authenticate(self, email: str, password: str) -> Optional[uuid.UUID]:
        row = self.db.query(AuthUser).filter(AuthUser.email == email.strip().lower()).first()
        if row is None or not row.is_active or not verify_password(password, row.password_hash):
            return None
        row.last_login_at = datetime.now(timezone.utc)
        self.db.flush()
        return row.id


def get_identity_provider(db: Session = Depends(get_db)) -> IdentityProvider:
    return LocalIdentityProvider(db)
