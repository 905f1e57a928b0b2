import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import LoginSession, Profile


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)

ROLES = ("admin", "site_manager", "worker")


@dataclass
class AuthSession:
    """Identity of the caller for one request.

    Built from a validated access token and its live LoginSession row;
    routes and services receive it explicitly instead of reading globals.
    """
    session_id: uuid.UUID
    profile: Profile

    @property
    def user_id(self) -> uuid.UUID:
        return self.profile.id

    @property
    def role(self) -> str:
        return self.profile.role

    @property
    def is_admin(self) -> bool:
        return self.profile.role == "admin"


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, session_id: str, role: Optional[str] = None) -> str:
    return _create_token(user_id, settings.jwt_ttl_seconds, extra={"sid": session_id, "role": role})


def create_refresh_token(user_id: str, session_id: str) -> str:
    return _create_token(user_id, settings.refresh_ttl_seconds, extra={"sid": session_id, "type": "refresh"})


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def _as_uuid(value) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def load_session(db: Session, payload: dict) -> AuthSession:
    """Resolve a decoded token to a live session and an active profile."""
    user_id = _as_uuid(payload.get("sub"))
    session_id = _as_uuid(payload.get("sid"))
    row = db.query(LoginSession).filter(LoginSession.id == session_id, LoginSession.user_id == user_id).first()
    if row is None or row.revoked_at is not None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session ended")
    expires_at = row.expires_at if row.expires_at.tzinfo else row.expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= datetime.now(timezone.utc):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None or profile.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    return AuthSession(session_id=session_id, profile=profile)


def get_current_session(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> AuthSession:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(creds.credentials)
    if payload.get("type") == "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return load_session(db, payload)


def require_roles(*allowed_roles: str):
    """Allow the request if the caller holds any of the given roles."""
    def _dep(session: AuthSession = Depends(get_current_session)) -> AuthSession:
        if session.role not in allowed_roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return session

    return _dep
