from datetime import datetime, timedelta, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..config import settings
from ..models.models import LoginSession, Profile
from ..schemas.auth import LoginRequest, MeResponse, RefreshRequest, TokenResponse
from ..services.identity import IdentityProvider, get_identity_provider
from .security import (
    AuthSession,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_session,
    load_session,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def _issue_tokens(profile: Profile, session_id) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(profile.id), str(session_id), role=profile.role),
        refresh_token=create_refresh_token(str(profile.id), str(session_id)),
    )


@router.post("/login", response_model=TokenResponse)
def login(
    req: LoginRequest,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    user_id = identity.authenticate(req.email, req.password)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    profile = db.query(Profile).filter(Profile.id == user_id, Profile.deleted_at.is_(None)).first()
    if profile is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    now = datetime.now(timezone.utc)
    row = LoginSession(user_id=profile.id, expires_at=now + timedelta(seconds=settings.refresh_ttl_seconds))
    db.add(row)
    db.commit()
    logger.info("auth.login", user_id=str(profile.id), session_id=str(row.id), role=profile.role)
    return _issue_tokens(profile, row.id)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    session = load_session(db, payload)
    return _issue_tokens(session.profile, session.session_id)


@router.post("/logout")
def logout(session: AuthSession = Depends(get_current_session), db: Session = Depends(get_db)):
    row = db.query(LoginSession).filter(LoginSession.id == session.session_id).first()
    if row is not None and row.revoked_at is None:
        row.revoked_at = datetime.now(timezone.utc)
        db.commit()
    logger.info("auth.logout", user_id=str(session.user_id), session_id=str(session.session_id))
    return {"message": "Logged out"}


@router.get("/me", response_model=MeResponse)
def me(session: AuthSession = Depends(get_current_session)):
    profile = session.profile
    worker = profile.worker
    return MeResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        role=profile.role,
        phone=worker.phone if worker else None,
        worker_status=worker.status if worker else None,
    )
