from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, get_current_session
from ..db import get_db
from ..services.dashboard import summary_for


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("")
def dashboard(db: Session = Depends(get_db), session: AuthSession = Depends(get_current_session)):
    return summary_for(db, session)
