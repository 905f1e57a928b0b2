import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ..auth.security import AuthSession, require_roles
from ..db import get_db
from ..models.models import BuildingControl, BuildingControlPhoto
from ..schemas.building_control import PhotoResponse, ReportNotesUpdate, ReportResponse
from ..services import building_control as reports
from ..services.building_control import PhotoUpload
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(tags=["building-control"])


def _photo_to_dict(p: BuildingControlPhoto) -> dict:
    return {
        "id": p.id,
        "photo_url": p.photo_url,
        "notes": p.notes or "",
        "created_by_name": p.created_by_profile.full_name if p.created_by_profile else None,
        "created_at": p.created_at,
    }


def _report_to_dict(r: BuildingControl) -> dict:
    return {
        "id": r.id,
        "site_id": r.site_id,
        "notes": r.notes or "",
        "created_by_name": r.created_by_profile.full_name if r.created_by_profile else None,
        "created_at": r.created_at,
        "updated_at": r.updated_at,
        "photos": [_photo_to_dict(p) for p in r.photos],
    }


@router.get("/sites/{site_id}/building-control", response_model=List[ReportResponse])
def list_reports(site_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    return [_report_to_dict(r) for r in reports.list_reports(db, site_id)]


@router.post("/sites/{site_id}/building-control", response_model=ReportResponse)
async def create_report(
    site_id: uuid.UUID,
    notes: str = Form(""),
    files: Optional[List[UploadFile]] = File(None),
    photo_notes: Optional[List[str]] = Form(None),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    session: AuthSession = Depends(require_roles("admin")),
):
    """Create a report. `photo_notes[i]` belongs to `files[i]`."""
    uploads = []
    for i, f in enumerate(files or []):
        caption = photo_notes[i] if photo_notes and i < len(photo_notes) else ""
        uploads.append(PhotoUpload(await f.read(), f.filename or "photo", caption))
    report = reports.create_report(db, storage, site_id, notes, uploads, actor_id=session.user_id)
    return _report_to_dict(report)


@router.put("/building-control/{report_id}", response_model=ReportResponse)
def update_report(
    report_id: uuid.UUID,
    body: ReportNotesUpdate,
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    return _report_to_dict(reports.update_notes(db, report_id, body.notes))


@router.delete("/building-control/photos/{photo_id}")
def delete_photo(
    photo_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_roles("admin")),
):
    reports.delete_photo(db, storage, photo_id)
    return {"message": "Photo deleted"}


@router.delete("/building-control/{report_id}")
def delete_report(
    report_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_roles("admin")),
):
    reports.delete_report(db, storage, report_id)
    return {"message": "Report deleted"}


@router.post("/building-control/{report_id}/photos", response_model=PhotoResponse)
async def add_photo(
    report_id: uuid.UUID,
    file: UploadFile = File(...),
    notes: str = Form(""),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    session: AuthSession = Depends(require_roles("admin")),
):
    upload = PhotoUpload(await file.read(), file.filename or "photo", notes)
    return _photo_to_dict(reports.add_photo(db, storage, report_id, upload, actor_id=session.user_id))
