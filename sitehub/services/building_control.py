"""
Building-control inspection reports.

A report belongs to a site and holds notes plus any number of photos. Photo
objects live in the `building-control-photos` bucket and are removed from
storage when their row is deleted.
"""
import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy.orm import Session, joinedload, selectinload

from ..models.models import BuildingControl, BuildingControlPhoto
from ..storage.provider import BUILDING_CONTROL_BUCKET, StorageProvider
from .errors import NotFound
from .ledger import get_active_site
from .photos import store_photo


logger = structlog.get_logger(__name__)


class PhotoUpload:
    """Raw upload handed in by the route layer."""

    def __init__(self, data: bytes, filename: str, notes: str = ""):
        self.data = data
        self.filename = filename
        self.notes = notes


def get_report(db: Session, report_id: uuid.UUID) -> BuildingControl:
    report = db.query(BuildingControl).filter(BuildingControl.id == report_id).first()
    if report is None:
        raise NotFound("Report not found")
    return report


def list_reports(db: Session, site_id: uuid.UUID) -> list[BuildingControl]:
    get_active_site(db, site_id)
    return (
        db.query(BuildingControl)
        .options(
            joinedload(BuildingControl.created_by_profile),
            selectinload(BuildingControl.photos).joinedload(BuildingControlPhoto.created_by_profile),
        )
        .filter(BuildingControl.site_id == site_id)
        .order_by(BuildingControl.created_at.desc())
        .all()
    )


def _store(storage: StorageProvider, site_id: uuid.UUID, upload: PhotoUpload, stored: list) -> tuple[str, str]:
    path, url = store_photo(storage, BUILDING_CONTROL_BUCKET, upload.data, upload.filename, prefix=str(site_id))
    stored.append(path)
    return path, url


def _discard(storage: StorageProvider, paths: Iterable[str]) -> None:
    for path in paths:
        storage.delete(BUILDING_CONTROL_BUCKET, path)


def create_report(
    db: Session,
    storage: StorageProvider,
    site_id: uuid.UUID,
    notes: str,
    photos: Optional[list[PhotoUpload]] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> BuildingControl:
    """Create a report with its photos. Uploaded objects are removed again if anything fails."""
    get_active_site(db, site_id)
    stored: list[str] = []
    try:
        report = BuildingControl(site_id=site_id, notes=(notes or "").strip(), created_by=actor_id)
        db.add(report)
        for upload in photos or []:
            path, url = _store(storage, site_id, upload, stored)
            report.photos.append(
                BuildingControlPhoto(photo_key=path, photo_url=url, notes=(upload.notes or "").strip(), created_by=actor_id)
            )
        db.commit()
    except Exception:
        db.rollback()
        _discard(storage, stored)
        raise
    db.refresh(report)
    logger.info("building_control.created", report_id=str(report.id), site_id=str(site_id), photos=len(stored))
    return report


def update_notes(db: Session, report_id: uuid.UUID, notes: str) -> BuildingControl:
    report = get_report(db, report_id)
    report.notes = (notes or "").strip()
    db.commit()
    db.refresh(report)
    return report


def add_photo(
    db: Session,
    storage: StorageProvider,
    report_id: uuid.UUID,
    upload: PhotoUpload,
    actor_id: Optional[uuid.UUID] = None,
) -> BuildingControlPhoto:
    report = get_report(db, report_id)
    stored: list[str] = []
    try:
        path, url = _store(storage, report.site_id, upload, stored)
        photo = BuildingControlPhoto(
            building_control_id=report.id,
            photo_key=path,
            photo_url=url,
            notes=(upload.notes or "").strip(),
            created_by=actor_id,
        )
        db.add(photo)
        db.commit()
    except Exception:
        db.rollback()
        _discard(storage, stored)
        raise
    db.refresh(photo)
    return photo


def delete_photo(db: Session, storage: StorageProvider, photo_id: uuid.UUID) -> None:
    photo = db.query(BuildingControlPhoto).filter(BuildingControlPhoto.id == photo_id).first()
    if photo is None:
        raise NotFound("Photo not found")
    key = photo.photo_key
    db.delete(photo)
    db.commit()
    storage.delete(BUILDING_CONTROL_BUCKET, key)
    logger.info("building_control.photo_deleted", photo_id=str(photo_id))


def delete_report(db: Session, storage: StorageProvider, report_id: uuid.UUID) -> None:
    """Delete a report, its photo rows and their stored objects."""
    report = get_report(db, report_id)
    keys = [p.photo_key for p in report.photos]
    db.delete(report)
    db.commit()
    _discard(storage, keys)
    logger.info("building_control.deleted", report_id=str(report_id), photos=len(keys))
