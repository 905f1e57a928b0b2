"""
Sites and what is held on them.
"""
import uuid
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..models.models import Item, Site, SiteItem, SiteManager
from .audit import compute_diff, create_audit_log
from .errors import ValidationFailed
from .ledger import get_active_site


logger = structlog.get_logger(__name__)


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Site name is required")
    return name


def list_sites(db: Session, site_ids: Optional[set] = None) -> list[Site]:
    q = db.query(Site).filter(Site.deleted_at.is_(None))
    if site_ids is not None:
        if not site_ids:
            return []
        q = q.filter(Site.id.in_(site_ids))
    return q.order_by(Site.name).all()


def sites_for_manager(db: Session, manager_id: uuid.UUID) -> list[Site]:
    return (
        db.query(Site)
        .join(SiteManager, SiteManager.site_id == Site.id)
        .filter(SiteManager.manager_id == manager_id, Site.deleted_at.is_(None))
        .order_by(Site.name)
        .all()
    )


def create_site(
    db: Session,
    name: str,
    location: str = "",
    description: str = "",
    actor_id: Optional[uuid.UUID] = None,
) -> Site:
    site = Site(name=_clean_name(name), location=(location or "").strip(), description=(description or "").strip())
    db.add(site)
    db.flush()
    create_audit_log(db, "site", site.id, "CREATE", actor_id=actor_id, source="api")
    db.commit()
    db.refresh(site)
    logger.info("site.created", site_id=str(site.id))
    return site


def update_site(
    db: Session,
    site_id: uuid.UUID,
    name: str,
    location: str = "",
    description: str = "",
    actor_id: Optional[uuid.UUID] = None,
) -> Site:
    site = get_active_site(db, site_id)
    before = {"name": site.name, "location": site.location, "description": site.description}
    site.name = _clean_name(name)
    site.location = (location or "").strip()
    site.description = (description or "").strip()
    after = {"name": site.name, "location": site.location, "description": site.description}
    create_audit_log(db, "site", site.id, "UPDATE", actor_id=actor_id, source="api", changes_json=compute_diff(before, after))
    db.commit()
    db.refresh(site)
    return site


def site_items(db: Session, site_id: uuid.UUID, limit: int = 50, offset: int = 0) -> tuple[list[SiteItem], int]:
    """Active ledger rows of a site, one page at a time, plus the full count."""
    q = (
        db.query(SiteItem)
        .join(Item, Item.id == SiteItem.item_id)
        .filter(
            SiteItem.site_id == site_id,
            SiteItem.deleted_at.is_(None),
            Item.deleted_at.is_(None),
        )
    )
    total = q.count()
    rows = q.options(joinedload(SiteItem.item)).order_by(Item.name).limit(limit).offset(offset).all()
    return rows, total


def site_item_count(db: Session, site_ids: Optional[set] = None) -> int:
    q = (
        db.query(func.count(SiteItem.id))
        .select_from(SiteItem)
        .join(Item, Item.id == SiteItem.item_id)
        .filter(SiteItem.deleted_at.is_(None), Item.deleted_at.is_(None))
    )
    if site_ids is not None:
        if not site_ids:
            return 0
        q = q.filter(SiteItem.site_id.in_(site_ids))
    return q.scalar() or 0
