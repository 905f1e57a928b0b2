import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def _active_only(column: str):
    """Partial-index predicate shared by PostgreSQL and SQLite."""
    clause = text(f"{column} IS NULL")
    return {"postgresql_where": clause, "sqlite_where": clause}


class AuthUser(Base):
    """Login credentials, owned by the identity provider"""
    __tablename__ = "auth_users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the AuthUser row; no FK so the identity store can live elsewhere
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # admin|site_manager|worker
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)

    worker = relationship("Worker", back_populates="profile", uselist=False, cascade="all, delete-orphan", passive_deletes=True)


class LoginSession(Base):
    """One row per login; revoked at logout or when the user is trashed"""
    __tablename__ = "login_sessions"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Site(Base):
    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(500), default="")
    description: Mapped[str] = mapped_column(String(2000), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)


class Item(Base):
    """Catalog entry; `quantity` is the stock held in storage (no site)"""
    __tablename__ = "items"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)  # equipment|material
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    photo_url: Mapped[Optional[str]] = mapped_column(String(1024))
    photo_key: Mapped[Optional[str]] = mapped_column(String(1024))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_items_quantity_non_negative"),
    )


class SiteItem(Base):
    """Ledger row: quantity of one item held at one site"""
    __tablename__ = "site_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    deleted_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))

    item = relationship("Item")
    site = relationship("Site")
    deleted_by_profile = relationship("Profile", foreign_keys=[deleted_by])

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_site_items_quantity_positive"),
        Index("uq_site_items_active_pair", "site_id", "item_id", unique=True, **_active_only("deleted_at")),
    )


class Transfer(Base):
    """Immutable movement record; a NULL site means the storage pool"""
    __tablename__ = "transfers"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="SET NULL"), index=True)
    from_site_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="SET NULL"), index=True)
    to_site_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="SET NULL"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    transferred_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    # Names captured at transfer time so history survives permanent deletes
    item_name: Mapped[Optional[str]] = mapped_column(String(255))
    from_site_name: Mapped[Optional[str]] = mapped_column(String(255))
    to_site_name: Mapped[Optional[str]] = mapped_column(String(255))

    item = relationship("Item")
    from_site = relationship("Site", foreign_keys=[from_site_id])
    to_site = relationship("Site", foreign_keys=[to_site_id])
    transferred_by_profile = relationship("Profile", foreign_keys=[transferred_by])

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transfers_quantity_positive"),
    )


class Worker(Base):
    __tablename__ = "workers"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    phone: Mapped[str] = mapped_column(String(50), default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="off")  # working|off|sick
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = relationship("Profile", back_populates="worker")


class WorkerAssignment(Base):
    __tablename__ = "worker_assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    site_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    removed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    worker = relationship("Worker")
    site = relationship("Site")
    assigned_by_profile = relationship("Profile", foreign_keys=[assigned_by])

    __table_args__ = (
        Index("uq_worker_assignments_active_worker", "worker_id", unique=True, **_active_only("removed_at")),
    )


class SiteManager(Base):
    __tablename__ = "site_managers"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    manager_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    manager = relationship("Profile")
    site = relationship("Site")

    __table_args__ = (
        UniqueConstraint("site_id", "manager_id", name="uq_site_manager"),
    )


class TimeLog(Base):
    __tablename__ = "time_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    worker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    site_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="SET NULL"))
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    total_hours: Mapped[Optional[float]] = mapped_column(Float)

    site = relationship("Site")

    __table_args__ = (
        Index("uq_time_logs_open_worker", "worker_id", unique=True, **_active_only("clock_out")),
        Index("idx_time_logs_worker_clock_in", "worker_id", "clock_in"),
    )


class BuildingControl(Base):
    """Building-control inspection report for a site"""
    __tablename__ = "building_control"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    notes: Mapped[str] = mapped_column(Text, default="")
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by_profile = relationship("Profile", foreign_keys=[created_by])
    photos = relationship(
        "BuildingControlPhoto",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="BuildingControlPhoto.created_at",
    )


class BuildingControlPhoto(Base):
    __tablename__ = "building_control_photos"

    id: Mapped[uuid.UUID] = uuid_pk()
    building_control_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("building_control.id", ondelete="CASCADE"), nullable=False, index=True)
    photo_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    photo_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="")
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    report = relationship("BuildingControl", back_populates="photos")
    created_by_profile = relationship("Profile", foreign_keys=[created_by])


class AuditLog(Base):
    """Append-only audit log for inventory, time and user actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # transfer|site_item|time_log|user|site|item
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|DELETE|RESTORE|PURGE|TRANSFER|CLOCK_IN|CLOCK_OUT
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_actor', 'actor_id', 'timestamp_utc'),
    )
