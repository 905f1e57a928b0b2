"""
Pytest configuration and fixtures.

Each test gets a fresh in-memory SQLite database. The environment is set
before `sitehub` is imported so settings and the module-level engine pick it up.
"""
import io
import os
import tempfile
from datetime import datetime, timedelta, timezone

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOCAL_STORAGE_DIR"] = tempfile.mkdtemp(prefix="sitehub-files-")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sitehub.auth.security import create_access_token
from sitehub.db import Base, enable_sqlite_foreign_keys, get_db
from sitehub.main import app
from sitehub.models.models import Item, LoginSession, Site
from sitehub.services import users
from sitehub.services.identity import LocalIdentityProvider
from sitehub.storage.factory import get_storage
from sitehub.storage.local_provider import LocalStorageProvider


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def identity(db):
    return LocalIdentityProvider(db)


@pytest.fixture()
def storage(tmp_path):
    return LocalStorageProvider(base_dir=str(tmp_path / "storage"))


@pytest.fixture()
def client(session_factory, storage):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------- factories ----------
@pytest.fixture()
def make_user(db, identity):
    counter = {"n": 0}

    def _make(role="worker", full_name=None, email=None, password="password123", phone="555-0100"):
        counter["n"] += 1
        n = counter["n"]
        return users.create_user(
            db,
            identity,
            email=email or f"{role}{n}@sitehub.io",
            password=password,
            full_name=full_name or f"{role.title()} {n}",
            role=role,
            phone=phone,
        )

    return _make


@pytest.fixture()
def make_site(db):
    def _make(name="North Yard", location="Leeds"):
        site = Site(name=name, location=location, description="")
        db.add(site)
        db.commit()
        db.refresh(site)
        return site

    return _make


@pytest.fixture()
def make_item(db):
    def _make(name="Scaffold pole", item_type="equipment", quantity=0):
        item = Item(name=name, item_type=item_type, quantity=quantity)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _make


@pytest.fixture()
def auth_headers(db):
    """Open a login session for a profile and return its bearer header."""
    def _headers(profile):
        row = LoginSession(user_id=profile.id, expires_at=datetime.now(timezone.utc) + timedelta(days=1))
        db.add(row)
        db.commit()
        token = create_access_token(str(profile.id), str(row.id), role=profile.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


def image_bytes(fmt="PNG", size=(40, 30), color="red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def make_image():
    return image_bytes


@pytest.fixture()
def png_bytes():
    return image_bytes()
