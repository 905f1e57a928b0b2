import uuid
from io import BytesIO

import pytest
from PIL import Image

from sitehub.models.models import BuildingControl, BuildingControlPhoto
from sitehub.services import building_control as reports
from sitehub.services.building_control import PhotoUpload
from sitehub.services.errors import NotFound, ValidationFailed
from sitehub.services.photos import optimize_image_bytes
from sitehub.storage.provider import BUILDING_CONTROL_BUCKET


def _keys(db):
    return [p.photo_key for p in db.query(BuildingControlPhoto).all()]


def test_create_report_with_photos(db, make_site, make_user, storage, png_bytes):
    admin = make_user("admin")
    site = make_site()

    report = reports.create_report(
        db,
        storage,
        site.id,
        "Footings inspected",
        [PhotoUpload(png_bytes, "north wall.png", "north"), PhotoUpload(png_bytes, "south.png")],
        actor_id=admin.id,
    )

    assert report.notes == "Footings inspected"
    assert len(report.photos) == 2
    assert report.photos[0].notes in ("north", "")
    for key in _keys(db):
        assert key.startswith(f"{site.id}/")
        assert storage.exists(BUILDING_CONTROL_BUCKET, key)


def test_bad_image_uploads_nothing(db, make_site, storage, png_bytes):
    site = make_site()

    with pytest.raises(ValidationFailed):
        reports.create_report(
            db, storage, site.id, "x", [PhotoUpload(png_bytes, "ok.png"), PhotoUpload(b"not an image", "bad.png")]
        )

    assert db.query(BuildingControl).count() == 0
    assert not any((storage.base_dir / BUILDING_CONTROL_BUCKET).rglob("*.*"))


def test_reports_listed_newest_first(db, make_site, storage):
    site = make_site()
    reports.create_report(db, storage, site.id, "first")
    reports.create_report(db, storage, site.id, "second")

    listed = reports.list_reports(db, site.id)
    assert {r.notes for r in listed} == {"first", "second"}
    assert listed[0].created_at >= listed[1].created_at


def test_edit_notes(db, make_site, storage):
    report = reports.create_report(db, storage, make_site().id, "draft")
    assert reports.update_notes(db, report.id, "  final ").notes == "final"


def test_add_and_delete_photo(db, make_site, storage, png_bytes):
    report = reports.create_report(db, storage, make_site().id, "r")

    photo = reports.add_photo(db, storage, report.id, PhotoUpload(png_bytes, "crack.png", "hairline crack"))
    assert photo.notes == "hairline crack"
    assert storage.exists(BUILDING_CONTROL_BUCKET, photo.photo_key)

    key = photo.photo_key
    reports.delete_photo(db, storage, photo.id)
    assert db.query(BuildingControlPhoto).count() == 0
    assert not storage.exists(BUILDING_CONTROL_BUCKET, key)


def test_delete_report_removes_all_photos(db, make_site, storage, png_bytes):
    report = reports.create_report(
        db, storage, make_site().id, "r", [PhotoUpload(png_bytes, "a.png"), PhotoUpload(png_bytes, "b.png")]
    )
    keys = _keys(db)
    assert len(keys) == 2

    reports.delete_report(db, storage, report.id)

    assert db.query(BuildingControl).count() == 0
    assert db.query(BuildingControlPhoto).count() == 0
    assert not any(storage.exists(BUILDING_CONTROL_BUCKET, k) for k in keys)


def test_missing_report(db, storage):
    with pytest.raises(NotFound):
        reports.delete_report(db, storage, uuid.uuid4())


def test_large_photo_is_downscaled_to_jpeg(make_image):
    data, content_type = optimize_image_bytes(make_image(size=(3200, 1600)))
    assert content_type == "image/jpeg"

    img = Image.open(BytesIO(data))
    assert max(img.size) == 1600


def test_exif_rotation_is_applied_before_reencoding():
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 clockwise on display
    buf = BytesIO()
    Image.new("RGB", (40, 20), "blue").save(buf, format="JPEG", exif=exif)

    data, content_type = optimize_image_bytes(buf.getvalue())

    assert content_type == "image/jpeg"
    img = Image.open(BytesIO(data))
    assert img.size == (20, 40)
    assert img.getexif().get(0x0112, 1) == 1
