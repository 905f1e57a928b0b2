import pytest

from sitehub.services import assignments, ledger


@pytest.fixture()
def admin(make_user):
    return make_user("admin", email="admin@sitehub.io", full_name="Ada Admin")


def test_login_me_logout(client, admin):
    resp = client.post("/auth/login", json={"email": "admin@sitehub.io", "password": "password123"})
    assert resp.status_code == 200
    tokens = resp.json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    me = client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["role"] == "admin"

    refreshed = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200

    assert client.post("/auth/logout", headers=headers).status_code == 200
    # The session is over for every token issued under it
    assert client.get("/auth/me", headers=headers).status_code == 401
    assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


def test_bad_credentials(client, admin):
    resp = client.post("/auth/login", json={"email": "admin@sitehub.io", "password": "wrong-password"})
    assert resp.status_code == 401


def test_requires_token(client):
    assert client.get("/sites").status_code == 401


def test_role_checks(client, make_user, auth_headers):
    worker = make_user("worker")
    manager = make_user("site_manager")

    assert client.post("/sites", json={"name": "X"}, headers=auth_headers(worker)).status_code == 403
    assert client.post("/sites", json={"name": "X"}, headers=auth_headers(manager)).status_code == 403
    assert client.get("/trash", headers=auth_headers(manager)).status_code == 403
    assert client.post("/time/clock-out", headers=auth_headers(manager)).status_code == 403


def test_site_crud(client, admin, auth_headers):
    h = auth_headers(admin)
    created = client.post("/sites", json={"name": "Depot", "location": "York"}, headers=h)
    assert created.status_code == 200
    site_id = created.json()["id"]

    updated = client.put(f"/sites/{site_id}", json={"name": "Main Depot", "location": "York"}, headers=h)
    assert updated.json()["name"] == "Main Depot"

    assert [s["name"] for s in client.get("/sites", headers=h).json()] == ["Main Depot"]
    assert client.delete(f"/sites/{site_id}", headers=h).status_code == 200
    assert client.get("/sites", headers=h).json() == []
    assert client.get(f"/sites/{site_id}", headers=h).status_code == 404


def test_site_items_add_reduce_remove(client, admin, auth_headers, make_site, make_item):
    h = auth_headers(admin)
    site, item = make_site(), make_item("Cement", "material")

    added = client.post(f"/sites/{site.id}/items", json={"item_id": str(item.id), "quantity": 10}, headers=h)
    assert added.status_code == 200
    row_id = added.json()["id"]
    assert added.json()["item_name"] == "Cement"

    assert client.post(f"/sites/{site.id}/items/{row_id}/reduce", json={"quantity": 0}, headers=h).status_code == 422
    over = client.post(f"/sites/{site.id}/items/{row_id}/reduce", json={"quantity": 11}, headers=h)
    assert over.status_code == 400

    reduced = client.post(f"/sites/{site.id}/items/{row_id}/reduce", json={"quantity": 4}, headers=h)
    assert reduced.json() == {"removed": False, "quantity": 6}

    listing = client.get(f"/sites/{site.id}/items", headers=h).json()
    assert listing["total"] == 1

    assert client.delete(f"/sites/{site.id}/items/{row_id}", headers=h).status_code == 200
    assert client.get(f"/sites/{site.id}/items", headers=h).json()["total"] == 0
    assert len(client.get("/trash", headers=h).json()["site_items"]) == 1


def test_manager_limited_to_managed_sites(client, db, make_user, make_site, make_item, auth_headers):
    manager = make_user("site_manager")
    mine, other = make_site("Mine"), make_site("Other")
    item = make_item()
    assignments.assign_manager(db, mine.id, manager.id)
    h = auth_headers(manager)

    assert [s["name"] for s in client.get("/sites/mine", headers=h).json()] == ["Mine"]
    assert [s["name"] for s in client.get("/sites", headers=h).json()] == ["Mine"]
    ok = client.post(f"/sites/{mine.id}/items", json={"item_id": str(item.id), "quantity": 1}, headers=h)
    assert ok.status_code == 200
    denied = client.post(f"/sites/{other.id}/items", json={"item_id": str(item.id), "quantity": 1}, headers=h)
    assert denied.status_code == 403


def test_transfer_endpoint(client, db, admin, auth_headers, make_site, make_item):
    h = auth_headers(admin)
    a, b, item = make_site("A"), make_site("B"), make_item("Generator")
    ledger.add_quantity(db, a.id, item.id, 10)
    db.commit()

    resp = client.post(
        "/transfers",
        json={"item_id": str(item.id), "from_site_id": str(a.id), "to_site_id": str(b.id), "quantity": 4},
        headers=h,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["from_label"] == "A" and body["to_label"] == "B"
    assert body["transferred_by_name"] == "Ada Admin"

    same = client.post(
        "/transfers",
        json={"item_id": str(item.id), "from_site_id": str(a.id), "to_site_id": str(a.id), "quantity": 1},
        headers=h,
    )
    assert same.status_code == 422

    history = client.get("/transfers", params={"site_id": str(b.id)}, headers=h).json()["items"]
    assert len(history) == 1 and history[0]["quantity"] == 4


def test_worker_time_flow(client, db, admin, make_user, make_site, auth_headers):
    worker = make_user("worker")
    site = make_site()
    ah, wh = auth_headers(admin), auth_headers(worker)

    assigned = client.post(f"/sites/{site.id}/workers", json={"worker_id": str(worker.id)}, headers=ah)
    assert assigned.status_code == 200

    assert client.post("/time/clock-in", json={"site_id": str(site.id)}, headers=wh).status_code == 200
    again = client.post("/time/clock-in", json={"site_id": str(site.id)}, headers=wh)
    assert again.status_code == 409

    summary = client.get("/time/summary", headers=wh).json()
    assert summary["status"] == "working"
    assert summary["open_log"] is not None

    out = client.post("/time/clock-out", headers=wh)
    assert out.status_code == 200
    assert out.json()["total_hours"] is not None
    assert client.post("/time/clock-out", headers=wh).status_code == 409
    assert len(client.get("/time/logs", headers=wh).json()) == 1

    dashboard = client.get("/dashboard", headers=wh).json()
    assert dashboard["role"] == "worker"
    assert [s["name"] for s in dashboard["sites"]] == [site.name]


def test_users_endpoints(client, admin, auth_headers):
    h = auth_headers(admin)
    created = client.post(
        "/users",
        json={"email": "new@sitehub.io", "password": "password123", "full_name": "New Hand", "role": "worker", "phone": "1"},
        headers=h,
    )
    assert created.status_code == 200
    user = created.json()
    assert user["worker_status"] == "off"

    dup = client.post(
        "/users",
        json={"email": "new@sitehub.io", "password": "password123", "full_name": "Again", "role": "worker"},
        headers=h,
    )
    assert dup.status_code == 409

    changed = client.put(
        f"/users/{user['id']}",
        json={"email": "new@sitehub.io", "full_name": "New Hand", "role": "site_manager"},
        headers=h,
    )
    assert changed.json()["worker_status"] is None

    assert client.delete(f"/users/{admin.id}", headers=h).status_code == 400
    assert client.delete(f"/users/{user['id']}", headers=h).status_code == 200
    trashed = client.get("/trash", headers=h).json()["users"]
    assert [u["id"] for u in trashed] == [user["id"]]

    restored = client.post(f"/trash/users/{user['id']}/restore", headers=h)
    assert restored.status_code == 200
    assert client.delete(f"/trash/widgets/{user['id']}", headers=h).status_code == 400


def test_item_photo_upload_and_serving(client, admin, auth_headers, make_item, png_bytes):
    h = auth_headers(admin)
    item = make_item("Drill")

    resp = client.post(f"/items/{item.id}/photo", files={"file": ("drill.png", png_bytes, "image/png")}, headers=h)
    assert resp.status_code == 200
    url = resp.json()["photo_url"]
    assert "/files/local/item-photos/" in url

    counts = client.get("/items/counts", headers=h).json()
    assert counts == {"equipment": 1, "material": 0, "total": 1}
    detail = client.get(f"/items/{item.id}", headers=h).json()
    assert detail["totals"]["total"] == 0


def test_building_control_endpoints(client, admin, auth_headers, make_site, png_bytes):
    h = auth_headers(admin)
    site = make_site()

    created = client.post(
        f"/sites/{site.id}/building-control",
        data={"notes": "Drainage check", "photo_notes": ["outfall"]},
        files=[("files", ("outfall.png", png_bytes, "image/png"))],
        headers=h,
    )
    assert created.status_code == 200
    report = created.json()
    assert report["created_by_name"] == "Ada Admin"
    assert [p["notes"] for p in report["photos"]] == ["outfall"]

    photo = client.post(
        f"/building-control/{report['id']}/photos",
        data={"notes": "manhole"},
        files={"file": ("mh.png", png_bytes, "image/png")},
        headers=h,
    )
    assert photo.status_code == 200

    assert client.delete(f"/building-control/photos/{photo.json()['id']}", headers=h).status_code == 200
    listed = client.get(f"/sites/{site.id}/building-control", headers=h).json()
    assert len(listed) == 1 and len(listed[0]["photos"]) == 1

    assert client.delete(f"/building-control/{report['id']}", headers=h).status_code == 200
    assert client.get(f"/sites/{site.id}/building-control", headers=h).json() == []


def test_admin_dashboard(client, admin, auth_headers, make_site, make_item, make_user):
    make_site()
    make_item("Sand", "material")
    make_user("worker")

    body = client.get("/dashboard", headers=auth_headers(admin)).json()
    assert body["sites"] == 1
    assert body["items"]["material"] == 1
    assert body["workers"]["off"] == 1


def test_request_id_is_echoed(client):
    resp = client.get("/", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"


def test_trashed_items_and_users_drop_out_of_listings(client, admin, auth_headers, make_item, make_user):
    h = auth_headers(admin)
    item = make_item("Ladder")
    worker = make_user("worker")

    assert client.delete(f"/items/{item.id}", headers=h).status_code == 200
    assert client.delete(f"/users/{worker.id}", headers=h).status_code == 200
    assert client.get("/items", headers=h).json()["total"] == 0
    assert [u["id"] for u in client.get("/users", headers=h).json()] == [str(admin.id)]

    client.post(f"/trash/items/{item.id}/restore", headers=h)
    client.post(f"/trash/users/{worker.id}/restore", headers=h)
    assert [i["id"] for i in client.get("/items", headers=h).json()["items"]] == [str(item.id)]
    assert {u["id"] for u in client.get("/users", headers=h).json()} == {str(admin.id), str(worker.id)}
