import io
import json
import os
import time

import pytest

import admin.backups as backups
from admin.backups import BackupError, backup_path
from conftest import make_supplier, make_user
from models import db, Backup, Supplier, User


# ---------- users ----------
def test_users_list_is_admin_only(client, staff, auth):
    assert client.get("/api/admin/users", headers=auth(staff)).status_code == 403


def test_users_list_filters_and_pages(client, admin, staff, supplier_user, auth):
    body = client.get("/api/admin/users?role=staff", headers=auth(admin)).get_json()
    assert [u["email"] for u in body["users"]] == ["staff@brewops.lk"]

    body = client.get("/api/admin/users?search=grower", headers=auth(admin)).get_json()
    assert body["pagination"]["total"] == 1

    body = client.get("/api/admin/users?limit=2&page=1", headers=auth(admin)).get_json()
    assert body["pagination"] == {"total": 3, "page": 1, "limit": 2, "pages": 2}


def test_create_user(client, manager, auth):
    payload = {
        "name": "New Clerk",
        "email": "clerk@brewops.lk",
        "password": "longenough",
        "role": "staff",
        "phone": "0771234567",
    }
    resp = client.post("/api/admin/users", json=payload, headers=auth(manager))
    assert resp.status_code == 201
    assert resp.get_json()["user"]["status"] == "active"

    dup = client.post("/api/admin/users", json=payload, headers=auth(manager))
    assert dup.status_code == 400


def test_create_user_requires_long_password(client, admin, auth):
    resp = client.post(
        "/api/admin/users",
        json={"name": "Short", "email": "s@brewops.lk", "password": "short", "role": "staff"},
        headers=auth(admin),
    )
    assert resp.status_code == 400
    assert resp.get_json()["errors"]["password"] == "Password must be at least 8 characters"


def test_patch_user(client, admin, staff, auth):
    resp = client.patch(
        f"/api/admin/users/{staff.id}", json={"name": "Renamed", "role": "manager"}, headers=auth(admin)
    )
    assert resp.status_code == 200
    assert resp.get_json()["user"]["role"] == "manager"

    taken = client.patch(
        f"/api/admin/users/{staff.id}", json={"email": "admin@brewops.lk"}, headers=auth(admin)
    )
    assert taken.status_code == 400

    empty = client.patch(f"/api/admin/users/{staff.id}", json={}, headers=auth(admin))
    assert empty.status_code == 400

    assert client.patch("/api/admin/users/999", json={"name": "X"}, headers=auth(admin)).status_code == 404


def test_delete_is_soft_and_not_self(client, admin, staff, auth):
    assert client.delete(f"/api/admin/users/{admin.id}", headers=auth(admin)).status_code == 400

    assert client.delete(f"/api/admin/users/{staff.id}", headers=auth(admin)).status_code == 200
    u = db.session.get(User, staff.id)
    assert u.is_active is False
    assert u.status == "inactive"


def test_status_change(client, admin, staff, auth):
    resp = client.put(f"/api/admin/users/{staff.id}/status", json={"status": "pending"}, headers=auth(admin))
    assert resp.status_code == 200
    assert db.session.get(User, staff.id).is_active is False

    bad = client.put(f"/api/admin/users/{staff.id}/status", json={"status": "banned"}, headers=auth(admin))
    assert bad.status_code == 400


def test_change_password_bumps_token_version(client, staff, auth):
    headers = auth(staff)
    wrong = client.post(
        "/api/admin/users/change-password",
        json={"oldPassword": "nope", "newPassword": "brandnew1"},
        headers=headers,
    )
    assert wrong.status_code == 400

    short = client.post(
        "/api/admin/users/change-password",
        json={"oldPassword": "Password123", "newPassword": "short"},
        headers=headers,
    )
    assert short.status_code == 400

    ok = client.post(
        "/api/admin/users/change-password",
        json={"oldPassword": "Password123", "newPassword": "brandnew1"},
        headers=headers,
    )
    assert ok.status_code == 200
    assert db.session.get(User, staff.id).check_password("brandnew1")
    # the old token is no longer accepted
    assert client.get("/api/auth/user", headers=headers).status_code == 403


# ---------- backups ----------
def test_backup_create_list_download(client, admin, app, auth):
    resp = client.post("/api/backup/create", headers=auth(admin))
    assert resp.status_code == 201
    filename = resp.get_json()["backup"]["filename"]
    assert filename.startswith("brewops_backup_") and filename.endswith(".json")
    assert Backup.query.filter_by(filename=filename).count() == 1

    listed = client.get("/api/backup/list", headers=auth(admin)).get_json()["backups"]
    assert [b["filename"] for b in listed] == [filename]

    download = client.get(f"/api/backup/download/{filename}", headers=auth(admin))
    assert download.status_code == 200
    payload = json.loads(download.data)
    assert payload["format"] == "brewops-backup"
    assert payload["tables"]["users"][0]["email"] == "admin@brewops.lk"


def test_backup_rejects_bad_filenames(client, admin, auth):
    assert client.get("/api/backup/download/notes.txt", headers=auth(admin)).status_code == 400
    assert client.get("/api/backup/download/missing.json", headers=auth(admin)).status_code == 404


def test_backup_path_blocks_traversal(app):
    for name in ("../secrets.json", ".hidden.json", "sub/dir.json"):
        with pytest.raises(BackupError):
            backup_path(name)


def test_backup_is_admin_only(client, staff, auth):
    assert client.get("/api/backup/list", headers=auth(staff)).status_code == 403


def test_restore_requires_real_admin(client, manager, auth):
    resp = client.post("/api/backup/restore", json={"filename": "x.json"}, headers=auth(manager))
    assert resp.status_code == 403


def test_restore_round_trip(client, admin, auth):
    make_supplier(code="SUP00001", nic="111111111V")
    filename = client.post("/api/backup/create", headers=auth(admin)).get_json()["backup"]["filename"]

    make_supplier(code="SUP00002", nic="222222222V")
    make_user("staff", "late@brewops.lk")
    assert Supplier.query.count() == 2

    resp = client.post("/api/backup/restore", json={"filename": filename}, headers=auth(admin))
    assert resp.status_code == 200
    assert resp.get_json()["restored"]["suppliers"] == 1

    assert [s.supplier_id for s in Supplier.query.all()] == ["SUP00001"]
    assert User.query.filter_by(email="late@brewops.lk").count() == 0
    # backup metadata survives the restore
    assert Backup.query.filter_by(filename=filename).count() == 1


def test_restore_missing_and_corrupt(client, admin, app, auth):
    missing = client.post("/api/backup/restore", json={"filename": "gone.json"}, headers=auth(admin))
    assert missing.status_code == 404

    path = os.path.join(app.config["BACKUP_DIR"], "broken.json")
    with open(path, "w") as fh:
        fh.write("{not json")
    corrupt = client.post("/api/backup/restore", json={"filename": "broken.json"}, headers=auth(admin))
    assert corrupt.status_code == 400

    assert client.post("/api/backup/restore", json={}, headers=auth(admin)).status_code == 400


def test_delete_backup(client, admin, auth):
    filename = client.post("/api/backup/create", headers=auth(admin)).get_json()["backup"]["filename"]
    assert client.delete(f"/api/backup/{filename}", headers=auth(admin)).status_code == 200
    assert Backup.query.count() == 0
    assert client.delete(f"/api/backup/{filename}", headers=auth(admin)).status_code == 404


def test_cleanup_old_backups(client, admin, app, auth):
    filename = client.post("/api/backup/create", headers=auth(admin)).get_json()["backup"]["filename"]
    path = os.path.join(app.config["BACKUP_DIR"], filename)
    old = time.time() - 40 * 86400
    os.utime(path, (old, old))

    fresh = client.post("/api/backup/create", headers=auth(admin)).get_json()["backup"]["filename"]

    resp = client.post("/api/backup/cleanup", json={}, headers=auth(admin))
    assert resp.get_json()["deletedCount"] == 1
    assert not os.path.exists(path)
    assert [b.filename for b in Backup.query.all()] == [fresh]


# ---------- profile avatar via admin patch ----------
def test_patch_user_with_avatar(client, admin, staff, app, auth):
    data = {"name": "With Avatar", "avatar": (io.BytesIO(b"fake-png"), "face.png")}
    resp = client.patch(
        f"/api/admin/users/{staff.id}",
        data=data,
        headers=auth(admin),
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    avatar = resp.get_json()["user"]["avatar"]
    assert avatar.startswith("/static/uploads/face-")
    assert os.path.exists(os.path.join(app.config["UPLOAD_FOLDER"], avatar.rsplit("/", 1)[1]))


def test_failed_backup_leaves_no_file(app, admin, monkeypatch):
    def unserializable():
        return {"format": "brewops-backup", "tables": {"users": [{"id": 1}, {"id": object()}]}}

    monkeypatch.setattr(backups, "export_tables", unserializable)
    with pytest.raises(TypeError):
        backups.create_backup(admin)

    assert os.listdir(app.config["BACKUP_DIR"]) == []
    assert Backup.query.count() == 0
