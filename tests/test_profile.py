import io

from models import db, User


def test_get_profile(client, supplier_user, auth):
    body = client.get("/api/profile", headers=auth(supplier_user)).get_json()["user"]
    assert body["email"] == "grower@brewops.lk"
    assert body["effectiveRole"] == "supplier"
    assert "view_deliveries" in body["permissions"]


def test_update_profile(client, staff, auth):
    resp = client.put(
        "/api/profile",
        json={"name": "Staff Member", "phone": "+94771234567", "address": "Factory quarters"},
        headers=auth(staff),
    )
    assert resp.status_code == 200
    u = db.session.get(User, staff.id)
    assert (u.name, u.phone, u.address) == ("Staff Member", "+94771234567", "Factory quarters")


def test_update_profile_validation(client, staff, auth):
    resp = client.put("/api/profile", json={"phone": "123"}, headers=auth(staff))
    assert resp.status_code == 400
    assert "phone" in resp.get_json()["errors"]


def test_update_profile_email_must_be_unique(client, staff, admin, auth):
    resp = client.put("/api/profile", json={"email": "ADMIN@brewops.lk"}, headers=auth(staff))
    assert resp.status_code == 400


def test_avatar_type_checked(client, staff, auth):
    resp = client.put(
        "/api/profile",
        data={"avatar": (io.BytesIO(b"MZ"), "tool.exe")},
        headers=auth(staff),
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Unsupported image type"


def test_profile_requires_login(client):
    assert client.get("/api/profile").status_code == 401
