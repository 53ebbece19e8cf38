from datetime import date

from conftest import make_supplier
from models import db, Delivery, Notification, Payment


def _create(client, headers, supplier, **overrides):
    payload = {
        "supplier_id": supplier.id,
        "quantity": 100,
        "delivery_date": date.today().isoformat(),
    }
    payload.update(overrides)
    return client.post("/api/deliveries", json=payload, headers=headers)


def test_create_uses_supplier_rate(client, supplier, staff, auth):
    resp = _create(client, auth(staff), supplier, quantity=12.5)
    assert resp.status_code == 201
    d = resp.get_json()["delivery"]
    assert d["rate_per_kg"] == 150.0
    assert d["total_amount"] == 1875.0
    assert d["status"] == "pending"
    assert d["supplier_code"] == "SUP00001"
    assert d["created_by"] == staff.id


def test_create_with_explicit_rate(client, supplier, staff, auth):
    d = _create(client, auth(staff), supplier, quantity=10, rate_per_kg=200).get_json()["delivery"]
    assert d["total_amount"] == 2000.0


def test_create_unknown_supplier(client, staff, auth):
    resp = client.post(
        "/api/deliveries",
        json={"supplier_id": 42, "quantity": 5, "delivery_date": "2024-05-01"},
        headers=auth(staff),
    )
    assert resp.status_code == 404


def test_create_validates_quantity_and_date(client, supplier, staff, auth):
    resp = _create(client, auth(staff), supplier, quantity=0)
    assert resp.status_code == 400
    assert "quantity" in resp.get_json()["errors"]

    resp = _create(client, auth(staff), supplier, delivery_date="01/05/2024")
    assert resp.status_code == 400
    assert "delivery_date" in resp.get_json()["errors"]


def test_supplier_cannot_record_deliveries(client, supplier, supplier_user, auth):
    assert _create(client, auth(supplier_user), supplier).status_code == 403


def test_supplier_lists_only_own(client, supplier, supplier_user, staff, auth):
    other = make_supplier(code="SUP00002", nic="222222222V")
    _create(client, auth(staff), supplier)
    _create(client, auth(staff), other)

    staff_view = client.get("/api/deliveries", headers=auth(staff)).get_json()
    assert staff_view["pagination"]["total"] == 2

    own = client.get("/api/deliveries", headers=auth(supplier_user)).get_json()
    assert [d["supplier_id"] for d in own["deliveries"]] == [supplier.id]

    other_id = Delivery.query.filter_by(supplier_id=other.id).one().id
    assert client.get(f"/api/deliveries/{other_id}", headers=auth(supplier_user)).status_code == 404


def test_update_recomputes_total(client, supplier, staff, auth):
    did = _create(client, auth(staff), supplier, quantity=10).get_json()["delivery"]["id"]
    resp = client.put(f"/api/deliveries/{did}", json={"quantity": 20}, headers=auth(staff))
    assert resp.status_code == 200
    assert resp.get_json()["delivery"]["total_amount"] == 3000.0


def test_update_blank_rate_falls_back_to_supplier_rate(client, supplier, staff, auth):
    did = _create(client, auth(staff), supplier, quantity=100, rate_per_kg=200).get_json()["delivery"]["id"]
    resp = client.put(f"/api/deliveries/{did}", json={"rate_per_kg": ""}, headers=auth(staff))
    assert resp.status_code == 200
    body = resp.get_json()["delivery"]
    assert body["rate_per_kg"] == 150.0
    assert body["total_amount"] == 15000.0


def test_update_rejects_unknown_status(client, supplier, staff, auth):
    did = _create(client, auth(staff), supplier).get_json()["delivery"]["id"]
    resp = client.put(f"/api/deliveries/{did}", json={"status": "lost"}, headers=auth(staff))
    assert resp.status_code == 400


def test_approve_notifies_supplier(client, supplier, supplier_user, staff, admin, auth):
    did = _create(client, auth(staff), supplier).get_json()["delivery"]["id"]

    assert client.put(f"/api/deliveries/{did}/approve", headers=auth(staff)).status_code == 403

    resp = client.put(f"/api/deliveries/{did}/approve", headers=auth(admin))
    assert resp.status_code == 200
    assert resp.get_json()["delivery"]["status"] == "approved"

    note = Notification.query.filter_by(recipient_id=supplier_user.id).one()
    assert note.type == "DELIVERY_APPROVED"

    again = client.put(f"/api/deliveries/{did}/approve", headers=auth(admin))
    assert again.status_code == 400


def test_reject_appends_reason(client, supplier, staff, manager, auth):
    did = _create(client, auth(staff), supplier, notes="wet leaves").get_json()["delivery"]["id"]
    resp = client.put(
        f"/api/deliveries/{did}/reject", json={"reason": "quality below grade"}, headers=auth(manager)
    )
    assert resp.status_code == 200
    assert db.session.get(Delivery, did).notes == "wet leaves\nquality below grade"


def test_delete_blocked_by_payments(client, supplier, staff, auth):
    did = _create(client, auth(staff), supplier).get_json()["delivery"]["id"]
    db.session.add(
        Payment(supplier_id=supplier.id, delivery_id=did, amount=100, payment_date=date.today())
    )
    db.session.commit()
    assert client.delete(f"/api/deliveries/{did}", headers=auth(staff)).status_code == 400


def test_delete(client, supplier, staff, auth):
    did = _create(client, auth(staff), supplier).get_json()["delivery"]["id"]
    assert client.delete(f"/api/deliveries/{did}", headers=auth(staff)).status_code == 200
    assert db.session.get(Delivery, did) is None


def test_monthly_report(client, supplier, staff, auth):
    _create(client, auth(staff), supplier, quantity=10, delivery_date="2024-03-05")
    _create(client, auth(staff), supplier, quantity=30, delivery_date="2024-03-31")
    _create(client, auth(staff), supplier, quantity=99, delivery_date="2024-04-01")

    resp = client.get("/api/deliveries/monthly-report?year=2024&month=3", headers=auth(staff))
    stats = resp.get_json()["stats"]
    assert stats["total_deliveries"] == 2
    assert stats["total_quantity"] == 40.0

    assert client.get("/api/deliveries/monthly-report", headers=auth(staff)).status_code == 400
