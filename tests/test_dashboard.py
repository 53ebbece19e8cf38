from datetime import date

from models import db, Delivery, Inventory, Payment


def _seed(supplier):
    db.session.add(
        Delivery(
            supplier_id=supplier.id,
            delivery_date=date.today(),
            quantity=40,
            rate_per_kg=150,
            total_amount=6000,
            status="pending",
        )
    )
    db.session.add(Inventory(inventoryid="INV-1", quantity=600))
    db.session.add(Payment(supplier_id=supplier.id, amount=2000, payment_date=date.today(), status="pending"))
    db.session.add(Payment(supplier_id=supplier.id, amount=1000, payment_date=date.today(), status="completed"))
    db.session.commit()


def test_admin_summary(client, admin, supplier, auth):
    _seed(supplier)
    body = client.get("/api/dashboard/summary", headers=auth(admin)).get_json()
    assert body["user_role"] == "admin"
    data = body["data"]
    assert data["users"]["total"] == 2
    assert data["suppliers"] == {"total": 1, "active": 1}
    assert data["inventory"]["total_weight_kg"] == 600.0
    assert data["inventory"]["is_low"] is True
    assert data["payments"]["pending"] == 1
    assert data["payments"]["monthly_revenue"] == 1000.0
    assert data["alerts"]["low_stock_count"] == 1


def test_manager_gets_admin_view(client, manager, auth):
    body = client.get("/api/dashboard/summary", headers=auth(manager)).get_json()
    assert body["user_role"] == "admin"
    assert "alerts" in body["data"]


def test_staff_summary(client, staff, supplier, auth):
    _seed(supplier)
    data = client.get("/api/dashboard/summary", headers=auth(staff)).get_json()["data"]
    assert data["deliveries_today"] == {"count": 1, "total_quantity": 40.0, "total_amount": 6000.0}
    assert data["pending_deliveries"] == 1
    assert data["pending_payments"] == {"count": 1, "amount": 2000.0}


def test_supplier_summary(client, supplier_user, supplier, auth):
    _seed(supplier)
    data = client.get("/api/dashboard/summary", headers=auth(supplier_user)).get_json()["data"]
    assert data["supplier"]["supplier_id"] == "SUP00001"
    assert data["deliveries"]["total"] == 1
    assert len(data["deliveries"]["recent"]) == 1
    assert data["payments"] == {"paid_amount": 1000.0, "pending_amount": 2000.0}


def test_supplier_without_profile(client, supplier_user, auth):
    data = client.get("/api/dashboard/summary", headers=auth(supplier_user)).get_json()["data"]
    assert data["supplier"] is None
