from datetime import date, timedelta

import pytest

from conftest import make_supplier
from models import db, Delivery, Inventory, Payment
from reports import pdf
from reports.service import dashboard_report, monthly_supplier_report, normalize_period


def _delivery(supplier, day, qty, rate=150):
    d = Delivery(
        supplier_id=supplier.id,
        delivery_date=day,
        quantity=qty,
        rate_per_kg=rate,
        total_amount=qty * rate,
    )
    db.session.add(d)
    db.session.commit()
    return d


# ---------- formatting ----------
def test_report_filename():
    assert pdf.report_filename("dashboard", date(2024, 7, 1)) == "brewops-dashboard-report-2024-07-01.pdf"


def test_formatters():
    assert pdf.format_currency(1234.5) == "LKR 1,234.50"
    assert pdf.format_kg(12000) == "12,000 kg"
    assert pdf.format_kg(12.25) == "12.25 kg"
    assert pdf.format_date("2024-03-09") == "March 9, 2024"
    assert pdf.format_date(None) == "-"


def test_inventory_recommendations():
    low = pdf.inventory_recommendations(7500)
    assert low[0] == ("URGENT: Inventory is below minimum required level.", "urgent")
    assert low[1] == ("Order at least 2,500 kg more raw leaves.", "urgent")
    assert pdf.inventory_recommendations(10000)[0] == ("Inventory levels are adequate.", "good")


@pytest.mark.parametrize(
    "deliveries,expected",
    [
        (25, "High supplier activity indicates strong supply chain performance."),
        (5, "Low supplier activity may require supplier engagement initiatives."),
        (15, "Supplier activity is at normal levels."),
    ],
)
def test_dashboard_recommendations_activity(deliveries, expected):
    stats = {
        "supplierStats": {"total_deliveries": deliveries},
        "inventoryStats": {"total_quantity": 20000, "low_stock_items": 0},
        "paymentStats": {"pending_amount": 0},
    }
    assert expected in pdf.dashboard_recommendations(stats)


def test_dashboard_recommendations_flags_problems():
    stats = {
        "supplierStats": {"total_deliveries": 12},
        "inventoryStats": {"total_quantity": 4000, "low_stock_items": 3},
        "paymentStats": {"pending_amount": 2500},
    }
    texts = [item[0] if isinstance(item, tuple) else item for item in pdf.dashboard_recommendations(stats)]
    assert texts[0].startswith("URGENT")
    assert "3 inventory items have low stock. Consider reordering." in texts
    assert "LKR 2,500.00 in pending payments requires attention." in texts


def test_inventory_health_and_pending_ratio():
    assert pdf.inventory_health(0) == "Good"
    assert pdf.inventory_health(2) == "Fair"
    assert pdf.inventory_health(3) == "Needs Attention"
    assert pdf.pending_ratio({"total_payments": 4, "pending_count": 1}) == 25.0
    assert pdf.pending_ratio({}) == 0.0


# ---------- document layout ----------
def test_table_repeats_across_pages():
    doc = pdf.PdfDocument("Long Table")
    doc.header(generated_on=date(2024, 1, 1))
    doc.table(["#", "Name"], [[i, f"Row {i}"] for i in range(150)])
    assert len(doc.pages) > 1
    data = doc.to_bytes()
    assert data.startswith(b"%PDF")


def test_builders_render_pdf_bytes():
    stats = {
        "period": "7d",
        "supplierStats": {"active_suppliers": 1, "total_deliveries": 2, "total_quantity": 80},
        "inventoryStats": {"total_items": 1, "total_quantity": 500, "low_stock_items": 1},
        "paymentStats": {"total_payments": 1, "pending_count": 1, "pending_amount": 100},
        "recentActivities": [
            {"date": "2024-01-02", "description": "Delivery from Estate - 40kg", "amount": 6000}
        ],
    }
    assert pdf.dashboard_report(stats).startswith(b"%PDF")
    assert pdf.supplier_report([{"supplier_id": "SUP00001", "name": "Estate", "rate": 150}], stats).startswith(
        b"%PDF"
    )


# ---------- aggregates ----------
def test_normalize_period():
    assert normalize_period("7d") == "7d"
    assert normalize_period("365d") == "30d"
    assert normalize_period(None) == "30d"


def test_dashboard_report_window(app):
    today = date(2024, 6, 30)
    s = make_supplier()
    _delivery(s, today - timedelta(days=3), 100)
    _delivery(s, today - timedelta(days=20), 50)
    _delivery(s, today - timedelta(days=60), 999)
    db.session.add(Inventory(inventoryid="INV-1", quantity=800))
    db.session.add(Inventory(inventoryid="INV-2", quantity=2500))
    db.session.add(Payment(supplier_id=s.id, amount=300, payment_date=today, status="completed"))
    db.session.add(Payment(supplier_id=s.id, amount=200, payment_date=today, status="pending"))
    db.session.commit()

    week = dashboard_report("7d", today=today)
    assert week["supplierStats"]["total_deliveries"] == 1
    assert week["supplierStats"]["active_suppliers"] == 1

    month = dashboard_report("30d", today=today)
    assert month["supplierStats"]["total_quantity"] == 150.0
    assert month["inventoryStats"] == {"total_items": 2, "total_quantity": 3300.0, "low_stock_items": 1}
    assert month["paymentStats"]["paid_amount"] == 300.0
    assert month["paymentStats"]["pending_count"] == 1
    assert month["recentActivities"][0]["description"] == "Delivery from Green Hills Estate - 100kg"


def test_monthly_supplier_report_ranking(app):
    a = make_supplier(code="SUP00001", name="A Estate", nic="111111111V")
    b = make_supplier(code="SUP00002", name="B Estate", nic="222222222V")
    _delivery(a, date(2024, 2, 3), 10)
    _delivery(b, date(2024, 2, 10), 100)
    _delivery(b, date(2024, 2, 10), 20)

    report = monthly_supplier_report(2024, 2)
    assert report["monthlyStats"]["total_deliveries"] == 3
    assert report["monthlyStats"]["first_delivery"] == "2024-02-03"
    assert report["monthlyStats"]["last_delivery"] == "2024-02-10"
    assert [r["supplier_name"] for r in report["supplierRanking"]] == ["B Estate", "A Estate"]
    assert report["supplierRanking"][0]["ranking"] == 1
    assert report["dailyBreakdown"][1]["daily_deliveries"] == 2


# ---------- routes ----------
def test_daily_supplier_report_route(client, staff, auth):
    s = make_supplier()
    _delivery(s, date(2024, 5, 4), 40)
    body = client.get("/api/reports/suppliers/daily/2024-05-04", headers=auth(staff)).get_json()
    assert body["deliveryStats"]["total_deliveries"] == 1
    assert body["supplierBreakdown"][0]["supplier_id"] == "SUP00001"

    bad = client.get("/api/reports/suppliers/daily/yesterday", headers=auth(staff))
    assert bad.status_code == 400


def test_monthly_route_rejects_bad_month(client, staff, auth):
    assert client.get("/api/reports/inventory/monthly/2024/13", headers=auth(staff)).status_code == 400


def test_reports_are_staff_only(client, supplier_user, auth):
    assert client.get("/api/reports/dashboard", headers=auth(supplier_user)).status_code == 403


def test_dashboard_route_default_period(client, staff, auth):
    body = client.get("/api/reports/dashboard?period=1y", headers=auth(staff)).get_json()
    assert body["period"] == "30d"


@pytest.mark.parametrize("report_type", ["inventory", "supplier", "dashboard"])
def test_pdf_route(client, staff, auth, report_type):
    resp = client.get(f"/api/reports/{report_type}/pdf", headers=auth(staff))
    assert resp.status_code == 200
    assert resp.data.startswith(b"%PDF")
    assert f"brewops-{report_type}-report-" in resp.headers["Content-Disposition"]


def test_pdf_route_unknown_type(client, staff, auth):
    assert client.get("/api/reports/payments/pdf", headers=auth(staff)).status_code == 400
