from sqlalchemy import inspect, text

from app import add_missing_columns
from models import db, Inventory, Notification, ProductionProcess, TeaQuality, User


def test_setup_db_seeds_reference_data_once(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["setup-db"])
    assert result.exit_code == 0
    assert "DB ready." in result.output
    assert TeaQuality.query.count() == 6
    assert ProductionProcess.query.count() == 6

    again = runner.invoke(args=["setup-db"])
    assert "0 reference row(s) seeded" in again.output
    assert TeaQuality.query.count() == 6


def test_add_missing_columns_upgrades_old_table(app):
    TeaQuality.__table__.drop(db.engine)
    with db.engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE tea_quality ("
                "id INTEGER PRIMARY KEY, quality_name VARCHAR(120) NOT NULL, "
                "price_per_kg NUMERIC(10, 2) NOT NULL)"
            )
        )

    added = add_missing_columns()

    assert "tea_quality.is_active" in added
    assert "tea_quality.description" in added
    columns = {c["name"] for c in inspect(db.engine).get_columns("tea_quality")}
    assert {"min_weight", "max_weight", "is_active"} <= columns
    assert add_missing_columns() == []


def test_seed_users(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["seed-users"])
    assert "admin@brewops.lk" in result.output
    assert User.query.count() == 3
    assert User.query.filter_by(email="manager@brewops.lk").one().check_password("Manager123!")

    again = runner.invoke(args=["seed-users"])
    assert "already present" in again.output


def test_check_inventory_command(app):
    runner = app.test_cli_runner()
    assert "LOW" in runner.invoke(args=["check-inventory"]).output
    assert Notification.query.filter_by(type="LOW_INVENTORY").count() == 1

    db.session.add(Inventory(inventoryid="INV-BIG", quantity=12000))
    db.session.commit()
    assert "OK" in runner.invoke(args=["check-inventory"]).output
    assert Notification.query.filter_by(type="LOW_INVENTORY").count() == 0


def test_health_and_root(client):
    assert client.get("/api/health").get_json() == {"ok": True}
    assert client.get("/").get_json()["msg"] == "BrewOps API"


def test_unknown_api_route_is_json(client):
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Route not found"}
