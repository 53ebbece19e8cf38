# app.py
import logging
import os

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from config import Config
from helpers import ensure_dir
from models import db, User, TeaQuality, ProductionProcess
from validation import ValidationError
from notifications.service import run_low_inventory_scan

from auth.routes import auth_bp
from suppliers.routes import suppliers_bp
from deliveries.routes import deliveries_bp
from inventory.routes import inventory_bp
from payments.routes import payments_bp
from notifications.routes import notifications_bp
from reports.routes import reports_bp
from dashboard.routes import dashboard_bp
from admin.routes import admin_bp, backup_bp
from profiles.routes import profile_bp
from catalog.routes import catalog_bp

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# (quality_name, description, price_per_kg, min_weight, max_weight)
TEA_QUALITY_SEED = [
    ("Premium Green Tea", "High quality green tea leaves", 180.00, 10, 1000),
    ("Standard Green Tea", "Standard quality green tea leaves", 150.00, 10, 1000),
    ("Premium Black Tea", "High quality black tea leaves", 200.00, 10, 1000),
    ("Standard Black Tea", "Standard quality black tea leaves", 170.00, 10, 1000),
    ("Oolong Tea", "Semi-fermented oolong tea", 220.00, 10, 1000),
    ("White Tea", "Delicate white tea leaves", 250.00, 5, 500),
]

# (process_name, description, hours, temperature, humidity)
PRODUCTION_PROCESS_SEED = [
    ("Withering", "Reduce moisture content of fresh leaves", 18, 25, 70),
    ("Rolling", "Break leaf cells to release enzymes", 2, 30, 60),
    ("Oxidation", "Allow enzymes to react with oxygen", 4, 25, 80),
    ("Drying", "Stop oxidation and reduce moisture", 1, 80, 20),
    ("Sorting", "Grade leaves by size and quality", 0.5, 20, 50),
    ("Packaging", "Pack processed tea for storage", 0.25, 20, 40),
]

DEFAULT_USERS = [
    ("System Administrator", "admin@brewops.lk", "ADM001", "admin", "Admin123!"),
    ("Factory Manager", "manager@brewops.lk", "MGR001", "manager", "Manager123!"),
    ("Factory Staff", "staff@brewops.lk", "STF001", "staff", "Staff123!"),
]


# ---------- Schema setup ----------
def add_missing_columns():
    """ALTER existing tables so they carry every column the models declare."""
    engine = db.engine
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    added = []
    for table in db.metadata.sorted_tables:
        if table.name not in existing_tables:
            continue
        present = {c["name"] for c in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in present:
                continue
            ddl = f"ALTER TABLE {table.name} ADD COLUMN {column.name} {column.type.compile(dialect=engine.dialect)}"
            with engine.begin() as conn:
                conn.execute(text(ddl))
            added.append(f"{table.name}.{column.name}")
    return added


def seed_reference_data():
    """Insert reference rows that are not there yet; existing rows are left alone."""
    inserted = 0
    for name, description, price, min_w, max_w in TEA_QUALITY_SEED:
        if TeaQuality.query.filter_by(quality_name=name).first():
            continue
        db.session.add(
            TeaQuality(
                quality_name=name,
                description=description,
                price_per_kg=price,
                min_weight=min_w,
                max_weight=max_w,
                is_active=True,
            )
        )
        inserted += 1
    for name, description, hours, temperature, humidity in PRODUCTION_PROCESS_SEED:
        if ProductionProcess.query.filter_by(process_name=name).first():
            continue
        db.session.add(
            ProductionProcess(
                process_name=name,
                description=description,
                estimated_duration_hours=hours,
                required_temperature=temperature,
                required_humidity=humidity,
                is_active=True,
            )
        )
        inserted += 1
    db.session.commit()
    return inserted


def setup_database():
    db.create_all()
    added = add_missing_columns()
    inserted = seed_reference_data()
    return added, inserted


def seed_default_users():
    created = []
    for name, email, employee_id, role, password in DEFAULT_USERS:
        if User.query.filter_by(email=email).first():
            continue
        u = User(
            name=name,
            email=email,
            employee_id=employee_id,
            role=role,
            status="active",
            is_active=True,
        )
        u.set_password(password)
        db.session.add(u)
        created.append(email)
    db.session.commit()
    return created


# ---------- App factory ----------
def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"), format=LOG_FORMAT)

    # uploads
    app.config.setdefault("UPLOAD_FOLDER", os.path.join(app.root_path, "static", "uploads"))
    ensure_dir(app.config["UPLOAD_FOLDER"])
    app.config.setdefault("MAX_CONTENT_LENGTH", 16 * 1024 * 1024)

    db.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})
    jwt = JWTManager(app)

    # ---------- JWT errors ----------
    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({"error": "Access token required"}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({"error": "Token expired. Please login again."}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({"error": "Invalid token"}), 403

    # ---------- Blueprints ----------
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(suppliers_bp, url_prefix="/api/suppliers")
    app.register_blueprint(deliveries_bp, url_prefix="/api/deliveries")
    app.register_blueprint(inventory_bp, url_prefix="/api/inventory")
    app.register_blueprint(payments_bp, url_prefix="/api/payments")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")
    app.register_blueprint(reports_bp, url_prefix="/api/reports")
    app.register_blueprint(dashboard_bp, url_prefix="/api/dashboard")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(backup_bp, url_prefix="/api/backup")
    app.register_blueprint(profile_bp, url_prefix="/api/profile")
    app.register_blueprint(catalog_bp, url_prefix="/api")

    # ---------- Errors ----------
    @app.errorhandler(ValidationError)
    def handle_validation_error(err):
        return jsonify({"error": err.message, "errors": err.errors}), 400

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err):
        db.session.rollback()
        logger.warning("Integrity error: %s", err.orig)
        return jsonify({"error": "Duplicate entry"}), 400

    @app.errorhandler(404)
    def handle_not_found(err):
        if request.path.startswith("/api/"):
            return jsonify({"error": "Route not found"}), 404
        return err

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        if isinstance(err, HTTPException):
            return err
        if isinstance(err, SQLAlchemyError):
            db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    # ---------- Root & static ----------
    @app.route("/")
    def index():
        return jsonify({"msg": "BrewOps API"}), 200

    @app.route("/static/uploads/<path:filename>")
    def uploaded_file(filename):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    @app.get("/api/health")
    def api_health():
        return jsonify({"ok": True}), 200

    # ---------- CLI ----------
    @app.cli.command("setup-db")
    def setup_db():
        """Create or upgrade tables and seed reference data."""
        try:
            added, inserted = setup_database()
        except SQLAlchemyError:
            logger.exception("Database setup failed")
            raise SystemExit(1)
        for name in added:
            logger.info("Added column %s", name)
        print(f"DB ready. {len(added)} column(s) added, {inserted} reference row(s) seeded.")

    @app.cli.command("seed-users")
    def seed_users():
        created = seed_default_users()
        if created:
            print("Seeded users: " + ", ".join(created))
        else:
            print("Default users already present.")

    @app.cli.command("check-inventory")
    def check_inventory():
        """Raise or clear the low-inventory alert for managers."""
        alert = run_low_inventory_scan()
        print("Inventory is LOW." if alert else "Inventory level OK.")

    return app


app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    app.run(host="0.0.0.0", port=port, debug=True)
