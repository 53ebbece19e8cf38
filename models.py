# models.py
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

ROLES = ("admin", "manager", "staff", "supplier")
USER_STATUSES = ("active", "inactive", "pending")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    employee_id = db.Column(db.String(20), unique=True, nullable=True)
    role = db.Column(db.String(20), nullable=False, default="staff")
    password_hash = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.Text, nullable=True)
    avatar = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), default="active")
    is_active = db.Column(db.Boolean, default=True)
    # bumped on password change so older tokens stop working
    token_version = db.Column(db.Integer, default=1, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def effective_role(self) -> str:
        return "admin" if self.role == "manager" else self.role


class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    contact_number = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    nic_number = db.Column(db.String(12), nullable=True)
    address = db.Column(db.Text, nullable=True)
    bank_account_number = db.Column(db.String(20), nullable=True)
    bank_name = db.Column(db.String(120), nullable=True)
    bank_details = db.Column(db.Text, nullable=True)
    # cash / bank_transfer / check
    payment_preferences = db.Column(db.String(20), default="cash")
    rate = db.Column(db.Numeric(10, 2), default=150.00)
    is_active = db.Column(db.Boolean, default=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    user = db.relationship("User", backref="supplier_profiles")


class Delivery(db.Model):
    __tablename__ = "deliveries"

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    delivery_date = db.Column(db.Date, nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    rate_per_kg = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    # "monthly" or "spot"
    payment_method = db.Column(db.String(20), default="monthly")
    payment_status = db.Column(db.String(20), default="pending")
    status = db.Column(db.String(20), default="pending")
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    supplier = db.relationship("Supplier", backref="deliveries")


class Inventory(db.Model):
    __tablename__ = "inventory"

    id = db.Column(db.Integer, primary_key=True)
    inventoryid = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=True)
    # "monthly" or "spot-cash"
    payment_type = db.Column(db.String(20), default="monthly")
    payment_month = db.Column(db.String(7), nullable=True)  # YYYY-MM
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(40), default="Bank Transfer")
    # pending / paid / completed / cancelled
    status = db.Column(db.String(20), default="pending")
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    supplier = db.relationship("Supplier", backref="payments")
    delivery = db.relationship("Delivery", backref="payments")


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    # NULL recipient + recipient_role = broadcast to that role
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    recipient_role = db.Column(db.String(20), nullable=True)
    # e.g. "info", "LOW_INVENTORY", "PAYMENT_COMPLETED"
    type = db.Column(db.String(100), nullable=False, default="info")
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)
    priority = db.Column(db.String(20), default="medium")
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    recipient = db.relationship("User", backref="notifications")


class Backup(db.Model):
    __tablename__ = "backups"

    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(255), nullable=False, unique=True)
    file_path = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    creator = db.relationship("User", backref="backups")


class TeaQuality(db.Model):
    __tablename__ = "tea_quality"

    id = db.Column(db.Integer, primary_key=True)
    quality_name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_per_kg = db.Column(db.Numeric(10, 2), nullable=False)
    min_weight = db.Column(db.Numeric(10, 2), default=0)
    max_weight = db.Column(db.Numeric(10, 2), default=0)
    is_active = db.Column(db.Boolean, default=True)


class ProductionProcess(db.Model):
    __tablename__ = "production_process"

    id = db.Column(db.Integer, primary_key=True)
    process_name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    estimated_duration_hours = db.Column(db.Numeric(6, 2), nullable=True)
    required_temperature = db.Column(db.Numeric(6, 2), nullable=True)
    required_humidity = db.Column(db.Numeric(6, 2), nullable=True)
    is_active = db.Column(db.Boolean, default=True)
