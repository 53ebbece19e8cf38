from datetime import date

import pytest

from app import create_app
from config import TestConfig
from models import db, Supplier, User
from security import issue_token


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        BACKUP_DIR = str(tmp_path / "backups")
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(role, email, name=None, password="Password123", **kwargs):
    u = User(
        name=name or role.capitalize(),
        email=email,
        role=role,
        status=kwargs.pop("status", "active"),
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def admin(app):
    return make_user("admin", "admin@brewops.lk", name="Admin User", employee_id="ADM001")


@pytest.fixture
def manager(app):
    return make_user("manager", "manager@brewops.lk", name="Manager User")


@pytest.fixture
def staff(app):
    return make_user("staff", "staff@brewops.lk", name="Staff User", employee_id="STF001")


@pytest.fixture
def supplier_user(app):
    return make_user("supplier", "grower@brewops.lk", name="Grower User")


@pytest.fixture
def auth():
    """auth(user) -> Authorization header for that user."""

    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user)}"}

    return _headers


def make_supplier(code="SUP00001", name="Green Hills Estate", nic="123456789V", user=None, rate=150):
    s = Supplier(
        supplier_id=code,
        name=name,
        contact_number="0771234567",
        nic_number=nic,
        address="12 Estate Road, Nuwara Eliya",
        bank_account_number="12345678",
        bank_name="Bank of Ceylon",
        rate=rate,
        is_active=True,
        user_id=user.id if user else None,
    )
    db.session.add(s)
    db.session.commit()
    return s


@pytest.fixture
def supplier(app, supplier_user):
    return make_supplier(user=supplier_user)


@pytest.fixture
def today():
    return date.today()


SUPPLIER_FORM = {
    "name": "Misty Valley Estate",
    "contact_number": "0712345678",
    "nic_number": "200012345678",
    "address": "45 Tea Garden Lane, Kandy",
    "bank_account_number": "987654321",
    "bank_name": "Commercial Bank",
    "rate": 175,
}


@pytest.fixture
def supplier_form():
    return dict(SUPPLIER_FORM)
