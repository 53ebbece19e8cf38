# helpers.py
import os
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from flask import request
from werkzeug.utils import secure_filename

FACTORY_TZ = ZoneInfo(os.getenv("BREWOPS_TZ", "Asia/Colombo"))


# ---------- Time helpers ----------
def to_local_iso(dt):
    if not dt:
        return None
    if isinstance(dt, date) and not isinstance(dt, datetime):
        return dt.isoformat()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(FACTORY_TZ).isoformat()


def parse_date(value):
    """Accept YYYY-MM-DD (or a full ISO timestamp) and return a ``date``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValueError(f"Invalid date: {text}") from None


def month_bounds(year: int, month: int):
    """[start, end) datetimes covering one calendar month."""
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start, end


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------- Number helpers ----------
def as_float(value, default=0.0):
    if value is None:
        return default
    if isinstance(value, Decimal):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def as_bool(value, default=None):
    """Booleans from JSON or form values; anything unrecognised gives ``default``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "1", "yes"):
            return True
        if v in ("false", "0", "no"):
            return False
    return default


# ---------- Request helpers ----------
def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def pagination_args(default_limit=20, max_limit=200):
    """Read ?page=&limit= and return (page, limit, offset)."""
    page = max(as_int(request.args.get("page"), 1), 1)
    limit = as_int(request.args.get("limit"), default_limit)
    limit = min(max(limit, 1), max_limit)
    return page, limit, (page - 1) * limit


def clean_str(value):
    value = (value or "").strip() if isinstance(value, str) else value
    return value or None


# ---------- File helpers ----------
def ensure_dir(path: str):
    os.makedirs(path, exist_ok=True)


def allowed_image(filename: str) -> bool:
    if not filename or "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in {"jpg", "jpeg", "png", "gif", "webp"}


def unique_filename(filename: str) -> str:
    name = secure_filename(filename)
    ts = int(time.time() * 1000)
    base, ext = os.path.splitext(name)
    return f"{base}-{ts}{ext}"
