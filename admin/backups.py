"""
Database backups as JSON exports.

A backup is one ``.json`` file in ``BACKUP_DIR`` holding every row of the
business tables, plus a row in ``backups`` describing it. Restoring
replaces the contents of those tables inside a single transaction.
"""
import json
import logging
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from flask import current_app

from helpers import ensure_dir, utcnow
from models import (
    db,
    Backup,
    Delivery,
    Inventory,
    Notification,
    Payment,
    ProductionProcess,
    Supplier,
    TeaQuality,
    User,
)

logger = logging.getLogger(__name__)

BACKUP_FORMAT = "brewops-backup"
BACKUP_VERSION = 1
BACKUP_EXTENSION = ".json"

# parents before children
BACKUP_MODELS = (
    User,
    Supplier,
    Delivery,
    Inventory,
    Payment,
    Notification,
    TeaQuality,
    ProductionProcess,
)


class BackupError(Exception):
    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


def backup_dir() -> str:
    path = current_app.config["BACKUP_DIR"]
    ensure_dir(path)
    return path


def backup_path(filename: str) -> str:
    """Absolute path for ``filename`` inside the backup directory."""
    if not filename or not filename.endswith(BACKUP_EXTENSION):
        raise BackupError("Invalid file type")
    if os.path.basename(filename) != filename or filename.startswith("."):
        raise BackupError("Invalid filename")

    root = os.path.realpath(backup_dir())
    path = os.path.realpath(os.path.join(root, filename))
    if os.path.dirname(path) != root:
        raise BackupError("Invalid filename")
    return path


def _encode(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def _decode_row(table, row: dict) -> dict:
    out = {}
    for column in table.columns:
        if column.name not in row:
            continue
        value = row[column.name]
        if value is not None:
            python_type = None
            try:
                python_type = column.type.python_type
            except NotImplementedError:
                pass
            if python_type is datetime:
                value = datetime.fromisoformat(value)
            elif python_type is date:
                value = date.fromisoformat(value)
            elif python_type is Decimal:
                value = Decimal(value)
        out[column.name] = value
    return out


def export_tables() -> dict:
    tables = {}
    for model in BACKUP_MODELS:
        table = model.__table__
        rows = db.session.execute(table.select()).mappings().all()
        tables[table.name] = [dict(r) for r in rows]
    return {
        "format": BACKUP_FORMAT,
        "version": BACKUP_VERSION,
        "created_at": utcnow().isoformat(),
        "tables": tables,
    }


def _mtime(path):
    return datetime.fromtimestamp(os.path.getmtime(path), timezone.utc).replace(tzinfo=None)


def backup_to_dict(b: Backup) -> dict:
    return {
        "id": b.id,
        "filename": b.filename,
        "size": b.file_size,
        "created_by": b.created_by,
        "created": b.created_at.isoformat() if b.created_at else None,
    }


def list_backups():
    """Backup files on disk, newest first."""
    root = backup_dir()
    out = []
    for name in os.listdir(root):
        if not name.endswith(BACKUP_EXTENSION):
            continue
        path = os.path.join(root, name)
        out.append(
            {
                "filename": name,
                "size": os.path.getsize(path),
                "modified": _mtime(path).isoformat(),
            }
        )
    out.sort(key=lambda b: b["modified"], reverse=True)
    return out


def create_backup(user) -> Backup:
    stamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S-%f")
    filename = f"brewops_backup_{stamp}{BACKUP_EXTENSION}"
    path = backup_path(filename)

    payload = export_tables()
    # written under a non-.json name so a failed dump is never listed
    partial = path + ".part"
    try:
        with open(partial, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, default=_encode)
        os.replace(partial, path)
    except Exception:
        if os.path.exists(partial):
            os.remove(partial)
        raise

    size = os.path.getsize(path)
    if size == 0:
        os.remove(path)
        raise BackupError("Backup file is empty", status=500)

    b = Backup(filename=filename, file_path=path, file_size=size, created_by=user.id)
    db.session.add(b)
    db.session.commit()
    logger.info("Backup %s created by user %s (%d bytes)", filename, user.id, size)
    return b


def read_backup(filename: str) -> dict:
    path = backup_path(filename)
    if not os.path.exists(path):
        raise BackupError("Backup file not found", status=404)
    try:
        with open(path, encoding="utf-8") as fh:
            payload = json.load(fh)
    except ValueError:
        raise BackupError("Backup file is corrupt") from None
    if payload.get("format") != BACKUP_FORMAT or not isinstance(payload.get("tables"), dict):
        raise BackupError("Not a BrewOps backup file")
    return payload


def restore_backup(filename: str) -> dict:
    """Replace the business tables with the contents of ``filename``."""
    payload = read_backup(filename)
    tables = payload["tables"]
    counts = {}
    # backup metadata references users, so it is set aside and re-attached
    backup_table = Backup.__table__
    kept = [dict(r) for r in db.session.execute(backup_table.select()).mappings().all()]
    try:
        db.session.execute(backup_table.delete())
        for model in reversed(BACKUP_MODELS):
            db.session.execute(model.__table__.delete())
        for model in BACKUP_MODELS:
            table = model.__table__
            rows = [_decode_row(table, r) for r in tables.get(table.name, [])]
            if rows:
                db.session.execute(table.insert(), rows)
            counts[table.name] = len(rows)

        user_ids = {r.get("id") for r in tables.get(User.__table__.name, [])}
        kept = [r for r in kept if r["created_by"] in user_ids]
        if kept:
            db.session.execute(backup_table.insert(), kept)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Restore from %s failed", filename)
        raise
    logger.warning("Database restored from %s", filename)
    return counts


def delete_backup(filename: str):
    path = backup_path(filename)
    if not os.path.exists(path):
        raise BackupError("Backup file not found", status=404)
    os.remove(path)
    Backup.query.filter_by(filename=filename).delete()
    db.session.commit()


def cleanup_backups(days=30) -> int:
    cutoff = utcnow() - timedelta(days=days)
    root = backup_dir()
    removed = []
    for name in os.listdir(root):
        if not name.endswith(BACKUP_EXTENSION):
            continue
        path = os.path.join(root, name)
        if _mtime(path) < cutoff:
            os.remove(path)
            removed.append(name)
    if removed:
        Backup.query.filter(Backup.filename.in_(removed)).delete(synchronize_session=False)
        db.session.commit()
    logger.info("Removed %d backups older than %d days", len(removed), days)
    return len(removed)
