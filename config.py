# config.py
import os
from datetime import timedelta

from dotenv import load_dotenv, dotenv_values

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
ENV_PATH = os.path.join(BASE_DIR, ".env")

# 1) Load .env explicitly
if os.path.exists(ENV_PATH):
    load_dotenv(dotenv_path=ENV_PATH, override=True)

# 2) Fallback: read env manually if needed
if not os.getenv("MYSQL_USER") or not os.getenv("MYSQL_DB"):
    vals = dotenv_values(ENV_PATH) if os.path.exists(ENV_PATH) else {}
    for k, v in vals.items():
        if v is not None and not os.getenv(k):
            os.environ[k] = v


class Config:
    # ----- core secrets -----
    SECRET_KEY = os.getenv("SECRET_KEY", "devkey")
    JWT_SECRET_KEY = os.getenv("JWT_KEY", SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv("JWT_EXPIRE_HOURS", "24")))
    JWT_DECODE_AUDIENCE = "brewops-app"
    JWT_ENCODE_AUDIENCE = "brewops-app"
    JWT_ENCODE_ISSUER = "brewops-api"
    JWT_DECODE_ISSUER = "brewops-api"

    # ----- database -----
    MYSQL_USER = os.getenv("MYSQL_USER", "root")
    MYSQL_PASSWORD = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_HOST = os.getenv("MYSQL_HOST", "127.0.0.1")
    MYSQL_PORT = os.getenv("MYSQL_PORT", "3306")
    MYSQL_DB = os.getenv("MYSQL_DB", "brewops_db")

    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        f"mysql+pymysql://{MYSQL_USER}:{MYSQL_PASSWORD}"
        f"@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}?charset=utf8mb4",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 280}

    # ----- email (password reset via Brevo) -----
    BREVO_API_KEY = os.getenv("BREVO_API_KEY", "")
    MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@brewops.lk")
    MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "BrewOps")
    FRONTEND_URL = os.getenv("BREWOPS_FRONTEND_URL", "http://localhost:5173")
    PASSWORD_RESET_MAX_AGE = 3600

    # ----- backups -----
    BACKUP_DIR = os.getenv("BACKUP_DIR", os.path.join(BASE_DIR, "backups"))

    # ----- business rules -----
    LOW_INVENTORY_THRESHOLD_KG = float(os.getenv("LOW_INVENTORY_THRESHOLD_KG", "10000"))
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    SECRET_KEY = "test-secret"
    BREVO_API_KEY = ""
    LOG_LEVEL = "WARNING"
