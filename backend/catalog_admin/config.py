# backend/catalog_admin/config.py
from __future__ import annotations
import os


def _database_url() -> str:
    """
    Resolve the store URL.

    DATABASE_URL wins; otherwise the libpq-style PG* variables are composed
    into a URL; otherwise a local SQLite file.
    """
    uri = os.environ.get("DATABASE_URL")
    if not uri and os.environ.get("PGHOST"):
        uri = "postgresql://{user}:{password}@{host}:{port}/{database}".format(
            user=os.environ.get("PGUSER", ""),
            password=os.environ.get("PGPASSWORD", ""),
            host=os.environ["PGHOST"],
            port=os.environ.get("PGPORT", "5432"),
            database=os.environ.get("PGDATABASE", ""),
        )

    if uri and uri.startswith("postgresql://"):
        uri = uri.replace("postgresql://", "postgresql+psycopg://", 1)

    return uri or "sqlite:///catalog_admin.sqlite3"


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Server databases only: at most 10 pooled connections, idle ones recycled after 30s
    SQLALCHEMY_POOL_OPTIONS = {"pool_size": 10, "pool_recycle": 30, "pool_pre_ping": True}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    PORT = int(os.environ.get("PORT", "3000"))
