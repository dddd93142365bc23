# meza/api/system.py
from __future__ import annotations

import logging
import os
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter
from sqlalchemy import text

from meza.db import DATABASE_URL, engine

router = APIRouter(tags=["ops"])

logger = logging.getLogger(__name__)

DEFAULT_TZ = "Asia/Dili"
APP_VERSION = "0.1.0"


def _db_driver_from_url(url: str | None) -> str | None:
    if not url or "://" not in url:
        return None
    scheme = url.split("://", 1)[0]  # e.g., "postgresql+psycopg2"
    if "+" in scheme:
        return scheme.split("+", 1)[1]
    return scheme


@router.get("/health")
def health():
    """Liveness check with a lightweight DB probe and local (Dili) time."""
    tz = os.getenv("TZ", DEFAULT_TZ)
    now_local = datetime.now(ZoneInfo(tz)).isoformat()

    db = {"status": "ok", "driver": _db_driver_from_url(DATABASE_URL)}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("health DB probe failed: %s", e)
        db["status"] = f"error: {type(e).__name__}"

    return {
        "status": "ok",
        "time": {"tz": tz, "now": now_local},
        "db": db,
    }


@router.get("/version")
def version():
    return {
        "app": "Meza Payroll Backend",
        "version": APP_VERSION,
        "db_driver": _db_driver_from_url(DATABASE_URL),
        "tz": os.getenv("TZ", DEFAULT_TZ),
    }
