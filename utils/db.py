# utils/db.py
"""
Database access for the performance engine

Version: 3.0.0
- One shared SQLAlchemy engine, created on first use behind a lock
- Pool sized for the pipeline fan-out: every concurrent read (two
  application sources, directory, three target tiers) can hold its own
  connection without waiting on the pool
- Small helpers for ad-hoc reads and write transactions

Collaborators in utils.application_performance.queries accept an engine
argument; without one they share this singleton.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import QueuePool

from .config import config

logger = logging.getLogger(__name__)

# Reads issued concurrently by one pipeline run
PIPELINE_CONCURRENT_READS = 6

_engine = None
_engine_lock = threading.Lock()


# ==================== ENGINE ====================

def get_db_engine():
    """
    Shared engine for every query collaborator.

    Raises:
        ValueError: database credentials are not configured
    """
    global _engine

    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = _build_engine()

    return _engine


def _connection_url() -> URL:
    db = config.get_db_config()
    return URL.create(
        drivername=db["dialect"],
        username=db["user"],
        password=str(db["password"]),
        host=db["host"],
        port=db["port"],
        database=db["database"],
    )


def _pool_settings() -> Dict[str, int]:
    workers = config.get_app_setting("QUERY_MAX_WORKERS", PIPELINE_CONCURRENT_READS)
    pool_size = config.get_app_setting("DB_POOL_SIZE", 5)
    return {
        "pool_size": pool_size,
        # room for one full fan-out on top of the steady pool
        "max_overflow": max(workers, PIPELINE_CONCURRENT_READS),
        "pool_recycle": config.get_app_setting("DB_POOL_RECYCLE", 3600),
    }


def _build_engine():
    url = _connection_url()
    pool = _pool_settings()

    logger.info(f"🔌 Connecting to {url.render_as_string(hide_password=True)}")

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_timeout=30,
        pool_pre_ping=True,
        echo=config.get_app_setting("ENABLE_DEBUG_MODE", False),
        **pool
    )

    logger.info(
        f"✅ Engine ready (pool_size={pool['pool_size']}, "
        f"max_overflow={pool['max_overflow']}, recycle={pool['pool_recycle']}s)"
    )
    return engine


def check_db_connection() -> Tuple[bool, Optional[str]]:
    """
    Ping the database.

    Returns:
        (ok, message for the viewer or None)
    """
    try:
        with get_db_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, None
    except ValueError as e:
        logger.error(f"❌ Database not configured: {e}")
        return False, str(e)
    except OperationalError as e:
        logger.error(f"❌ Database unreachable: {e}")
        return False, "Cannot reach the performance database. Check network/VPN."
    except Exception as e:
        logger.error(f"❌ Database error: {e}")
        return False, f"Database error: {e}"


def reset_db_engine():
    """Dispose the shared engine; the next query reconnects."""
    global _engine

    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
            _engine = None
            logger.info("🔄 Engine disposed, reconnecting on next query")


# ==================== TRANSACTIONS ====================

@contextmanager
def get_transaction(engine=None):
    """
    Connection inside one transaction: commit on success, rollback on error.

    Usage:
        with get_transaction() as conn:
            conn.execute(update, params)
    """
    engine = engine or get_db_engine()
    with engine.connect() as conn:
        trans = conn.begin()
        try:
            yield conn
        except Exception:
            trans.rollback()
            raise
        trans.commit()


# ==================== AD-HOC READS ====================

def _statement(query):
    return text(query) if isinstance(query, str) else query


def execute_query(query, params: Dict = None, engine=None) -> List[Dict]:
    """Rows of a SELECT as dicts."""
    engine = engine or get_db_engine()
    with engine.connect() as conn:
        result = conn.execute(_statement(query), params or {})
        return [dict(row._mapping) for row in result]


def execute_query_df(query, params: Dict = None, engine=None) -> pd.DataFrame:
    """Rows of a SELECT as a DataFrame."""
    engine = engine or get_db_engine()
    return pd.read_sql(_statement(query), engine, params=params or {})


__all__ = [
    'get_db_engine',
    'check_db_connection',
    'reset_db_engine',
    'get_transaction',
    'execute_query',
    'execute_query_df',
]
