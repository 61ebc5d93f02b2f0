# utils/config.py
"""
Configuration for the Application Performance dashboard

Version: 3.0.0
Sources, first match wins:
- Streamlit Cloud secrets ([DB_CONFIG] and [APP] tables)
- local .env (python-dotenv), then process environment

Settings are read once into a singleton. Database credentials are only
checked when the engine is first requested, so the computation modules
import and run without a database.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_AREAS = "KUPANG,KABUPATEN,SUMBA"


def is_running_on_streamlit_cloud() -> bool:
    """True when Streamlit secrets are present."""
    try:
        import streamlit as st
        return hasattr(st, 'secrets') and len(st.secrets) > 0
    except Exception:
        return False


def _to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _to_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


# key -> (default, parser)
APP_SETTINGS: Dict[str, tuple] = {
    "DB_POOL_SIZE": ("5", int),
    "DB_POOL_RECYCLE": ("3600", int),
    # threads for the source / directory / target fan-out
    "QUERY_MAX_WORKERS": ("6", int),
    # every Area of the organization, for org-wide viewers
    "AREAS": (DEFAULT_AREAS, _to_list),
    # business clock (WITA)
    "TIMEZONE": ("Asia/Makassar", str),
    "TOP_N": ("3", int),
    # legacy join of applications to promoters by display name
    "ENABLE_NAME_FALLBACK_JOIN": ("true", lambda v: _to_bool(v, True)),
    "ENABLE_DEBUG_MODE": ("false", _to_bool),
}


@dataclass
class DatabaseConfig:
    """Connection settings of the performance database."""
    host: str
    port: int
    user: str
    password: str
    database: str
    dialect: str = "mysql+pymysql"

    @classmethod
    def from_getter(cls, getter: Callable[[str, Any], Any]) -> 'DatabaseConfig':
        return cls(
            host=getter("host", "") or "",
            port=int(getter("port", 3306) or 3306),
            user=getter("user", "") or "",
            password=getter("password", "") or "",
            database=getter("database", "vast_finance") or "vast_finance",
            dialect=getter("dialect", "mysql+pymysql") or "mysql+pymysql",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'dialect': self.dialect,
        }

    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)


class Config:
    """
    Settings singleton.

    Usage:
        from utils.config import config

        config.get_areas()                           # ['KUPANG', 'KABUPATEN', 'SUMBA']
        config.get_app_setting("QUERY_MAX_WORKERS")  # 6
        config.is_feature_enabled("NAME_FALLBACK_JOIN")
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.is_cloud = is_running_on_streamlit_cloud()
        if self.is_cloud:
            self._load_cloud_config()
        else:
            self._load_local_config()
        self._log_config_status()
        self._initialized = True

    def _load_cloud_config(self):
        import streamlit as st

        db_secrets = dict(st.secrets.get("DB_CONFIG", {}))
        self._db_config = DatabaseConfig.from_getter(db_secrets.get)
        self._app_config = self._parse_app_settings(dict(st.secrets.get("APP", {})).get)
        logger.info("☁️ Running in STREAMLIT CLOUD")

    def _load_local_config(self):
        for env_path in (Path.cwd() / ".env", Path(__file__).parent.parent / ".env"):
            if env_path.exists():
                load_dotenv(env_path)
                logger.info(f"Loaded .env from: {env_path}")
                break

        env_keys = {
            "host": "DB_HOST",
            "port": "DB_PORT",
            "user": "DB_USER",
            "password": "DB_PASSWORD",
            "database": "DB_NAME",
            "dialect": "DB_DIALECT",
        }
        self._db_config = DatabaseConfig.from_getter(
            lambda key, default: os.getenv(env_keys[key], default)
        )
        self._app_config = self._parse_app_settings(os.getenv)
        logger.info("💻 Running in LOCAL environment")

    @staticmethod
    def _parse_app_settings(getter) -> Dict[str, Any]:
        settings = {}
        for key, (default, parser) in APP_SETTINGS.items():
            raw = getter(key, default)
            try:
                settings[key] = parser(raw)
            except (TypeError, ValueError):
                logger.warning(f"Invalid {key}={raw!r}, using {default}")
                settings[key] = parser(default)
        return settings

    def _log_config_status(self):
        if self._db_config.is_configured():
            logger.info(f"✅ Database: {self._db_config.host}/{self._db_config.database}")
        else:
            logger.warning("⚠️ Database: Not configured")
        logger.info(
            f"✅ Areas: {', '.join(self._app_config['AREAS'])} | "
            f"TZ: {self._app_config['TIMEZONE']} | "
            f"workers: {self._app_config['QUERY_MAX_WORKERS']}"
        )

    # ==================== PUBLIC GETTERS ====================

    def get_db_config(self) -> Dict[str, Any]:
        """
        Connection settings as a dict.

        Raises:
            ValueError: host, user or password missing
        """
        if not self._db_config.is_configured():
            logger.error("Missing required database configuration")
            raise ValueError("Missing required database configuration. Please check .env file.")
        return self._db_config.to_dict()

    def is_db_configured(self) -> bool:
        return self._db_config.is_configured()

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        return self._app_config.get(key, default)

    def get_areas(self) -> List[str]:
        """Every Area of the organization."""
        return list(self._app_config["AREAS"])

    def is_feature_enabled(self, feature: str) -> bool:
        return bool(self._app_config.get(f"ENABLE_{feature.upper()}", False))

    @property
    def app_config(self) -> Dict[str, Any]:
        return self._app_config.copy()


config = Config()

IS_RUNNING_ON_CLOUD = config.is_cloud
APP_CONFIG = config.app_config

__all__ = [
    'config',
    'Config',
    'DatabaseConfig',
    'IS_RUNNING_ON_CLOUD',
    'APP_CONFIG',
]
