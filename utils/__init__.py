# utils/__init__.py
"""
Shared Utilities Package

This package contains common utilities shared across the app:
- config: Configuration management (local + Streamlit Cloud)
- db: Database connection management with pooling
- application_performance: financing-application performance engine

Usage:
    from utils.config import config
    from utils.db import get_db_engine, execute_query_df
"""

from .config import (
    config,
    Config,
    IS_RUNNING_ON_CLOUD,
    APP_CONFIG,
)

from .db import (
    get_db_engine,
    check_db_connection,
    reset_db_engine,
    get_transaction,
    execute_query,
    execute_query_df,
)

__all__ = [
    # Config
    'config',
    'Config',
    'IS_RUNNING_ON_CLOUD',
    'APP_CONFIG',

    # Database
    'get_db_engine',
    'check_db_connection',
    'reset_db_engine',
    'get_transaction',
    'execute_query',
    'execute_query_df',
]

__version__ = '3.0.0'
