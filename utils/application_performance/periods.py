# utils/application_performance/periods.py
"""
Period helpers on the business clock (WITA, UTC+8).

Months are 'YYYY-MM' strings, the same key the targets table uses.
"""

import calendar
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import config
from .constants import WITA_UTC_OFFSET_HOURS, ALL_PRESET_YEARS

logger = logging.getLogger(__name__)


def business_timezone():
    name = config.get_app_setting("TIMEZONE", "Asia/Makassar")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using fixed UTC+{WITA_UTC_OFFSET_HOURS}")
        return timezone(timedelta(hours=WITA_UTC_OFFSET_HOURS))


def now_wita() -> datetime:
    return datetime.now(business_timezone())


def today_wita() -> date:
    return now_wita().date()


def current_month(today: Optional[date] = None) -> str:
    today = today or today_wita()
    return today.strftime('%Y-%m')


def parse_month(month: str) -> Tuple[int, int]:
    """'2025-12' -> (2025, 12); raises ValueError on anything else."""
    try:
        year_str, month_str = month.split('-')
        year, month_num = int(year_str), int(month_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month '{month}', expected YYYY-MM")
    if not 1 <= month_num <= 12:
        raise ValueError(f"Invalid month '{month}', expected YYYY-MM")
    return year, month_num


def month_bounds(month: str) -> Tuple[date, date]:
    """First and last day of a 'YYYY-MM' month."""
    year, month_num = parse_month(month)
    last_day = calendar.monthrange(year, month_num)[1]
    return date(year, month_num, 1), date(year, month_num, last_day)


def _years_back(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 -> Feb 28
        return day.replace(year=day.year - years, day=28)


def get_date_range(preset: str, today: Optional[date] = None) -> Tuple[date, date]:
    """
    Date range for a quick-filter preset.

    Args:
        preset: today, yesterday, last7days, last30days, mtd, lastmonth, all
        today: Reference day (defaults to today on the business clock)

    Returns:
        (date_from, date_to), both inclusive. Unknown presets give today.
    """
    today = today or today_wita()

    if preset == 'all':
        return _years_back(today, ALL_PRESET_YEARS), today
    if preset == 'yesterday':
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if preset == 'last7days':
        return today - timedelta(days=7), today
    if preset == 'last30days':
        return today - timedelta(days=30), today
    if preset == 'mtd':
        return today.replace(day=1), today
    if preset == 'lastmonth':
        last_month_end = today.replace(day=1) - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end

    if preset != 'today':
        logger.warning(f"Unknown date preset '{preset}', using today")
    return today, today
