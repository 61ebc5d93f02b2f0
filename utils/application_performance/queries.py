# utils/application_performance/queries.py
"""
SQL Queries and Data Loading for Application Performance

Handles all database interactions:
- Primary applications from sales_with_details (spreadsheet import)
- Supplemental applications from vast_finance_applications
  (joined to stores / promoters, soft-deleted rows excluded)
- Organizational directory: promoters, sators, SPVs (user_profiles)
- Monthly targets: read per tier + single-row upsert
- Viewer profile lookup

Every class takes an optional engine; without one it uses the shared
singleton from utils.db. IN-lists use expanding bind parameters.

Read errors are raised as DataSourceError. The merger turns a failing
transaction source into a partial result; a failing directory fails the
run.
"""

import json
import logging
from datetime import date
from typing import Any, Iterable, List, Optional

import pandas as pd
from sqlalchemy import bindparam, text

from utils.db import get_db_engine, get_transaction
from .constants import (
    SOURCE_PRIMARY,
    SOURCE_SUPPLEMENTAL,
    TARGET_TIERS,
    TIER_STORAGE_ROLE,
    TARGET_KIND_APPLICATIONS,
    ROLE_SPV_AREA,
)
from .exceptions import DataSourceError
from .models import Directory, Promoter, Supervisor, TeamLead, ViewerProfile
from .periods import parse_month

logger = logging.getLogger(__name__)

APPLICATION_COLUMNS = [
    'id', 'date', 'promoter_id', 'promoter_name', 'native_status',
    'store_name', 'area_name', 'team_lead_name',
]


def _value(value: Any) -> Optional[Any]:
    """NaN/None -> None, strings stripped."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _text(value: Any) -> Optional[str]:
    value = _value(value)
    return str(value) if value is not None else None


def _flag(value: Any, default: bool = True) -> bool:
    value = _value(value)
    if value is None:
        return default
    if isinstance(value, str):
        return value.lower() in ('1', 'true', 't', 'yes')
    return bool(value)


def _grants(value: Any) -> List[str]:
    """can_view_other_sators: JSON array, comma list or list."""
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    value = _text(value)
    if not value:
        return []
    if value.startswith('['):
        try:
            return [str(v).strip() for v in json.loads(value) if str(v).strip()]
        except ValueError:
            logger.warning(f"Unparseable sator grants: {value}")
            return []
    return [part.strip() for part in value.split(',') if part.strip()]


class SqlBuilder:
    """WHERE clauses + params, with IN-lists as expanding bind parameters."""

    def __init__(self, clauses: Iterable[str] = ()):
        self.clauses = list(clauses)
        self.params = {}
        self._expanding = []

    def where(self, clause: str, **params) -> 'SqlBuilder':
        self.clauses.append(clause)
        self.params.update(params)
        return self

    def where_in(self, column: str, param: str, values) -> 'SqlBuilder':
        if values is None:
            return self
        self.clauses.append(f"{column} IN :{param}")
        self.params[param] = list(values)
        self._expanding.append(param)
        return self

    def build(self, base_query: str, order_by: str = None):
        sql = base_query
        if self.clauses:
            sql += " WHERE " + " AND ".join(self.clauses)
        if order_by:
            sql += f" ORDER BY {order_by}"
        statement = text(sql)
        if self._expanding:
            statement = statement.bindparams(*[bindparam(p, expanding=True) for p in self._expanding])
        return statement


class _QueryBase:
    """Shared engine handling and query execution."""

    source_name = 'query'

    def __init__(self, engine=None):
        self._engine = engine

    @property
    def engine(self):
        """Lazy load database engine."""
        if self._engine is None:
            self._engine = get_db_engine()
        return self._engine

    def _execute_query(self, statement, params: dict, query_name: str = "query") -> pd.DataFrame:
        """Execute SQL statement and return DataFrame."""
        try:
            logger.debug(f"Executing {query_name}")
            df = pd.read_sql(statement, self.engine, params=params)
            logger.debug(f"{query_name} returned {len(df)} rows")
            return df
        except Exception as e:
            logger.error(f"Error executing {query_name}: {e}")
            raise DataSourceError(self.source_name, str(e)) from e


# =============================================================================
# TRANSACTION SOURCES
# =============================================================================

class _ApplicationSource(_QueryBase):

    base_query = ""
    fixed_clauses = ()
    date_column = ""
    area_column = ""
    team_lead_column = ""
    store_column = ""

    def fetch(self, date_from: date, date_to: date, filters=None) -> pd.DataFrame:
        """
        Raw application rows for a date range (inclusive).

        Args:
            date_from: First day
            date_to: Last day
            filters: ApplicationFilters (areas / team_leads / store_prefix pushed down)

        Returns:
            DataFrame with APPLICATION_COLUMNS
        """
        sql = SqlBuilder(self.fixed_clauses).where(
            f"{self.date_column} BETWEEN :date_from AND :date_to",
            date_from=date_from.isoformat(),
            date_to=date_to.isoformat(),
        )

        if filters is not None:
            # Empty tuples mean "nothing visible"; callers short-circuit those
            if filters.areas:
                sql.where_in(self.area_column, 'areas', filters.areas)
            if filters.team_leads:
                sql.where_in(self.team_lead_column, 'team_leads', filters.team_leads)
            if filters.store_prefix:
                sql.where(
                    f"LOWER({self.store_column}) LIKE :store_prefix",
                    store_prefix=f"{filters.store_prefix.lower()}%",
                )

        statement = sql.build(self.base_query, order_by=f"{self.date_column} DESC")
        df = self._execute_query(statement, sql.params, f"{self.source_name}_applications")
        if df.empty:
            return pd.DataFrame(columns=APPLICATION_COLUMNS)
        return df


class PrimaryApplicationSource(_ApplicationSource):
    """
    Spreadsheet-imported sales.

    Usage:
        source = PrimaryApplicationSource()
        df = source.fetch(date(2025, 12, 1), date(2025, 12, 31), filters)
    """

    source_name = SOURCE_PRIMARY
    date_column = "sale_date"
    area_column = "area_detail"
    team_lead_column = "sator"
    store_column = "store_name"
    base_query = """
        SELECT
            id,
            sale_date AS date,
            NULL AS promoter_id,
            promoter_name,
            status AS native_status,
            store_name,
            area_detail AS area_name,
            sator AS team_lead_name
        FROM sales_with_details
    """


class SupplementalApplicationSource(_ApplicationSource):
    """In-app financing forms; store and sator resolved through joins."""

    source_name = SOURCE_SUPPLEMENTAL
    fixed_clauses = ("v.deleted_at IS NULL",)
    date_column = "v.sale_date"
    area_column = "s.area_detail"
    team_lead_column = "p.sator"
    store_column = "s.name"
    base_query = """
        SELECT
            v.id,
            v.sale_date AS date,
            v.promoter_id,
            v.promoter_name,
            v.status_pengajuan AS native_status,
            s.name AS store_name,
            s.area_detail AS area_name,
            p.sator AS team_lead_name
        FROM vast_finance_applications v
        LEFT JOIN stores s ON s.id = v.store_id
        LEFT JOIN promoters p ON p.id = v.promoter_id
    """


# =============================================================================
# ORGANIZATIONAL DIRECTORY
# =============================================================================

class DirectoryRepository(_QueryBase):
    """
    Promoters, sators and SPVs.

    Usage:
        directory = DirectoryRepository().fetch_directory(areas=['KUPANG'])
    """

    source_name = 'directory'

    def get_promoters(self, areas: Optional[Iterable[str]] = None) -> pd.DataFrame:
        sql = SqlBuilder().where_in("p.area", 'areas', areas)
        statement = sql.build("""
            SELECT
                p.id,
                p.name,
                p.employee_id,
                p.sator,
                p.area,
                s.name AS store_name,
                p.category,
                p.is_active
            FROM promoters p
            LEFT JOIN stores s ON s.id = p.store_id
        """, order_by="p.name")
        return self._execute_query(statement, sql.params, "promoters")

    def get_team_leads(self, areas: Optional[Iterable[str]] = None) -> pd.DataFrame:
        sql = SqlBuilder().where_in("area", 'areas', areas)
        statement = sql.build("SELECT id, name, area, is_active FROM sators", order_by="name")
        return self._execute_query(statement, sql.params, "sators")

    def get_supervisors(self, areas: Optional[Iterable[str]] = None) -> pd.DataFrame:
        sql = SqlBuilder().where("role = :role", role=ROLE_SPV_AREA).where_in("area", 'areas', areas)
        statement = sql.build(
            "SELECT id, name, area, is_active FROM user_profiles", order_by="name"
        )
        return self._execute_query(statement, sql.params, "supervisors")

    def fetch_directory(self, areas: Optional[Iterable[str]] = None) -> Directory:
        """
        Membership snapshot.

        Args:
            areas: Restrict to these Areas (None = every Area)
        """
        areas = list(areas) if areas is not None else None

        promoters = tuple(
            Promoter(
                id=_text(row['id']),
                name=_text(row['name']) or '',
                team_lead_name=_text(row['sator']),
                area_name=_text(row['area']),
                employee_code=_text(row.get('employee_id')),
                store_name=_text(row.get('store_name')),
                is_active=_flag(row.get('is_active')),
                category=_text(row.get('category')),
            )
            for row in self.get_promoters(areas).to_dict('records')
        )
        team_leads = tuple(
            TeamLead(
                id=_text(row['id']),
                name=_text(row['name']) or '',
                area_name=_text(row['area']),
                is_active=_flag(row.get('is_active')),
            )
            for row in self.get_team_leads(areas).to_dict('records')
        )
        supervisors = tuple(
            Supervisor(
                id=_text(row['id']),
                name=_text(row['name']) or '',
                area_name=_text(row['area']),
                is_active=_flag(row.get('is_active')),
            )
            for row in self.get_supervisors(areas).to_dict('records')
        )

        logger.info(
            f"📇 Directory loaded: {len(promoters)} promoters, "
            f"{len(team_leads)} sators, {len(supervisors)} SPVs"
        )
        return Directory(promoters=promoters, team_leads=team_leads, supervisors=supervisors)


# =============================================================================
# TARGETS
# =============================================================================

class TargetStore(_QueryBase):
    """
    Monthly application-count targets ("pengajuan").

    Usage:
        store = TargetStore()
        df = store.fetch_targets('2025-12', 'promoter', ['p-1', 'p-2'])
        store.upsert_target('2025-12', 'promoter', 'p-1', 'Andi', 30)
    """

    source_name = 'targets'

    def __init__(self, engine=None, target_kind: str = TARGET_KIND_APPLICATIONS):
        super().__init__(engine)
        self.target_kind = target_kind

    def fetch_targets(self, month: str, tier: str, assignee_ids: Iterable) -> pd.DataFrame:
        """
        Target rows of one tier.

        Returns:
            DataFrame with assignee_id, target_value
        """
        if tier not in TARGET_TIERS:
            raise ValueError(f"Unknown target tier: {tier}")
        parse_month(month)

        sql = (
            SqlBuilder()
            .where("month = :month", month=month)
            .where("target_type = :target_type", target_type=self.target_kind)
            .where("assigned_to_role = :role", role=TIER_STORAGE_ROLE[tier])
            .where_in("assigned_to_id", 'assignee_ids', [str(i) for i in assignee_ids])
        )
        statement = sql.build("""
            SELECT
                assigned_to_id AS assignee_id,
                target_value
            FROM targets
        """, order_by="id")
        return self._execute_query(statement, sql.params, f"{tier}_targets")

    def upsert_target(
        self,
        month: str,
        tier: str,
        assignee_id: str,
        assignee_name: str,
        target_value: int,
        area: Optional[str] = None,
        assigned_by_id: Optional[str] = None,
        assigned_by_name: Optional[str] = None
    ) -> None:
        """
        Create or replace the target keyed by (assignee, month, kind).

        Raises:
            ValueError: bad tier, month or negative value
        """
        if tier not in TARGET_TIERS:
            raise ValueError(f"Unknown target tier: {tier}")
        parse_month(month)
        target_value = int(target_value)
        if target_value < 0:
            raise ValueError("Target value must be >= 0")

        params = {
            'assignee_id': str(assignee_id),
            'assignee_name': assignee_name,
            'role': TIER_STORAGE_ROLE[tier],
            'area': area,
            'month': month,
            'target_type': self.target_kind,
            'target_value': target_value,
            'assigned_by_id': assigned_by_id,
            'assigned_by_name': assigned_by_name,
        }

        update = text("""
            UPDATE targets
            SET target_value = :target_value,
                assigned_to_name = :assignee_name,
                assigned_to_role = :role,
                area = :area,
                assigned_by_id = :assigned_by_id,
                assigned_by_name = :assigned_by_name
            WHERE assigned_to_id = :assignee_id
              AND month = :month
              AND target_type = :target_type
        """)
        insert = text("""
            INSERT INTO targets (
                assigned_to_id, assigned_to_name, assigned_to_role, area,
                month, target_type, target_value, assigned_by_id, assigned_by_name
            ) VALUES (
                :assignee_id, :assignee_name, :role, :area,
                :month, :target_type, :target_value, :assigned_by_id, :assigned_by_name
            )
        """)

        with get_transaction(self.engine) as conn:
            result = conn.execute(update, params)
            if result.rowcount == 0:
                conn.execute(insert, params)

        logger.info(f"🎯 Target saved: {tier} {assignee_name} {month} = {target_value}")


# =============================================================================
# VIEWER PROFILE
# =============================================================================

class ProfileRepository(_QueryBase):
    """Viewer profiles (user_profiles)."""

    source_name = 'profiles'

    def get_viewer_profile(self, user_id: str) -> Optional[ViewerProfile]:
        """Active profile for a user, or None."""
        statement = text("""
            SELECT id, name, role, area, sator_name, can_view_other_sators, is_active
            FROM user_profiles
            WHERE id = :user_id
        """)
        df = self._execute_query(statement, {'user_id': str(user_id)}, "viewer_profile")
        if df.empty:
            logger.warning(f"No profile for user {user_id}")
            return None

        row = df.iloc[0].to_dict()
        if not _flag(row.get('is_active')):
            logger.warning(f"Profile {user_id} is inactive")
            return None

        return ViewerProfile.from_dict({
            'id': _text(row.get('id')),
            'name': _text(row.get('name')),
            'role': _text(row.get('role')),
            'area': _text(row.get('area')),
            'sator_name': _text(row.get('sator_name')),
            'can_view_other_sators': _grants(row.get('can_view_other_sators')),
        })
