"""Tests for the SQL collaborators against an in-memory SQLite database."""

from datetime import date

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from utils.application_performance.exceptions import DataSourceError
from utils.application_performance.merger import ApplicationFilters
from utils.application_performance.queries import (
    DirectoryRepository,
    PrimaryApplicationSource,
    ProfileRepository,
    SupplementalApplicationSource,
    TargetStore,
)

SCHEMA = [
    """CREATE TABLE sales_with_details (
        id TEXT PRIMARY KEY, sale_date TEXT, promoter_name TEXT, status TEXT,
        store_name TEXT, area_detail TEXT, sator TEXT)""",
    """CREATE TABLE stores (id TEXT PRIMARY KEY, name TEXT, area_detail TEXT)""",
    """CREATE TABLE promoters (
        id TEXT PRIMARY KEY, name TEXT, employee_id TEXT, sator TEXT, sator_id TEXT,
        area TEXT, store_id TEXT, category TEXT, is_active INTEGER)""",
    """CREATE TABLE sators (id TEXT PRIMARY KEY, name TEXT, area TEXT, is_active INTEGER)""",
    """CREATE TABLE user_profiles (
        id TEXT PRIMARY KEY, name TEXT, role TEXT, area TEXT, sator_name TEXT,
        can_view_other_sators TEXT, is_active INTEGER)""",
    """CREATE TABLE vast_finance_applications (
        id TEXT PRIMARY KEY, sale_date TEXT, promoter_id TEXT, promoter_name TEXT,
        status_pengajuan TEXT, store_id TEXT, deleted_at TEXT)""",
    """CREATE TABLE targets (
        id INTEGER PRIMARY KEY AUTOINCREMENT, assigned_to_id TEXT, assigned_to_name TEXT,
        assigned_to_role TEXT, area TEXT, month TEXT, target_type TEXT, target_value INTEGER,
        assigned_by_id TEXT, assigned_by_name TEXT)""",
]

SEED = [
    """INSERT INTO sales_with_details VALUES
        ('s-1', '2025-12-03', 'Promotor A', 'ACC', 'SPC Kupang 1', 'KUPANG', 'Andi'),
        ('s-2', '2025-12-10', 'Promotor C', 'Reject', 'Toko Budi', 'KUPANG', 'Budi'),
        ('s-3', '2025-12-04', 'Promotor D', 'Pending', 'Toko Sumba', 'SUMBA', 'Citra'),
        ('s-4', '2025-11-30', 'Promotor A', 'ACC', 'SPC Kupang 1', 'KUPANG', 'Andi')""",
    """INSERT INTO stores VALUES
        ('st-1', 'SPC Kupang 2', 'KUPANG'),
        ('st-2', 'Toko Sumba', 'SUMBA')""",
    """INSERT INTO promoters VALUES
        ('p-1', 'Promotor A', 'EMP01', 'Andi', 't-1', 'KUPANG', NULL, 'official', 1),
        ('p-2', 'Promotor B', 'EMP02', 'Andi', 't-1', 'KUPANG', 'st-1', 'training', 1),
        ('p-4', 'Promotor D', 'EMP04', 'Citra', 't-3', 'SUMBA', 'st-2', NULL, 1),
        ('p-5', 'Promotor E', 'EMP05', 'Citra', 't-3', 'SUMBA', 'st-2', 'official', 0)""",
    """INSERT INTO sators VALUES
        ('t-1', 'Andi', 'KUPANG', 1),
        ('t-3', 'Citra', 'SUMBA', 1)""",
    """INSERT INTO user_profiles VALUES
        ('u-spv', 'Spv Kupang', 'spv_area', 'KUPANG', NULL, NULL, 1),
        ('u-andi', 'Andi', 'sator', 'KUPANG', 'Andi', '["Citra"]', 1),
        ('u-old', 'Old Spv', 'spv_area', 'SUMBA', NULL, NULL, 0)""",
    """INSERT INTO vast_finance_applications VALUES
        ('v-1', '2025-12-05', 'p-2', 'Promotor B', 'ACC', 'st-1', NULL),
        ('v-2', '2025-12-06', 'p-2', 'Promotor B', 'Belum disetujui', 'st-1', '2025-12-07'),
        ('v-3', '2025-12-07', 'p-4', 'Promotor D', 'Dapat limit tapi belum proses', 'st-2', NULL)""",
    """INSERT INTO targets (assigned_to_id, assigned_to_name, assigned_to_role, area, month,
            target_type, target_value) VALUES
        ('p-1', 'Promotor A', 'promoter', 'KUPANG', '2025-12', 'pengajuan', 5),
        ('p-2', 'Promotor B', 'promoter', 'KUPANG', '2025-12', 'pengajuan', 4),
        ('p-1', 'Promotor A', 'promoter', 'KUPANG', '2025-11', 'pengajuan', 9),
        ('t-1', 'Andi', 'sator', 'KUPANG', '2025-12', 'pengajuan', 8),
        ('p-1', 'Promotor A', 'promoter', 'KUPANG', '2025-12', 'closing', 3)""",
]

DEC_1 = date(2025, 12, 1)
DEC_31 = date(2025, 12, 31)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        for statement in SCHEMA + SEED:
            conn.execute(text(statement))
    yield engine
    engine.dispose()


class TestPrimaryApplicationSource:

    def test_fetch_month(self, engine):
        df = PrimaryApplicationSource(engine).fetch(DEC_1, DEC_31)

        assert df['id'].tolist() == ['s-2', 's-3', 's-1']
        assert set(df.columns) >= {'id', 'date', 'promoter_name', 'native_status', 'area_name', 'team_lead_name'}

    def test_area_and_team_lead_filters(self, engine):
        source = PrimaryApplicationSource(engine)

        by_area = source.fetch(DEC_1, DEC_31, ApplicationFilters(areas=('SUMBA',)))
        by_lead = source.fetch(DEC_1, DEC_31, ApplicationFilters(team_leads=('Andi', 'Budi')))

        assert by_area['id'].tolist() == ['s-3']
        assert sorted(by_lead['id']) == ['s-1', 's-2']

    def test_store_prefix(self, engine):
        df = PrimaryApplicationSource(engine).fetch(DEC_1, DEC_31, ApplicationFilters(store_prefix='spc'))
        assert df['id'].tolist() == ['s-1']

    def test_empty_result_has_columns(self, engine):
        df = PrimaryApplicationSource(engine).fetch(date(2020, 1, 1), date(2020, 1, 31))
        assert df.empty
        assert 'native_status' in df.columns

    def test_error_raises_data_source_error(self):
        broken = create_engine("sqlite://")
        with pytest.raises(DataSourceError) as excinfo:
            PrimaryApplicationSource(broken).fetch(DEC_1, DEC_31)
        assert excinfo.value.source == 'primary'


class TestSupplementalApplicationSource:

    def test_soft_deleted_rows_excluded(self, engine):
        df = SupplementalApplicationSource(engine).fetch(DEC_1, DEC_31)
        assert sorted(df['id']) == ['v-1', 'v-3']

    def test_names_resolved_through_joins(self, engine):
        df = SupplementalApplicationSource(engine).fetch(DEC_1, DEC_31).set_index('id')

        assert df.loc['v-1', 'store_name'] == 'SPC Kupang 2'
        assert df.loc['v-1', 'area_name'] == 'KUPANG'
        assert df.loc['v-1', 'team_lead_name'] == 'Andi'
        assert df.loc['v-3', 'promoter_id'] == 'p-4'

    def test_area_filter(self, engine):
        df = SupplementalApplicationSource(engine).fetch(DEC_1, DEC_31, ApplicationFilters(areas=('SUMBA',)))
        assert df['id'].tolist() == ['v-3']


class TestDirectoryRepository:

    def test_fetch_directory(self, engine):
        directory = DirectoryRepository(engine).fetch_directory()

        promoters = {p.id: p for p in directory.promoters}
        assert promoters['p-2'].store_name == 'SPC Kupang 2'
        assert promoters['p-2'].team_lead_name == 'Andi'
        assert promoters['p-5'].is_active is False
        assert promoters['p-4'].category is None
        assert {t.name for t in directory.team_leads} == {'Andi', 'Citra'}
        assert {s.id for s in directory.supervisors} == {'u-spv', 'u-old'}

    def test_fetch_directory_by_area(self, engine):
        directory = DirectoryRepository(engine).fetch_directory(['KUPANG'])

        assert {p.id for p in directory.promoters} == {'p-1', 'p-2'}
        assert [s.name for s in directory.supervisors] == ['Spv Kupang']

    def test_failure_raises(self):
        with pytest.raises(DataSourceError):
            DirectoryRepository(create_engine("sqlite://")).fetch_directory()


class TestTargetStore:

    def test_fetch_targets(self, engine):
        df = TargetStore(engine).fetch_targets('2025-12', 'promoter', ['p-1', 'p-2', 'p-3'])

        assert dict(zip(df['assignee_id'], df['target_value'])) == {'p-1': 5, 'p-2': 4}

    def test_fetch_by_storage_role(self, engine):
        df = TargetStore(engine).fetch_targets('2025-12', 'team_lead', ['t-1'])
        assert df['target_value'].tolist() == [8]

    def test_upsert_inserts_then_updates(self, engine):
        store = TargetStore(engine)

        store.upsert_target('2025-12', 'supervisor', 'u-spv', 'Spv Kupang', 20, area='KUPANG')
        store.upsert_target('2025-12', 'supervisor', 'u-spv', 'Spv Kupang', 25, area='KUPANG')

        df = store.fetch_targets('2025-12', 'supervisor', ['u-spv'])
        assert df['target_value'].tolist() == [25]

    def test_upsert_leaves_other_kinds_alone(self, engine):
        store = TargetStore(engine)
        store.upsert_target('2025-12', 'promoter', 'p-1', 'Promotor A', 7)

        closing = TargetStore(engine, target_kind='closing').fetch_targets('2025-12', 'promoter', ['p-1'])
        assert closing['target_value'].tolist() == [3]

    @pytest.mark.parametrize("kwargs", [
        {'month': '2025-13', 'tier': 'promoter', 'target_value': 1},
        {'month': '2025-12', 'tier': 'manager', 'target_value': 1},
        {'month': '2025-12', 'tier': 'promoter', 'target_value': -1},
    ])
    def test_upsert_validation(self, engine, kwargs):
        with pytest.raises(ValueError):
            TargetStore(engine).upsert_target(assignee_id='p-1', assignee_name='A', **kwargs)


class TestProfileRepository:

    def test_sator_profile_with_grants(self, engine):
        profile = ProfileRepository(engine).get_viewer_profile('u-andi')

        assert profile.role == 'sator'
        assert profile.assigned_team_lead == 'Andi'
        assert profile.extra_team_lead_grants == ('Citra',)

    def test_inactive_profile(self, engine):
        assert ProfileRepository(engine).get_viewer_profile('u-old') is None

    def test_missing_profile(self, engine):
        assert ProfileRepository(engine).get_viewer_profile('nobody') is None
