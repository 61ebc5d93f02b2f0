"""
Shared fixtures: an in-memory organization and fakes of every collaborator.

Organization:
    KUPANG   SPV: Spv Kupang   Sators: Andi (A, B), Budi (C)
    SUMBA    SPV: Spv Sumba    Sators: Citra (D, E inactive)
    KABUPATEN                  no sators, no promoters
"""

from datetime import date

import pytest

from utils.application_performance.constants import (
    SOURCE_PRIMARY,
    SOURCE_SUPPLEMENTAL,
    TIER_PROMOTER,
    TIER_TEAM_LEAD,
    TIER_SUPERVISOR,
)
from utils.application_performance.models import (
    Application,
    Directory,
    Outcome,
    Promoter,
    Supervisor,
    TeamLead,
    ViewerProfile,
)
from utils.application_performance.targets import TargetSet, build_resolved_targets

ALL_AREAS = ['KUPANG', 'KABUPATEN', 'SUMBA']
MONTH = '2025-12'


# =============================================================================
# FAKES
# =============================================================================

class FakeSource:
    """Transaction source returning fixed rows, or raising."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    def fetch(self, date_from, date_to, filters):
        self.calls.append((date_from, date_to, filters))
        if self.error:
            raise self.error
        return list(self.rows)


class FakeDirectorySource:

    def __init__(self, directory=None, error=None):
        self.directory = directory or Directory()
        self.error = error
        self.calls = []

    def fetch_directory(self, areas=None):
        self.calls.append(areas)
        if self.error:
            raise self.error
        return self.directory


class FakeTargetStore:
    """Targets keyed by (month, tier) -> {assignee_id: value}."""

    def __init__(self, targets=None, failing_tiers=()):
        self.targets = targets or {}
        self.failing_tiers = set(failing_tiers)
        self.calls = []

    def fetch_targets(self, month, tier, assignee_ids):
        self.calls.append((month, tier, tuple(assignee_ids)))
        if tier in self.failing_tiers:
            raise RuntimeError(f"{tier} targets offline")
        values = self.targets.get((month, tier), {})
        return [
            {'assignee_id': assignee_id, 'target_value': value}
            for assignee_id, value in values.items()
            if assignee_id in assignee_ids
        ]


# =============================================================================
# BUILDERS
# =============================================================================

def make_app(
    app_id,
    promoter_name,
    outcome=Outcome.APPROVED,
    occurred_on=date(2025, 12, 5),
    promoter_id=None,
    area_name='KUPANG',
    team_lead_name='Andi',
    store_name='SPC Kupang 1',
    source_system=SOURCE_PRIMARY,
):
    return Application(
        id=app_id,
        occurred_on=occurred_on,
        promoter_name=promoter_name,
        outcome=outcome,
        source_system=source_system,
        promoter_id=promoter_id,
        store_name=store_name,
        area_name=area_name,
        team_lead_name=team_lead_name,
    )


def raw_row(app_id, promoter_name, native_status, day='2025-12-05', **kwargs):
    row = {
        'id': app_id,
        'date': day,
        'promoter_name': promoter_name,
        'native_status': native_status,
        'promoter_id': None,
        'store_name': 'SPC Kupang 1',
        'area_name': 'KUPANG',
        'team_lead_name': 'Andi',
    }
    row.update(kwargs)
    return row


def make_targets(promoters=None, team_leads=None, supervisors=None, month=MONTH):
    by_tier = {}
    for tier, values in (
        (TIER_PROMOTER, promoters or {}),
        (TIER_TEAM_LEAD, team_leads or {}),
        (TIER_SUPERVISOR, supervisors or {}),
    ):
        rows = [{'assignee_id': k, 'target_value': v} for k, v in values.items()]
        by_tier[tier] = build_resolved_targets(tier, month, list(values), rows)
    return TargetSet(month=month, by_tier=by_tier)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def directory():
    return Directory(
        promoters=(
            Promoter('p-1', 'Promotor A', 'Andi', 'KUPANG', 'EMP01', 'SPC Kupang 1', True, 'official'),
            Promoter('p-2', 'Promotor B', 'Andi', 'KUPANG', 'EMP02', 'SPC Kupang 2', True, 'training'),
            Promoter('p-3', 'Promotor C', 'Budi', 'KUPANG', 'EMP03', 'Toko Budi', True, 'official'),
            Promoter('p-4', 'Promotor D', 'Citra', 'SUMBA', 'EMP04', 'Toko Sumba', True, None),
            Promoter('p-5', 'Promotor E', 'Citra', 'SUMBA', 'EMP05', 'Toko Sumba', False, 'official'),
        ),
        team_leads=(
            TeamLead('t-1', 'Andi', 'KUPANG'),
            TeamLead('t-2', 'Budi', 'KUPANG'),
            TeamLead('t-3', 'Citra', 'SUMBA'),
        ),
        supervisors=(
            Supervisor('s-1', 'Spv Kupang', 'KUPANG'),
            Supervisor('s-2', 'Spv Sumba', 'SUMBA'),
        ),
    )


@pytest.fixture
def empty_targets():
    return TargetSet(month=MONTH)


@pytest.fixture
def manager():
    return ViewerProfile(role='manager_area', id='u-manager', name='Manager')


@pytest.fixture
def spv_kupang():
    return ViewerProfile(role='spv_area', assigned_area='KUPANG', id='u-spv', name='Spv Kupang')


@pytest.fixture
def sator_andi():
    return ViewerProfile(
        role='sator', assigned_area='KUPANG', assigned_team_lead='Andi', id='u-andi', name='Andi'
    )


@pytest.fixture
def primary_rows():
    return [
        raw_row('s-1', 'Promotor A', 'ACC', '2025-12-03'),
        raw_row('s-2', 'Promotor A', 'Pending', '2025-12-04'),
        raw_row('s-3', 'Promotor C', 'Reject', '2025-12-04', team_lead_name='Budi', store_name='Toko Budi'),
        raw_row('s-4', 'Promotor D', 'ACC', '2025-12-02', area_name='SUMBA', team_lead_name='Citra',
                store_name='Toko Sumba'),
    ]


@pytest.fixture
def supplemental_rows():
    return [
        raw_row('v-1', 'Promotor B', 'ACC', '2025-12-04', promoter_id='p-2', store_name='SPC Kupang 2'),
        raw_row('v-2', 'Promotor B', 'Dapat limit tapi belum proses', '2025-12-05', promoter_id='p-2',
                store_name='SPC Kupang 2'),
        raw_row('v-3', 'Promotor Baru', 'Belum disetujui', '2025-12-01', promoter_id='p-99'),
    ]


@pytest.fixture
def target_store():
    return FakeTargetStore({
        (MONTH, TIER_PROMOTER): {'p-1': 5, 'p-2': 4, 'p-3': 2},
        (MONTH, TIER_TEAM_LEAD): {'t-1': 8, 't-2': 2},
        (MONTH, TIER_SUPERVISOR): {'s-1': 20},
    })
