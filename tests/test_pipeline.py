"""End-to-end tests for PerformancePipeline with in-memory collaborators."""

from datetime import date

import pytest

from utils.application_performance.exceptions import DataSourceError
from utils.application_performance.models import ViewerProfile
from utils.application_performance.pipeline import PerformanceFilters, PerformancePipeline

from conftest import ALL_AREAS, MONTH, FakeDirectorySource, FakeSource, FakeTargetStore


@pytest.fixture
def collaborators(primary_rows, supplemental_rows, directory, target_store):
    return {
        'primary_source': FakeSource(primary_rows),
        'supplemental_source': FakeSource(supplemental_rows),
        'directory_source': FakeDirectorySource(directory),
        'target_store': target_store,
    }


def make_pipeline(collaborators, **kwargs):
    options = dict(all_areas=ALL_AREAS, max_workers=4, name_fallback=True, top_n=3)
    options.update(kwargs)
    return PerformancePipeline(**collaborators, **options)


class TestPipelineRun:

    def test_manager_report(self, collaborators, manager):
        report = make_pipeline(collaborators).run(manager, MONTH)

        assert [a.name for a in report.areas] == ['KUPANG', 'SUMBA', 'KABUPATEN']
        assert report.summary['total'] == 7
        assert report.date_from == date(2025, 12, 1)
        assert report.date_to == date(2025, 12, 31)
        assert not report.is_partial
        assert len(report.frame('promoter')) == 5
        assert report.top_promoters[0].name == 'Promotor A'

    def test_targets_flow_into_tree(self, collaborators, manager):
        report = make_pipeline(collaborators).run(manager, MONTH)

        kupang = next(a for a in report.areas if a.name == 'KUPANG')
        assert kupang.target == 20
        assert report.tree_report.attainment(['KUPANG']).percentage == 30
        assert report.tree_report.attainment(['KUPANG']).bucket == 'behind'
        assert [w.entity_id for w in report.warnings] == ['KUPANG']

    def test_order_by_name(self, collaborators, manager):
        report = make_pipeline(collaborators).run(manager, MONTH, PerformanceFilters(order_by='name'))
        assert [a.name for a in report.areas] == ['KABUPATEN', 'KUPANG', 'SUMBA']

    def test_default_order_is_busiest_first(self):
        assert PerformanceFilters().order_by == 'total'

    def test_date_override(self, collaborators, manager):
        filters = PerformanceFilters(date_from=date(2025, 12, 4), date_to=date(2025, 12, 5))

        make_pipeline(collaborators).run(manager, MONTH, filters)

        date_from, date_to, _ = collaborators['primary_source'].calls[0]
        assert (date_from, date_to) == (date(2025, 12, 4), date(2025, 12, 5))

    def test_date_preset(self, collaborators, manager):
        filters = PerformanceFilters.for_preset('last7days', today=date(2025, 12, 15), area='KUPANG')

        make_pipeline(collaborators).run(manager, MONTH, filters)

        date_from, date_to, _ = collaborators['primary_source'].calls[0]
        assert (date_from, date_to) == (date(2025, 12, 8), date(2025, 12, 15))
        assert filters.area == 'KUPANG'

    def test_no_preset_keeps_month(self):
        filters = PerformanceFilters.for_preset(None)
        assert filters.date_from is None and filters.date_to is None

    def test_runs_are_independent(self, collaborators, manager):
        pipeline = make_pipeline(collaborators)

        first = pipeline.run(manager, MONTH)
        second = pipeline.run(manager, MONTH)

        assert first.areas == second.areas
        assert len(collaborators['primary_source'].calls) == 2


class TestPipelineVisibility:

    def test_spv_cannot_see_other_areas(self, collaborators, spv_kupang):
        report = make_pipeline(collaborators).run(spv_kupang, MONTH, PerformanceFilters(area='SUMBA'))

        assert report.is_empty
        assert collaborators['primary_source'].calls == []

    def test_spv_all_areas_stays_in_area(self, collaborators, spv_kupang):
        report = make_pipeline(collaborators).run(spv_kupang, MONTH, PerformanceFilters(area='all'))

        assert [a.name for a in report.areas] == ['KUPANG']
        assert collaborators['directory_source'].calls == [['KUPANG']]
        assert set(report.frame('promoter')['area_name']) == {'KUPANG'}

    def test_empty_scope_skips_all_collaborators(self, collaborators):
        viewer = ViewerProfile(role='sator')

        report = make_pipeline(collaborators).run(viewer, MONTH)

        assert report.is_empty
        assert report.summary == {}
        assert collaborators['directory_source'].calls == []
        assert collaborators['target_store'].calls == []

    def test_sator_own_team(self, collaborators, sator_andi):
        report = make_pipeline(collaborators).run(sator_andi, MONTH, PerformanceFilters(team_lead='own'))

        assert [t.name for t in report.areas[0].children] == ['Andi']
        assert report.summary['total'] == 5


class TestPipelineFailures:

    def test_failing_source_is_partial(self, collaborators, manager):
        collaborators['supplemental_source'] = FakeSource(error=RuntimeError("forms offline"))

        report = make_pipeline(collaborators).run(manager, MONTH)

        assert report.is_partial
        assert report.merge.failed_sources == ('supplemental',)
        assert report.summary['total'] == 4

    def test_directory_failure_raises(self, collaborators, manager):
        collaborators['directory_source'] = FakeDirectorySource(error=RuntimeError("db down"))

        with pytest.raises(DataSourceError) as excinfo:
            make_pipeline(collaborators).run(manager, MONTH)
        assert excinfo.value.source == 'directory'

    def test_target_tier_failure_degrades(self, collaborators, manager):
        collaborators['target_store'] = FakeTargetStore(failing_tiers=['promoter', 'team_lead', 'supervisor'])

        report = make_pipeline(collaborators).run(manager, MONTH)

        assert report.is_partial
        assert set(report.failed_target_tiers) == {'promoter', 'team_lead', 'supervisor'}
        assert set(report.frame('promoter')['bucket']) == {'no-target'}

    def test_invalid_month(self, collaborators, manager):
        with pytest.raises(ValueError):
            make_pipeline(collaborators).run(manager, '2025-13')
