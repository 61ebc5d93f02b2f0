"""Tests for the Attainment Classifier."""

import pytest

from utils.application_performance.classifier import (
    bucket_for,
    bucket_color,
    check_target_consistency,
    classify,
    classify_tree,
    round_half_up,
)
from utils.application_performance.models import AggregateNode, Counts


def promoter(counts, target, has_target=True, entity_id='p-1'):
    return AggregateNode(
        entity_id=entity_id, name=entity_id, tier='promoter',
        counts=counts, target=target, has_target=has_target,
    )


def team_lead(children, target, entity_id='t-1'):
    return AggregateNode(
        entity_id=entity_id, name=entity_id, tier='team_lead',
        counts=Counts.sum(c.counts for c in children),
        target=target, has_target=target > 0,
        child_target_sum=sum(c.target for c in children),
        children=tuple(children),
    )


class TestRounding:

    @pytest.mark.parametrize("value, expected", [
        (59.5, 60),
        (60.4, 60),
        (124.5, 125),
        (0.5, 1),
        (99.49, 99),
    ])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestClassify:

    def test_two_approved_one_pending_target_five(self):
        node = promoter(Counts(approved=2, pending_or_unresolved=1), target=5)
        attainment = classify(node)
        assert attainment.percentage == 60
        assert attainment.bucket == 'at-risk'

    def test_team_lead_against_own_target(self):
        # total 10 = 4 approved + 3 pending + 3 rejected
        leaves = [
            promoter(Counts(approved=4), 0, entity_id='p-1'),
            promoter(Counts(pending_or_unresolved=3), 0, entity_id='p-2'),
            promoter(Counts(rejected=3), 0, entity_id='p-3'),
        ]
        node = team_lead(leaves, target=8)
        assert node.counts.total == 10

        attainment = classify(node)
        assert attainment.percentage == 125
        assert attainment.bucket == 'met'

    def test_missing_target_is_no_target_not_behind(self):
        attainment = classify(promoter(Counts(approved=3), target=0, has_target=False))
        assert attainment.percentage == 0
        assert attainment.bucket == 'no-target'

    def test_explicit_zero_target_is_no_target(self):
        assert classify(promoter(Counts(), target=0, has_target=True)).bucket == 'no-target'

    def test_half_percent_rounds_up(self):
        # 119 / 200 = 59.5%
        attainment = classify(promoter(Counts(approved=119), target=200))
        assert attainment.percentage == 60
        assert attainment.bucket == 'at-risk'

    @pytest.mark.parametrize("percentage, bucket", [
        (150, 'met'),
        (100, 'met'),
        (99, 'on-track'),
        (75, 'on-track'),
        (74, 'at-risk'),
        (50, 'at-risk'),
        (49, 'behind'),
        (0, 'behind'),
    ])
    def test_bucket_boundaries(self, percentage, bucket):
        assert bucket_for(percentage, target=10) == bucket


class TestTargetConsistency:

    def test_shortfall_warns(self):
        parent = team_lead([promoter(Counts(), 3), promoter(Counts(), 2, entity_id='p-2')], target=8)

        warning = check_target_consistency(parent)

        assert warning.shortfall == 3
        assert warning.child_target_sum == 5
        assert 't-1' in warning.message

    def test_covered_target_is_silent(self):
        parent = team_lead([promoter(Counts(), 5), promoter(Counts(), 5, entity_id='p-2')], target=8)
        assert check_target_consistency(parent) is None

    def test_parent_without_target_is_silent(self):
        assert check_target_consistency(team_lead([promoter(Counts(), 0)], target=0)) is None

    def test_leaves_never_warn(self):
        assert check_target_consistency(promoter(Counts(), 10)) is None

    def test_partially_visible_parent_is_silent(self):
        parent = AggregateNode(
            entity_id='KUPANG', name='KUPANG', tier='area',
            target=20, child_target_sum=8, is_partial_view=True,
        )
        assert check_target_consistency(parent) is None


class TestBucketColor:

    def test_known_buckets_have_distinct_colors(self):
        colors = {bucket_color(b) for b in ('met', 'on-track', 'at-risk', 'behind', 'no-target')}
        assert len(colors) == 5

    def test_unknown_bucket_uses_no_target_color(self):
        assert bucket_color('unknown') == bucket_color('no-target')


class TestClassifyTree:

    def test_report_keyed_by_path(self):
        leaf = promoter(Counts(approved=2, pending_or_unresolved=1), target=5)
        parent = team_lead([leaf], target=8)
        area = AggregateNode(
            entity_id='KUPANG', name='KUPANG', tier='area',
            counts=parent.counts, children=(parent,), child_target_sum=8,
        )

        report = classify_tree([area])

        assert report.attainment(['KUPANG', 't-1', 'p-1']).percentage == 60
        assert report.attainment(['KUPANG']).bucket == 'no-target'
        assert report.warning(['KUPANG', 't-1']).shortfall == 3
        assert len(report.warnings) == 1
        assert report.bucket_counts() == {'no-target': 1, 'behind': 1, 'at-risk': 1}

    def test_nodes_are_not_modified(self):
        leaf = promoter(Counts(approved=1), target=2)
        before = leaf

        classify_tree([leaf])

        assert leaf == before
        assert leaf.target == 2
