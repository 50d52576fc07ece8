"""Tests for diagnostic aggregation."""

from buildpipe.diagnostics.classifier import classify_all
from buildpipe.diagnostics.report import aggregate, aggregate_runs
from buildpipe.domain.models import ErrorCategory
from tests.conftest import MISSING_TYPE_ERROR

AMBIGUOUS = "View.swift:2:1: error: ambiguous use of 'init'"
MISSING_CHART = "Chart.swift:4:9: error: cannot find 'BarMark' in scope"


class TestAggregate:
    def test_counts_by_category_and_message(self):
        report = aggregate(classify_all([MISSING_TYPE_ERROR, MISSING_TYPE_ERROR, AMBIGUOUS, MISSING_CHART]))

        assert report.total_errors == 4
        assert report.unique_messages == 3
        assert [(c.category, c.count) for c in report.by_category] == [
            (ErrorCategory.MISSING_IMPORT, 3),
            (ErrorCategory.AMBIGUOUS_REFERENCE, 1),
        ]
        assert report.by_category[0].share == 0.75
        top = report.top_messages[0]
        assert (top.message, top.count) == ("cannot find type 'Bar' in scope", 2)

    def test_same_message_from_different_files_merges(self):
        other_file = "Other.swift:99:1: error: cannot find type 'Bar' in scope"
        report = aggregate(classify_all([MISSING_TYPE_ERROR, other_file]))
        assert report.unique_messages == 1
        assert report.top_messages[0].count == 2

    def test_ties_keep_first_seen_order(self):
        report = aggregate(classify_all([AMBIGUOUS, MISSING_CHART]))
        assert [m.category for m in report.top_messages] == [
            ErrorCategory.AMBIGUOUS_REFERENCE,
            ErrorCategory.MISSING_IMPORT,
        ]

    def test_category_filter_keeps_totals(self):
        report = aggregate(
            classify_all([MISSING_TYPE_ERROR, AMBIGUOUS, MISSING_CHART]),
            category=ErrorCategory.AMBIGUOUS_REFERENCE,
        )
        assert report.total_errors == 3
        assert report.category_filter == ErrorCategory.AMBIGUOUS_REFERENCE
        assert [c.category for c in report.by_category] == [ErrorCategory.AMBIGUOUS_REFERENCE]
        assert [m.message for m in report.top_messages] == ["ambiguous use of 'init'"]

    def test_top_limits_messages(self):
        report = aggregate(classify_all([MISSING_TYPE_ERROR, AMBIGUOUS, MISSING_CHART]), top=1)
        assert len(report.top_messages) == 1
        assert report.unique_messages == 3

    def test_empty(self):
        report = aggregate([])
        assert report.total_errors == 0
        assert report.by_category == []
        assert report.top_messages == []

    def test_camel_case_wire_format(self):
        data = aggregate(classify_all([MISSING_TYPE_ERROR])).model_dump(mode="json", by_alias=True)
        assert data["totalErrors"] == 1
        assert data["topMessages"][0]["category"] == "missing_import"


class TestAggregateRuns:
    def test_counts_runs(self):
        report = aggregate_runs([[MISSING_TYPE_ERROR], [], [AMBIGUOUS, MISSING_TYPE_ERROR]])
        assert report.total_runs == 3
        assert report.total_errors == 3
        assert report.top_messages[0].count == 2
