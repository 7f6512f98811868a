"""Tests for SQLite persistence."""

import sqlite3
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from archlens.architecture.models import (
    AnalysisRun,
    AnalysisType,
    Component,
    ComponentType,
    ComponentUpgrade,
    Issue,
    IssueStatus,
    IssueType,
    Pattern,
    PatternType,
    RunStatus,
)
from archlens.code_analysis.models import Severity, IssueCategory
from archlens.exceptions import FeedbackPersistenceError, PersistenceError
from archlens.learning.models import FeedbackRecord, FeedbackType, LearningMetrics, ReferenceType
from archlens.storage import AnalysisStore, safe_call


def make_issue(run_id="run-1", **kwargs):
    return Issue(
        issue_type=IssueType.GAP,
        category=IssueCategory.MAINTAINABILITY,
        severity=Severity.MEDIUM,
        title="Missing Logging",
        description="users does not log anything",
        run_id=run_id,
        **kwargs
    )


def make_feedback(**kwargs):
    data = dict(
        reference_id="issue-1",
        reference_type=ReferenceType.ISSUE,
        feedback_type=FeedbackType.ACCURACY,
        rating=4,
    )
    data.update(kwargs)
    return FeedbackRecord(**data)


class TestAnalysisStore:
    """Test AnalysisStore."""

    def test_creates_parent_directory(self, temp_dir):
        store = AnalysisStore(temp_dir / "nested" / "dir" / "archlens.db")
        assert store.db_path.exists()

    def test_components_upsert_by_path(self, store):
        component = Component(path='src/a.js', name='a', type=ComponentType.SERVICE,
                              metrics={'lines_of_code': 10}, dependencies=['src/b.js'])
        store.upsert_component(component)
        component.metrics = {'lines_of_code': 20}
        store.upsert_component(component)

        components = store.get_components()
        assert len(components) == 1
        assert components[0].metrics == {'lines_of_code': 20}
        assert components[0].dependencies == ['src/b.js']

    def test_runs(self, store):
        assert store.next_run_number() == 1
        run = AnalysisRun(analysis_type=AnalysisType.SECURITY, run_number=1)
        store.save_run(run)
        run.transition(RunStatus.SCANNING)
        store.save_run(run)

        assert store.next_run_number() == 2
        saved = store.get_run(run.id)
        assert saved.status == RunStatus.SCANNING
        assert saved.analysis_type == AnalysisType.SECURITY
        assert store.get_run("missing") is None

    def test_list_runs_most_recent_first(self, store):
        for number in (1, 2, 3):
            store.save_run(AnalysisRun(run_number=number))
        assert [r.run_number for r in store.list_runs(limit=2)] == [3, 2]

    def test_entities(self, store):
        issue = make_issue()
        pattern = Pattern(pattern_type=PatternType.ANTI_PATTERN, name="God Object",
                          description="", run_id="run-1")
        upgrade = ComponentUpgrade(component='src/a.js', upgrade_type='modernization',
                                   title="Upgrade", run_id="run-1")
        store.save_issue(issue)
        store.save_pattern(pattern)
        store.save_upgrade(upgrade)

        assert store.get_issues("run-1") == [issue]
        assert store.get_patterns("run-1")[0].name == "God Object"
        assert store.get_upgrades("run-1")[0].title == "Upgrade"
        assert store.get_issues("run-2") == []

    def test_entity_update_keeps_one_row(self, store):
        issue = make_issue()
        store.save_issue(issue)
        issue.status = IssueStatus.FALSE_POSITIVE
        store.save_issue(issue)

        issues = store.get_issues("run-1")
        assert len(issues) == 1
        assert store.get_entity('issues', issue.id).status == IssueStatus.FALSE_POSITIVE

    def test_feedback(self, store):
        first = make_feedback(corrected_data={'severity': 'high'})
        second = make_feedback(feedback_type=FeedbackType.FALSE_POSITIVE, rating=1)
        store.add_feedback(first)
        store.add_feedback(second)

        records = store.get_feedback()
        assert [r.id for r in records] == [first.id, second.id]
        assert records[0].corrected_data == {'severity': 'high'}

        store.mark_feedback_processed([first.id])
        assert [r.id for r in store.get_unprocessed_feedback()] == [second.id]

    def test_duplicate_feedback_raises(self, store):
        record = make_feedback()
        store.add_feedback(record)
        with pytest.raises(FeedbackPersistenceError):
            store.add_feedback(record)

    def test_similar_feedback_window(self, store):
        old = make_feedback(created_at=datetime.now() - timedelta(days=10))
        recent = make_feedback()
        other = make_feedback(feedback_type=FeedbackType.USEFULNESS)
        for record in (old, recent, other):
            store.add_feedback(record)

        similar = store.get_similar_feedback('issue', 'accuracy', datetime.now() - timedelta(days=7))
        assert [r.id for r in similar] == [recent.id]

    def test_performance_history(self, store):
        for accuracy in (60.0, 80.0):
            store.add_performance(LearningMetrics(
                model_type='architecture_analyzer', version='v1', training_samples=10,
                accuracy_before=50.0, accuracy_after=accuracy, precision=0.8,
                recall=0.7, f1_score=0.75, duration=0.2,
            ))
        latest = store.latest_performance('architecture_analyzer')
        assert latest.accuracy_after == 80.0
        assert latest.id is not None
        assert len(store.get_performance_history()) == 2
        assert store.latest_performance('other') is None

    def test_connection_failure(self, store):
        with patch('archlens.storage.sqlite3.connect', side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(PersistenceError):
                store.list_runs()


class TestSafeCall:
    """Test the logging wrapper for best-effort writes."""

    def test_success(self):
        assert safe_call("do nothing", lambda: None) is True

    def test_persistence_error_is_logged(self):
        def fail():
            raise PersistenceError("disk full")
        assert safe_call("write", fail) is False

    def test_other_errors_propagate(self):
        def fail():
            raise RuntimeError("bug")
        with pytest.raises(RuntimeError):
            safe_call("write", fail)
