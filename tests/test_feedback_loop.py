"""Tests for the feedback loop."""

import csv
import io
import json
from unittest.mock import Mock

import pytest

from archlens.architecture.models import (
    AnalysisRun,
    Issue,
    IssueStatus,
    IssueType,
    OptimizationOpportunity,
    Pattern,
    PatternType,
)
from archlens.code_analysis.models import Severity, IssueCategory
from archlens.config import PolicyConfig
from archlens.exceptions import ScorerError
from archlens.learning.feedback_loop import FeedbackLoopManager
from archlens.learning.models import FeedbackRecord, FeedbackType, LearningMetrics, ReferenceType


TRAINING_RESULT = {
    'model_type': 'architecture_analyzer',
    'version': 'v1.0.1',
    'training_samples': 3,
    'accuracy_before': 50.0,
    'accuracy_after': 90.0,
    'precision': 0.9,
    'recall': 0.85,
    'f1_score': 0.87,
    'duration': 0.1,
}


def feedback(reference_id='missing', feedback_type=FeedbackType.ACCURACY, rating=3,
             reference_type=ReferenceType.ISSUE, **kwargs):
    return FeedbackRecord(
        reference_id=reference_id,
        reference_type=reference_type,
        feedback_type=feedback_type,
        rating=rating,
        **kwargs
    )


def stored_issue(store, confidence=80.0):
    issue = Issue(
        issue_type=IssueType.HOLE,
        category=IssueCategory.MAINTAINABILITY,
        severity=Severity.HIGH,
        title="Circular Dependency",
        description="a -> b -> a",
        detection_confidence=confidence,
        run_id="run-1",
    )
    store.save_issue(issue)
    return issue


@pytest.fixture
def scorer():
    scorer = Mock()
    scorer.retrain.return_value = dict(TRAINING_RESULT)
    return scorer


@pytest.fixture
def manager(store, scorer):
    return FeedbackLoopManager(store, scorer, PolicyConfig(retraining_threshold=3))


class TestFeedbackRecord:
    """Test record validation."""

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range(self, rating):
        with pytest.raises(ValueError):
            feedback(rating=rating)

    def test_round_trip(self):
        record = feedback(corrected_data={'priority': 3}, comments="ok")
        assert FeedbackRecord.from_dict(record.to_dict()) == record


class TestImmediateEffects:
    """Test effects applied on submission."""

    def test_false_positive_marks_issue(self, manager, store):
        issue = stored_issue(store)
        manager.submit_feedback(feedback(issue.id, FeedbackType.FALSE_POSITIVE, rating=1))

        updated = store.get_entity('issues', issue.id)
        assert updated.status == IssueStatus.FALSE_POSITIVE
        assert updated.detection_confidence == 70.0

    def test_confidence_is_clamped(self, manager, store):
        issue = stored_issue(store, confidence=98.0)
        manager.submit_feedback(feedback(issue.id, FeedbackType.USEFULNESS, rating=5))
        assert store.get_entity('issues', issue.id).detection_confidence == 100.0

        low = stored_issue(store, confidence=4.0)
        manager.submit_feedback(feedback(low.id, FeedbackType.ACCURACY, rating=1))
        assert store.get_entity('issues', low.id).detection_confidence == 0.0

    def test_neutral_rating_leaves_confidence(self, manager, store):
        issue = stored_issue(store)
        manager.submit_feedback(feedback(issue.id, FeedbackType.ACCURACY, rating=3))
        assert store.get_entity('issues', issue.id).detection_confidence == 80.0

    def test_priority_adjustment(self, manager, store):
        opportunity = OptimizationOpportunity(
            type="caching", title="Add caching", description="", priority=4, run_id="run-1",
        )
        store.save_opportunity(opportunity)
        manager.submit_feedback(feedback(
            opportunity.id, FeedbackType.PRIORITY_ADJUSTMENT, rating=3,
            reference_type=ReferenceType.OPPORTUNITY, corrected_data={'priority': 9},
        ))
        assert store.get_entity('opportunities', opportunity.id).priority == 9

    def test_missed_issue_creates_issue(self, manager, store):
        run = AnalysisRun(run_number=1)
        store.save_run(run)
        manager.submit_feedback(feedback(
            run.id, FeedbackType.MISSED_ISSUE, rating=2,
            corrected_data={'title': "Missing rate limiting", 'severity': 'high',
                            'file_path': 'src/api/login.js'},
        ))
        issues = store.get_issues(run.id)
        assert [i.title for i in issues] == ["Missing rate limiting"]
        assert issues[0].source == "feedback"
        assert issues[0].severity == Severity.HIGH
        assert issues[0].detection_confidence == 100

    def test_pattern_priority_is_persisted(self, manager, store):
        pattern = Pattern(
            pattern_type=PatternType.ANTI_PATTERN, name="God Object",
            description="", confidence=70, run_id="run-1",
        )
        store.save_pattern(pattern)
        manager.submit_feedback(feedback(
            pattern.id, FeedbackType.PRIORITY_ADJUSTMENT, rating=4,
            reference_type=ReferenceType.PATTERN, corrected_data={'priority': 9},
        ))
        reloaded = store.get_entity('patterns', pattern.id)
        assert reloaded.priority == 9
        assert reloaded.confidence == 75.0

    @pytest.mark.parametrize("priority", ["high", [3], {'level': 1}])
    def test_invalid_priority_keeps_other_effects(self, manager, store, priority):
        issue = stored_issue(store)
        manager.submit_feedback(feedback(
            issue.id, FeedbackType.PRIORITY_ADJUSTMENT, rating=1,
            corrected_data={'priority': priority},
        ))
        updated = store.get_entity('issues', issue.id)
        assert updated.priority is None
        assert updated.detection_confidence == 70.0
        assert manager.queue_size == 1

    @pytest.mark.parametrize("field_name, value, attribute, expected", [
        ('severity', 'urgent', 'severity', Severity.MEDIUM),
        ('category', 'style', 'category', IssueCategory.MAINTAINABILITY),
        ('issue_type', 'bug', 'issue_type', IssueType.GAP),
        ('impact_score', 'big', 'impact_score', 50),
        ('line', 'top', 'line', None),
    ])
    def test_missed_issue_with_invalid_field(self, manager, store, field_name, value, attribute, expected):
        run = AnalysisRun(run_number=1)
        store.save_run(run)
        manager.submit_feedback(feedback(
            run.id, FeedbackType.MISSED_ISSUE, rating=2,
            corrected_data={'title': "Missing validation", field_name: value},
        ))
        issues = store.get_issues(run.id)
        assert [i.title for i in issues] == ["Missing validation"]
        assert getattr(issues[0], attribute) == expected

    def test_invalid_corrected_data_still_triggers_retraining(self, manager, store, scorer):
        run = AnalysisRun(run_number=1)
        store.save_run(run)
        for _ in range(3):
            manager.submit_feedback(feedback(
                run.id, FeedbackType.MISSED_ISSUE, rating=2,
                corrected_data={'severity': 'urgent', 'priority': 'high'},
            ))
        assert scorer.retrain.call_count == 1

    def test_stale_reference(self, manager, store):
        record = feedback('does-not-exist', FeedbackType.FALSE_POSITIVE, rating=1)
        manager.submit_feedback(record)
        assert record.stale_reference
        stored = store.get_feedback()
        assert len(stored) == 1
        assert stored[0].stale_reference


class TestRetraining:
    """Test threshold-triggered retraining."""

    def test_retrains_once_at_threshold(self, manager, store, scorer):
        for _ in range(2):
            manager.submit_feedback(feedback())
        scorer.retrain.assert_not_called()

        manager.submit_feedback(feedback())
        assert scorer.retrain.call_count == 1
        assert manager.queue_size == 0
        assert store.get_unprocessed_feedback() == []
        assert store.latest_performance('architecture_analyzer').accuracy_after == 90.0

        samples = scorer.retrain.call_args[0][0]
        assert len(samples['issues']) == 3

    def test_failed_dispatch_keeps_queue(self, manager, store, scorer):
        scorer.retrain.side_effect = ScorerError("worker down")
        for _ in range(3):
            manager.submit_feedback(feedback())
        assert manager.queue_size == 3
        assert len(store.get_unprocessed_feedback()) == 3
        assert manager.rolling_performance()['samples'] == 0

    def test_concurrent_request_is_deferred(self, manager, scorer):
        manager.submit_feedback(feedback())
        manager.is_processing = True
        assert manager.trigger_retraining() is False
        assert manager._retrain_deferred
        scorer.retrain.assert_not_called()

    def test_no_feedback_no_dispatch(self, manager, scorer):
        assert manager.trigger_retraining() is False
        scorer.retrain.assert_not_called()

    def test_rolling_performance(self, manager):
        manager.record_training_complete(dict(TRAINING_RESULT, accuracy_after=80.0, f1_score=0.8))
        manager.record_training_complete(dict(TRAINING_RESULT, accuracy_after=90.0, f1_score=0.9))
        performance = manager.rolling_performance()
        assert performance['accuracy'] == 85.0
        assert performance['f1_score'] == pytest.approx(0.85)
        assert performance['samples'] == 2


class TestBackgroundChecks:
    """Test the systematic-issue and drift checks."""

    def test_systematic_issue(self, store, scorer):
        manager = FeedbackLoopManager(store, scorer, PolicyConfig())
        for _ in range(6):
            manager.submit_feedback(feedback(feedback_type=FeedbackType.FALSE_POSITIVE, rating=1))

        created = manager.process_batch()
        assert len(created) == 1
        assert created[0].title == "Systematic false positive in issue detection"
        assert created[0].source == "feedback_loop"
        assert manager.process_batch() == []

    def test_no_systematic_issue_for_good_ratings(self, store, scorer):
        manager = FeedbackLoopManager(store, scorer, PolicyConfig())
        for _ in range(6):
            manager.submit_feedback(feedback(feedback_type=FeedbackType.USEFULNESS, rating=5))
        assert manager.process_batch() == []

    def test_no_systematic_issue_below_count(self, store, scorer):
        manager = FeedbackLoopManager(store, scorer, PolicyConfig())
        for _ in range(5):
            manager.submit_feedback(feedback(feedback_type=FeedbackType.FALSE_POSITIVE, rating=1))
        assert manager.process_batch() == []

    def test_drift_forces_retraining(self, manager, store, scorer):
        manager.submit_feedback(feedback())
        store.add_performance(LearningMetrics.from_dict(dict(TRAINING_RESULT, accuracy_after=60.0)))
        assert manager.check_drift() is True
        assert scorer.retrain.call_count == 1

    def test_low_f1_is_drift(self, manager, store):
        store.add_performance(LearningMetrics.from_dict(dict(TRAINING_RESULT, f1_score=0.5)))
        assert manager.check_drift() is True

    def test_no_drift(self, manager, store, scorer):
        assert manager.check_drift() is False
        store.add_performance(LearningMetrics.from_dict(TRAINING_RESULT))
        assert manager.check_drift() is False
        scorer.retrain.assert_not_called()

    def test_start_and_stop(self, store, scorer):
        manager = FeedbackLoopManager(store, scorer, PolicyConfig(batch_interval=0.05, drift_interval=0.05))
        manager.start()
        assert len(manager.threads) == 2
        manager.cleanup()
        assert manager.threads == []
        scorer.cleanup.assert_called_once()


class TestReporting:
    """Test statistics and export."""

    def test_statistics(self, manager, store):
        issue = stored_issue(store)
        manager.submit_feedback(feedback(issue.id, FeedbackType.USEFULNESS, rating=5))
        manager.submit_feedback(feedback(feedback_type=FeedbackType.FALSE_POSITIVE, rating=2))

        stats = manager.get_feedback_statistics()
        assert stats['total'] == 2
        assert stats['average_rating'] == 3.5
        assert stats['by_feedback_type'] == {'usefulness': 1, 'false_positive': 1}
        assert stats['stale_references'] == 1
        assert stats['queue_size'] == 2
        assert stats['performance']['samples'] == 0

    def test_export_json(self, manager, temp_dir):
        manager.submit_feedback(feedback(feedback_type=FeedbackType.FALSE_POSITIVE, rating=1))
        output = temp_dir / "training.json"
        text = manager.export_training_data("json", output)

        rows = json.loads(output.read_text())
        assert json.loads(text) == rows
        assert rows[0]['label'] == 0
        assert rows[0]['weight'] == 0.2
        assert len(rows[0]['features']) == 128

    def test_export_csv(self, manager):
        manager.submit_feedback(feedback(rating=5))
        rows = list(csv.reader(io.StringIO(manager.export_training_data("csv"))))
        assert rows[0][:3] == ['id', 'reference_type', 'feedback_type']
        assert rows[1][5] == '1'
        assert len(rows[1][6].split()) == 128

    def test_export_invalid_format(self, manager):
        with pytest.raises(ValueError):
            manager.export_training_data("xml")
