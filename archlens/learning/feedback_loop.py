"""
Feedback loop: applies user feedback to stored findings and retrains
the scorer from the accumulated corpus.
"""

import csv
import io
import json
import threading
from collections import Counter, defaultdict, deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

from .models import FeedbackRecord, FeedbackType, LearningMetrics, ReferenceType
from .training import prepare_training_data, extract_features, create_label
from ..architecture.models import Issue, IssueStatus, IssueType
from ..code_analysis.models import IssueCategory, Severity
from ..config import PolicyConfig
from ..exceptions import PersistenceError, ScorerError
from ..storage import AnalysisStore, safe_call
from ..utils import logger


MODEL_TYPE = "architecture_analyzer"
HISTORY_WINDOW = 10

REFERENCE_TABLES = {
    ReferenceType.ISSUE: 'issues',
    ReferenceType.PATTERN: 'patterns',
    ReferenceType.OPPORTUNITY: 'opportunities',
    ReferenceType.UPGRADE: 'upgrades',
}


class FeedbackLoopManager:
    """Collects feedback, applies immediate effects and schedules retraining.

    Two background cadences can be started with ``start()``: a batch pass
    that looks for systematic detector weaknesses, and a drift check that
    forces retraining when recorded model quality drops.
    """

    def __init__(self, store: AnalysisStore, scorer: Any,
                 policy: Optional[PolicyConfig] = None):
        """Initialize the manager.

        Args:
            store: Persistence for feedback, findings and history
            scorer: Object with ``retrain(samples, timeout)``, normally a
                ``ScorerClient`` owned by this manager
            policy: Thresholds and cadences
        """
        self.store = store
        self.scorer = scorer
        self.policy = policy or PolicyConfig()

        self._lock = threading.Lock()
        self._queue: List[FeedbackRecord] = []
        self._pending_batch: Deque[FeedbackRecord] = deque()
        self._reported_systematic: Dict[tuple, datetime] = {}
        self.is_processing = False
        self._retrain_deferred = False
        self.performance: Dict[str, Deque[LearningMetrics]] = defaultdict(
            lambda: deque(maxlen=HISTORY_WINDOW)
        )

        self.stop_event = threading.Event()
        self.threads: List[threading.Thread] = []

    @property
    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)

    # Submission

    def submit_feedback(self, record: FeedbackRecord):
        """Record feedback and apply its immediate effects.

        Persistence failures are logged; the record is still queued.
        """
        entity = self._load_reference(record)
        if entity is None:
            record.stale_reference = True
            logger.warning(f"Feedback {record.id} references unknown {record.reference_type.value} "
                           f"{record.reference_id}")

        safe_call("store feedback", self.store.add_feedback, record)

        with self._lock:
            self._queue.append(record)
            self._pending_batch.append(record)
            queue_size = len(self._queue)

        self._apply_immediate_effects(record, entity)

        if queue_size >= self.policy.retraining_threshold:
            logger.info(f"Feedback queue reached {queue_size}, retraining")
            self.trigger_retraining()

    def _load_reference(self, record: FeedbackRecord) -> Optional[Any]:
        try:
            return self.store.get_entity(REFERENCE_TABLES[record.reference_type], record.reference_id)
        except PersistenceError as e:
            logger.error(f"Failed to load feedback reference: {e}")
            return None

    def _apply_immediate_effects(self, record: FeedbackRecord, entity: Optional[Any]):
        if record.feedback_type == FeedbackType.MISSED_ISSUE:
            self._create_missed_issue(record, entity)

        if entity is None:
            return

        if record.feedback_type == FeedbackType.FALSE_POSITIVE and hasattr(entity, 'status'):
            entity.status = IssueStatus.FALSE_POSITIVE if isinstance(entity, Issue) else "false_positive"

        if record.feedback_type == FeedbackType.PRIORITY_ADJUSTMENT:
            priority = (record.corrected_data or {}).get('priority')
            if priority is not None:
                try:
                    entity.priority = int(priority)
                except (ValueError, TypeError):
                    logger.warning(f"Feedback {record.id}: ignoring invalid priority {priority!r}")

        if record.rating <= 2:
            entity.adjust_confidence(-self.policy.confidence_penalty)
        elif record.rating >= 4:
            entity.adjust_confidence(self.policy.confidence_reward)

        safe_call(f"update {record.reference_type.value}",
                  self.store.save_entity, REFERENCE_TABLES[record.reference_type], entity)

    def _create_missed_issue(self, record: FeedbackRecord, entity: Optional[Any]) -> Issue:
        data = record.corrected_data or {}

        def corrected(key, convert, default):
            value = data.get(key)
            if value is None:
                return default
            try:
                return convert(value)
            except (ValueError, TypeError):
                logger.warning(f"Feedback {record.id}: invalid {key} {value!r}, using {default!r}")
                return default

        affected = data.get('affected_components') or []
        issue = Issue(
            issue_type=corrected('issue_type', IssueType, IssueType.GAP),
            category=corrected('category', IssueCategory, IssueCategory.MAINTAINABILITY),
            severity=corrected('severity', Severity, Severity.MEDIUM),
            title=str(data.get('title') or "Issue reported by user"),
            description=str(data.get('description') or record.comments or "Reported through feedback"),
            file_path=data.get('file_path'),
            line=corrected('line', int, None),
            affected_components=list(affected) if isinstance(affected, (list, tuple)) else [str(affected)],
            impact_score=corrected('impact_score', int, 50),
            detection_confidence=100,
            source="feedback",
            run_id=data.get('run_id') or getattr(entity, 'run_id', None) or self._latest_run_id(),
        )
        safe_call("store reported issue", self.store.save_issue, issue)
        logger.info(f"Created issue from missed-issue feedback: {issue.title}")
        return issue

    def _latest_run_id(self) -> Optional[str]:
        try:
            runs = self.store.list_runs(limit=1)
        except PersistenceError as e:
            logger.error(f"Failed to look up latest run: {e}")
            return None
        return runs[0].id if runs else None

    # Retraining

    def trigger_retraining(self) -> bool:
        """Dispatch a retraining cycle unless one is already running.

        A request that arrives during a cycle is deferred and runs once the
        current cycle ends.

        Returns:
            True if a retraining dispatch succeeded
        """
        with self._lock:
            if self.is_processing:
                self._retrain_deferred = True
                logger.debug("Retraining already in progress, deferring")
                return False
            self.is_processing = True
            dispatched_count = len(self._queue)

        dispatched = False
        try:
            dispatched = self._retrain(dispatched_count)
        finally:
            with self._lock:
                self.is_processing = False
                rerun = self._retrain_deferred
                self._retrain_deferred = False

        if rerun:
            self.trigger_retraining()
        return dispatched

    def _retrain(self, dispatched_count: int) -> bool:
        try:
            records = self.store.get_unprocessed_feedback(self.policy.retraining_batch_limit)
        except PersistenceError as e:
            logger.error(f"Cannot fetch feedback for retraining: {e}")
            return False

        if not records:
            logger.info("No unprocessed feedback to train on")
            return False

        samples = prepare_training_data(records, self.policy.feature_width)
        try:
            result = self.scorer.retrain(samples, timeout=self.policy.scorer_timeout)
        except ScorerError as e:
            logger.error(f"Retraining dispatch failed, keeping {dispatched_count} queued feedback: {e}")
            return False

        safe_call("mark feedback processed", self.store.mark_feedback_processed,
                  [record.id for record in records])
        with self._lock:
            del self._queue[:dispatched_count]

        self.record_training_complete(result)
        return True

    def record_training_complete(self, data: Dict[str, Any]) -> LearningMetrics:
        """Append a performance history entry for a finished retraining."""
        metrics = LearningMetrics.from_dict({'model_type': MODEL_TYPE, **data})
        safe_call("record model performance", self.store.add_performance, metrics)
        with self._lock:
            self.performance[metrics.model_type].append(metrics)
        logger.info(
            f"Retraining complete: {metrics.training_samples} samples, accuracy "
            f"{metrics.accuracy_before} -> {metrics.accuracy_after}, F1 {metrics.f1_score}"
        )
        return metrics

    def rolling_performance(self, model_type: str = MODEL_TYPE) -> Dict[str, float]:
        """Average accuracy and F1 over the recent in-memory history."""
        with self._lock:
            history = list(self.performance.get(model_type, []))
        if not history:
            return {'accuracy': 0.0, 'f1_score': 0.0, 'samples': 0}
        return {
            'accuracy': round(sum(m.accuracy_after for m in history) / len(history), 2),
            'f1_score': round(sum(m.f1_score for m in history) / len(history), 4),
            'samples': len(history),
        }

    # Background cadences

    def process_batch(self) -> List[Issue]:
        """Inspect a small batch of recent feedback for systematic weaknesses."""
        with self._lock:
            batch = [self._pending_batch.popleft()
                     for _ in range(min(self.policy.batch_size, len(self._pending_batch)))]

        created = []
        for record in batch:
            issue = self._check_systematic(record)
            if issue:
                created.append(issue)
        return created

    def _check_systematic(self, record: FeedbackRecord) -> Optional[Issue]:
        key = (record.reference_type, record.feedback_type)
        now = datetime.now()
        window = timedelta(days=self.policy.systematic_window_days)

        reported = self._reported_systematic.get(key)
        if reported and now - reported < window:
            return None

        try:
            similar = self.store.get_similar_feedback(
                record.reference_type.value, record.feedback_type.value, now - window
            )
        except PersistenceError as e:
            logger.error(f"Failed to load similar feedback: {e}")
            return None

        if len(similar) <= self.policy.systematic_min_count:
            return None
        average_rating = sum(r.rating for r in similar) / len(similar)
        if average_rating >= self.policy.systematic_max_rating:
            return None

        feedback_name = record.feedback_type.value.replace('_', ' ')
        issue = Issue(
            issue_type=IssueType.TECHNICAL_DEBT,
            category=IssueCategory.MAINTAINABILITY,
            severity=Severity.MEDIUM,
            title=f"Systematic {feedback_name} in {record.reference_type.value} detection",
            description=(
                f"{len(similar)} '{record.feedback_type.value}' reports on "
                f"{record.reference_type.value} findings in the last "
                f"{self.policy.systematic_window_days} days, average rating {average_rating:.1f}"
            ),
            impact_score=60,
            detection_confidence=90,
            suggested_fix="Review and retune the detector that produces these findings",
            source="feedback_loop",
            run_id=self._latest_run_id(),
        )
        self._reported_systematic[key] = now
        safe_call("store systematic issue", self.store.save_issue, issue)
        logger.warning(issue.title)
        return issue

    def check_drift(self) -> bool:
        """Force retraining when the latest model quality is below the floor."""
        try:
            latest = self.store.latest_performance(MODEL_TYPE)
        except PersistenceError as e:
            logger.error(f"Failed to read model performance: {e}")
            return False
        if latest is None:
            return False
        if (latest.accuracy_after < self.policy.drift_min_accuracy
                or latest.f1_score < self.policy.drift_min_f1):
            logger.warning(
                f"Model drift detected (accuracy {latest.accuracy_after}, F1 {latest.f1_score}), retraining"
            )
            self.trigger_retraining()
            return True
        return False

    def start(self):
        """Start the batch and drift cadences."""
        if self.threads:
            logger.info("Feedback loop is already running")
            return
        self.stop_event.clear()
        for target, interval in (
            (self.process_batch, self.policy.batch_interval),
            (self.check_drift, self.policy.drift_interval),
        ):
            thread = threading.Thread(target=self._cadence, args=(target, interval), daemon=True)
            thread.start()
            self.threads.append(thread)
        logger.info("Feedback loop started")

    def _cadence(self, target, interval: float):
        while not self.stop_event.wait(interval):
            try:
                target()
            except Exception as e:
                logger.error(f"Error in feedback loop cadence: {e}")

    def stop(self):
        self.stop_event.set()
        for thread in self.threads:
            thread.join(timeout=5)
        self.threads = []

    def cleanup(self):
        """Stop the cadences and the scorer worker."""
        self.stop()
        cleanup = getattr(self.scorer, 'cleanup', None)
        if cleanup:
            cleanup()

    # Reporting

    def get_feedback_statistics(self) -> Dict[str, Any]:
        records = self.store.get_feedback()
        return {
            'total': len(records),
            'by_feedback_type': dict(Counter(r.feedback_type.value for r in records)),
            'by_reference_type': dict(Counter(r.reference_type.value for r in records)),
            'average_rating': round(sum(r.rating for r in records) / len(records), 2) if records else 0.0,
            'processed_for_training': sum(1 for r in records if r.processed_for_training),
            'stale_references': sum(1 for r in records if r.stale_reference),
            'queue_size': self.queue_size,
            'performance': self.rolling_performance(),
        }

    def export_training_data(self, format: str = "json",
                             output: Optional[Union[str, Path]] = None) -> str:
        """Export every feedback record as encoded training rows.

        Args:
            format: ``json`` or ``csv``
            output: Optional file to write

        Returns:
            The exported text
        """
        rows = [
            {
                'id': record.id,
                'reference_type': record.reference_type.value,
                'feedback_type': record.feedback_type.value,
                'rating': record.rating,
                'weight': record.rating / 5,
                'label': create_label(record).index(1.0),
                'features': extract_features(record, self.policy.feature_width),
            }
            for record in self.store.get_feedback()
        ]

        if format == "json":
            text = json.dumps(rows, indent=2)
        elif format == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer)
            writer.writerow(['id', 'reference_type', 'feedback_type', 'rating', 'weight', 'label', 'features'])
            for row in rows:
                writer.writerow([
                    row['id'], row['reference_type'], row['feedback_type'], row['rating'],
                    row['weight'], row['label'], ' '.join(f"{v:.4f}" for v in row['features']),
                ])
            text = buffer.getvalue()
        else:
            raise ValueError(f"Unsupported export format: {format}")

        if output:
            Path(output).write_text(text, encoding="utf-8")
            logger.info(f"Training data exported to {output}")
        return text
