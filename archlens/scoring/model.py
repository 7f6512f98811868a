"""Default trainable scorer.

A small softmax model over fixed-width feature vectors. The analyzer
only talks to it through the worker channel in ``worker.py``, so any
object with the same ``predict``/``train`` surface can replace it.
"""

import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from ..utils import logger, clamp


LABEL_CLASSES = 10
FEATURE_WIDTH = 128

LABEL_FALSE_POSITIVE = 0
LABEL_CORRECT = 1
LABEL_INCORRECT = 2
LABEL_NEUTRAL = 3

COGNITIVE_COMPLEXITY_LIMIT = 30
HUB_MIN_DEPENDENTS = 5
DUPLICATION_LIMIT = 20.0


def encode_value(value: Any, features: List[float]):
    """Flatten a JSON-like value into numeric features.

    Numbers are scaled by 1/100, booleans become 0/1, strings contribute
    their length scaled by 1/100, and containers are walked recursively.
    """
    if isinstance(value, bool):
        features.append(1.0 if value else 0.0)
    elif isinstance(value, (int, float)):
        features.append(float(value) / 100)
    elif isinstance(value, str):
        features.append(len(value) / 100)
    elif isinstance(value, dict):
        for key in sorted(value):
            encode_value(value[key], features)
    elif isinstance(value, (list, tuple)):
        for item in value:
            encode_value(item, features)


def fit_width(features: List[float], width: int = FEATURE_WIDTH) -> List[float]:
    """Pad with zeros or truncate to exactly ``width`` values."""
    if len(features) >= width:
        return features[:width]
    return features + [0.0] * (width - len(features))


def component_features(component: Dict[str, Any], width: int = FEATURE_WIDTH) -> np.ndarray:
    features: List[float] = []
    encode_value(component.get('metrics') or {}, features)
    features.append(len(component.get('dependencies') or []) / 100)
    features.append(len(component.get('dependents') or []) / 100)
    return np.array(fit_width(features, width), dtype=float)


class ScorerModel:
    """Linear softmax classifier with weighted gradient-descent training."""

    def __init__(self, feature_width: int = FEATURE_WIDTH, version: str = "v1.0.0",
                 learning_rate: float = 0.1, epochs: int = 50):
        self.feature_width = feature_width
        self.version = version
        self.learning_rate = learning_rate
        self.epochs = epochs
        self.weights = np.zeros((feature_width, LABEL_CLASSES))
        self.bias = np.zeros(LABEL_CLASSES)
        self.path: Optional[Path] = None

    def probabilities(self, features: np.ndarray) -> np.ndarray:
        logits = features @ self.weights + self.bias
        logits = logits - logits.max(axis=-1, keepdims=True)
        exp = np.exp(logits)
        return exp / exp.sum(axis=-1, keepdims=True)

    def confidence(self, features: np.ndarray) -> float:
        """Confidence in [0, 100]; 50 for an untrained model."""
        probs = self.probabilities(features)
        doubt = max(probs[LABEL_INCORRECT], probs[LABEL_FALSE_POSITIVE])
        return round(float(clamp(50 + 50 * (probs[LABEL_CORRECT] - doubt))), 1)

    def predict(self, payload: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
        """Score a run's components and suggest additional findings."""
        components = payload.get('components') or []
        existing = {
            (issue.get('file_path'), issue.get('title'))
            for issue in payload.get('issues') or []
        }

        new_issues = []
        pattern_suggestions = []
        optimization_suggestions = []
        upgrade_suggestions = []

        for component in components:
            metrics = component.get('metrics') or {}
            path = component['path']
            confidence = self.confidence(component_features(component, self.feature_width))

            cognitive = metrics.get('cognitive_complexity', 0)
            if cognitive > COGNITIVE_COMPLEXITY_LIMIT and (path, "High Cognitive Complexity") not in existing:
                new_issues.append({
                    'issue_type': 'technical_debt',
                    'category': 'complexity',
                    'severity': 'medium',
                    'title': "High Cognitive Complexity",
                    'description': f"{component['name']} has cognitive complexity {cognitive}",
                    'file_path': path,
                    'affected_components': [path],
                    'impact_score': 45,
                    'confidence': confidence,
                    'suggested_fix': "Flatten nested control flow with early returns",
                })

            if len(component.get('dependents') or []) >= HUB_MIN_DEPENDENTS:
                pattern_suggestions.append({
                    'pattern_type': 'design_pattern',
                    'name': f"Shared Module: {component['name']}",
                    'description': f"{component['name']} is imported by many components",
                    'locations': [path],
                    'confidence': confidence,
                    'is_beneficial': True,
                })

            duplication = metrics.get('duplication_ratio', 0.0)
            if duplication > DUPLICATION_LIMIT:
                optimization_suggestions.append({
                    'type': 'deduplication',
                    'title': f"Remove duplicated lines in {component['name']}",
                    'description': f"{duplication}% of lines are repeated",
                    'affected_component': path,
                    'current_state': {'duplication_ratio': duplication},
                    'proposed_state': {'duplication_ratio': 5},
                    'expected_improvements': [{
                        'metric': 'duplication_ratio',
                        'current_value': duplication,
                        'expected_value': 5,
                        'improvement_percentage': round((duplication - 5) / duplication * 100),
                    }],
                    'implementation_complexity': 'moderate',
                    'priority': 5,
                    'estimated_impact': 40,
                    'confidence': confidence,
                })

            if component.get('type') == 'ui' and metrics.get('class_count', 0) > 0:
                upgrade_suggestions.append({
                    'component': path,
                    'upgrade_type': 'modernization',
                    'title': f"Convert class components in {component['name']} to function components",
                    'description': "Function components with hooks are simpler to test and compose",
                    'confidence': confidence,
                    'priority': 4,
                })

        return {
            'new_issues': new_issues,
            'pattern_suggestions': pattern_suggestions,
            'optimization_suggestions': optimization_suggestions,
            'upgrade_suggestions': upgrade_suggestions,
        }

    def train(self, grouped_samples: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
        """Fit on feedback samples and report before/after quality.

        ``grouped_samples`` maps a reference group to a list of
        ``{'features', 'label', 'weight'}`` dicts.
        """
        started = time.time()
        samples = [s for group in grouped_samples.values() for s in group]
        if not samples:
            return self._learning_metrics(0, 0.0, 0.0, 0.0, 0.0, 0.0, started)

        x = np.array([fit_width(list(s['features']), self.feature_width) for s in samples], dtype=float)
        y = np.array([s['label'] for s in samples], dtype=float)
        w = np.array([s.get('weight', 1.0) for s in samples], dtype=float)
        targets = y.argmax(axis=1)

        accuracy_before = self._accuracy(x, targets)
        total_weight = max(w.sum(), 1e-9)
        for _ in range(self.epochs):
            gradient = (self.probabilities(x) - y) * w[:, None]
            self.weights -= self.learning_rate * (x.T @ gradient) / total_weight
            self.bias -= self.learning_rate * gradient.sum(axis=0) / total_weight

        predicted = self.probabilities(x).argmax(axis=1)
        precision, recall, f1 = _macro_scores(targets, predicted)
        self.version = _bump_version(self.version)
        if self.path:
            self.save(self.path)
        logger.info(f"Scorer retrained on {len(samples)} samples, now {self.version}")
        return self._learning_metrics(
            len(samples), accuracy_before, self._accuracy(x, targets),
            precision, recall, f1, started,
        )

    def _accuracy(self, x: np.ndarray, targets: np.ndarray) -> float:
        predicted = self.probabilities(x).argmax(axis=1)
        return round(float((predicted == targets).mean()) * 100, 2)

    def _learning_metrics(self, samples: int, before: float, after: float,
                          precision: float, recall: float, f1: float, started: float) -> Dict[str, Any]:
        return {
            'model_type': 'architecture_analyzer',
            'version': self.version,
            'training_samples': samples,
            'accuracy_before': before,
            'accuracy_after': after,
            'precision': precision,
            'recall': recall,
            'f1_score': f1,
            'duration': round(time.time() - started, 3),
        }

    def save(self, path: Union[str, Path]):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez(path, weights=self.weights, bias=self.bias, version=np.array(self.version))

    @classmethod
    def load(cls, path: Union[str, Path], feature_width: int = FEATURE_WIDTH) -> 'ScorerModel':
        """Load saved weights, or return a fresh model when none exist."""
        model = cls(feature_width=feature_width)
        path = Path(path)
        model.path = path
        if not path.exists():
            return model
        with np.load(path) as data:
            if data['weights'].shape == model.weights.shape:
                model.weights = data['weights']
                model.bias = data['bias']
                model.version = str(data['version'])
            else:
                logger.warning(f"Ignoring scorer weights with shape {data['weights'].shape}")
        return model


def _macro_scores(targets: np.ndarray, predicted: np.ndarray):
    precisions, recalls = [], []
    for label in np.unique(targets):
        true_positive = np.sum((predicted == label) & (targets == label))
        predicted_count = np.sum(predicted == label)
        actual_count = np.sum(targets == label)
        precisions.append(true_positive / predicted_count if predicted_count else 0.0)
        recalls.append(true_positive / actual_count if actual_count else 0.0)
    precision = float(np.mean(precisions))
    recall = float(np.mean(recalls))
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
    return round(precision, 4), round(recall, 4), round(f1, 4)


def _bump_version(version: str) -> str:
    parts = version.lstrip('v').split('.')
    try:
        parts[-1] = str(int(parts[-1]) + 1)
    except ValueError:
        parts.append('1')
    return 'v' + '.'.join(parts)


def default_model_factory(model_path: Optional[str] = None, feature_width: int = FEATURE_WIDTH):
    """Build a factory that the worker calls inside its own thread."""
    def factory() -> ScorerModel:
        if model_path:
            return ScorerModel.load(model_path, feature_width)
        return ScorerModel(feature_width=feature_width)
    return factory
