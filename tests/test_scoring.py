"""Tests for the scorer model and its worker."""

import threading
import time

import numpy as np
import pytest

from archlens.exceptions import ScorerError, ScorerTimeoutError
from archlens.scoring.model import (
    LABEL_CLASSES,
    LABEL_CORRECT,
    ScorerModel,
    component_features,
    encode_value,
    fit_width,
)
from archlens.scoring.worker import ScorerClient


def one_hot(index):
    label = [0.0] * LABEL_CLASSES
    label[index] = 1.0
    return label


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TestFeatureEncoding:
    """Test feature flattening."""

    def test_encode_value(self):
        features = []
        encode_value({'b': True, 'a': 50, 'c': 'abcd', 'd': [1, 2]}, features)
        assert features == [0.5, 1.0, 0.04, 0.01, 0.02]

    def test_fit_width(self):
        assert fit_width([1.0, 2.0], 4) == [1.0, 2.0, 0.0, 0.0]
        assert fit_width([1.0] * 10, 4) == [1.0] * 4

    def test_component_features(self):
        features = component_features(
            {'metrics': {'lines_of_code': 200}, 'dependencies': ['a'], 'dependents': []},
            width=8,
        )
        assert features.shape == (8,)
        assert features[0] == pytest.approx(2.0)
        assert features[1] == pytest.approx(0.01)


class TestScorerModel:
    """Test ScorerModel predictions and training."""

    def test_untrained_confidence(self):
        model = ScorerModel(feature_width=8)
        assert model.confidence(np.zeros(8)) == 50.0

    def test_predict(self):
        payload = {
            'components': [
                {'path': 'src/a.js', 'name': 'a.js', 'type': 'library',
                 'metrics': {'cognitive_complexity': 40, 'duplication_ratio': 30.0},
                 'dependencies': [], 'dependents': ['1', '2', '3', '4', '5']},
                {'path': 'src/ui/View.jsx', 'name': 'View.jsx', 'type': 'ui',
                 'metrics': {'class_count': 1}, 'dependencies': [], 'dependents': []},
            ],
            'issues': [],
        }
        predictions = ScorerModel().predict(payload)
        assert [i['title'] for i in predictions['new_issues']] == ["High Cognitive Complexity"]
        assert predictions['pattern_suggestions'][0]['name'] == "Shared Module: a.js"
        assert predictions['optimization_suggestions'][0]['type'] == 'deduplication'
        assert predictions['upgrade_suggestions'][0]['component'] == 'src/ui/View.jsx'

    def test_predict_skips_existing_issue(self):
        payload = {
            'components': [{'path': 'src/a.js', 'name': 'a.js',
                            'metrics': {'cognitive_complexity': 40}}],
            'issues': [{'file_path': 'src/a.js', 'title': "High Cognitive Complexity"}],
        }
        assert ScorerModel().predict(payload)['new_issues'] == []

    def test_train(self):
        model = ScorerModel(feature_width=4)
        samples = {
            'issues': [
                {'features': [1.0, 0.0, 0.0, 0.0], 'label': one_hot(LABEL_CORRECT), 'weight': 1.0},
                {'features': [0.0, 1.0, 0.0, 0.0], 'label': one_hot(0), 'weight': 0.8},
            ],
        }
        result = model.train(samples)
        assert result['training_samples'] == 2
        assert result['version'] == "v1.0.1"
        assert result['accuracy_after'] >= result['accuracy_before']
        assert 0.0 <= result['f1_score'] <= 1.0
        assert model.confidence(np.array([1.0, 0.0, 0.0, 0.0])) > 50

    def test_train_without_samples(self):
        result = ScorerModel().train({'issues': []})
        assert result['training_samples'] == 0
        assert result['version'] == "v1.0.0"

    def test_save_and_load(self, temp_dir):
        model = ScorerModel(feature_width=4)
        model.weights[0, LABEL_CORRECT] = 3.0
        model.save(temp_dir / "scorer.npz")
        loaded = ScorerModel.load(temp_dir / "scorer.npz", feature_width=4)
        assert loaded.weights[0, LABEL_CORRECT] == 3.0

    def test_load_missing_file(self, temp_dir):
        model = ScorerModel.load(temp_dir / "missing.npz", feature_width=4)
        assert model.weights.shape == (4, LABEL_CLASSES)
        assert model.path == temp_dir / "missing.npz"


class BrokenModel:
    def predict(self, payload):
        raise RuntimeError("model exploded")

    def train(self, samples):
        raise RuntimeError("model exploded")


class SlowModel:
    def __init__(self, release):
        self.release = release

    def predict(self, payload):
        self.release.wait(5)
        return {}


class TestScorerClient:
    """Test the worker round trip."""

    def test_score(self):
        with ScorerClient(lambda: ScorerModel(feature_width=8), timeout=5) as client:
            predictions = client.score({'components': [], 'issues': []})
        assert predictions['new_issues'] == []
        assert not client.is_alive

    def test_retrain(self):
        with ScorerClient(lambda: ScorerModel(feature_width=4), timeout=5) as client:
            result = client.retrain({'issues': [
                {'features': [1.0, 0.0, 0.0, 0.0], 'label': one_hot(LABEL_CORRECT), 'weight': 1.0},
            ]})
        assert result['training_samples'] == 1

    def test_payload_is_copied(self):
        payload = {'components': [], 'issues': []}
        with ScorerClient(lambda: ScorerModel(feature_width=8), timeout=5) as client:
            client.score(payload)
        assert payload == {'components': [], 'issues': []}

    def test_error_restarts_worker(self):
        client = ScorerClient(BrokenModel, timeout=5, respawn_backoff=0.05)
        try:
            with pytest.raises(ScorerError, match="model exploded"):
                client.score({'components': []})
            assert wait_until(lambda: client.is_alive)
        finally:
            client.cleanup()

    def test_timeout(self):
        release = threading.Event()
        client = ScorerClient(lambda: SlowModel(release), timeout=0.2, respawn_backoff=60)
        try:
            with pytest.raises(ScorerTimeoutError):
                client.score({'components': []})
            with pytest.raises(ScorerError):
                client.score({'components': []})
        finally:
            release.set()
            client.cleanup()

    def test_factory_failure(self):
        def factory():
            raise RuntimeError("no weights")

        client = ScorerClient(factory, timeout=1, respawn_backoff=60)
        try:
            with pytest.raises(ScorerError):
                client.score({'components': []})
        finally:
            client.cleanup()

    def test_cleanup_cancels_respawn(self):
        client = ScorerClient(BrokenModel, timeout=5, respawn_backoff=60)
        with pytest.raises(ScorerError):
            client.score({'components': []})
        client.cleanup()
        assert client.respawn_timer is None
        assert not client.is_alive
