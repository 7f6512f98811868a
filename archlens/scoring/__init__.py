"""Trainable scorer behind a message-passing worker."""

from .model import ScorerModel, default_model_factory
from .worker import ScorerClient, ScorerWorker, create_scorer

__all__ = [
    'ScorerModel',
    'ScorerClient',
    'ScorerWorker',
    'create_scorer',
    'default_model_factory',
]
