"""Learning module for ArchLens.

Feedback records, their training encoding, and the feedback loop
(``archlens.learning.feedback_loop``).
"""

from .models import FeedbackRecord, FeedbackType, ReferenceType, LearningMetrics
from .training import prepare_training_data, extract_features, create_label

__all__ = [
    'FeedbackRecord',
    'FeedbackType',
    'ReferenceType',
    'LearningMetrics',
    'prepare_training_data',
    'extract_features',
    'create_label',
]
