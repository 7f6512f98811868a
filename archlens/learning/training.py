"""Encode feedback records into training samples for the scorer."""

from typing import Any, Dict, List

from .models import FeedbackRecord, FeedbackType, ReferenceType
from ..scoring.model import (
    FEATURE_WIDTH,
    LABEL_CLASSES,
    LABEL_CORRECT,
    LABEL_FALSE_POSITIVE,
    LABEL_INCORRECT,
    LABEL_NEUTRAL,
    encode_value,
    fit_width,
)


FEEDBACK_TYPE_CODES = {
    FeedbackType.ACCURACY: 0.2,
    FeedbackType.USEFULNESS: 0.4,
    FeedbackType.FALSE_POSITIVE: 0.6,
    FeedbackType.MISSED_ISSUE: 0.8,
    FeedbackType.PRIORITY_ADJUSTMENT: 1.0,
}

REFERENCE_TYPE_CODES = {
    ReferenceType.ISSUE: 0.25,
    ReferenceType.PATTERN: 0.5,
    ReferenceType.OPPORTUNITY: 0.75,
    ReferenceType.UPGRADE: 1.0,
}

SAMPLE_GROUPS = {
    ReferenceType.ISSUE: 'issues',
    ReferenceType.PATTERN: 'patterns',
    ReferenceType.OPPORTUNITY: 'optimizations',
    ReferenceType.UPGRADE: 'upgrades',
}


def extract_features(record: FeedbackRecord, width: int = FEATURE_WIDTH) -> List[float]:
    """Fixed-width feature vector for one feedback record."""
    features: List[float] = []
    encode_value(record.corrected_data or {}, features)
    features.append(record.rating / 5)
    features.append(FEEDBACK_TYPE_CODES[record.feedback_type])
    features.append(REFERENCE_TYPE_CODES[record.reference_type])
    features.append(len(record.comments or '') / 500)
    return fit_width(features, width)


def create_label(record: FeedbackRecord) -> List[float]:
    """One-hot label: false positive, correct, incorrect or neutral."""
    label = [0.0] * LABEL_CLASSES
    if record.feedback_type == FeedbackType.FALSE_POSITIVE:
        label[LABEL_FALSE_POSITIVE] = 1.0
    elif record.rating >= 4:
        label[LABEL_CORRECT] = 1.0
    elif record.rating <= 2:
        label[LABEL_INCORRECT] = 1.0
    else:
        label[LABEL_NEUTRAL] = 1.0
    return label


def prepare_training_data(records: List[FeedbackRecord],
                          width: int = FEATURE_WIDTH) -> Dict[str, List[Dict[str, Any]]]:
    """Group samples by the kind of entity the feedback refers to."""
    grouped: Dict[str, List[Dict[str, Any]]] = {group: [] for group in SAMPLE_GROUPS.values()}
    for record in records:
        grouped[SAMPLE_GROUPS[record.reference_type]].append({
            'id': record.id,
            'features': extract_features(record, width),
            'label': create_label(record),
            'weight': record.rating / 5,
        })
    return grouped
