"""Feedback records and learning metrics."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..architecture.models import new_id


class FeedbackType(Enum):
    """Types of user feedback."""
    ACCURACY = "accuracy"
    USEFULNESS = "usefulness"
    FALSE_POSITIVE = "false_positive"
    MISSED_ISSUE = "missed_issue"
    PRIORITY_ADJUSTMENT = "priority_adjustment"


class ReferenceType(Enum):
    """Kinds of entity feedback can point at."""
    ISSUE = "issue"
    PATTERN = "pattern"
    OPPORTUNITY = "opportunity"
    UPGRADE = "upgrade"


@dataclass
class FeedbackRecord:
    """A single piece of user feedback; never deleted."""
    reference_id: str
    reference_type: ReferenceType
    feedback_type: FeedbackType
    rating: int
    corrected_data: Dict[str, Any] = field(default_factory=dict)
    comments: str = ""
    user_id: str = "anonymous"
    processed_for_training: bool = False
    stale_reference: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        if not 1 <= int(self.rating) <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {self.rating}")
        self.rating = int(self.rating)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['reference_type'] = self.reference_type.value
        data['feedback_type'] = self.feedback_type.value
        data['created_at'] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FeedbackRecord':
        data = dict(data)
        data['reference_type'] = ReferenceType(data['reference_type'])
        data['feedback_type'] = FeedbackType(data['feedback_type'])
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['processed_for_training'] = bool(data.get('processed_for_training', False))
        data['stale_reference'] = bool(data.get('stale_reference', False))
        return cls(**data)


@dataclass
class LearningMetrics:
    """One immutable entry of model performance history."""
    model_type: str
    version: str
    training_samples: int
    accuracy_before: float
    accuracy_after: float
    precision: float
    recall: float
    f1_score: float
    duration: float
    recorded_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LearningMetrics':
        data = dict(data)
        recorded = data.get('recorded_at')
        if isinstance(recorded, str):
            data['recorded_at'] = datetime.fromisoformat(recorded)
        elif recorded is None:
            data.pop('recorded_at', None)
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['recorded_at'] = self.recorded_at.isoformat()
        return data
