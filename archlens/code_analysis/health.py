"""Overall health score blending."""

from dataclasses import dataclass

from ..config import PolicyConfig
from ..utils import clamp


@dataclass
class HealthBreakdown:
    """Sub-scores, each in [0, 100], that make up the health score."""
    quality: float
    security: float
    performance: float
    architecture: float

    def blend(self, policy: PolicyConfig) -> int:
        """Weighted blend: quality 40%, security 30%, performance 20%, architecture 10%."""
        score = (
            clamp(self.quality) * policy.health_weight_quality
            + clamp(self.security) * policy.health_weight_security
            + clamp(self.performance) * policy.health_weight_performance
            + clamp(self.architecture) * policy.health_weight_architecture
        )
        return int(clamp(round(score)))


def quality_score(average_maintainability: float, average_complexity: float, smells: int) -> float:
    """Maintainability minus penalties for excess complexity and smell count."""
    complexity_penalty = min(max(average_complexity - 5, 0), 10) * 2
    smell_penalty = min(smells, 20) * 0.5
    return clamp(average_maintainability - complexity_penalty - smell_penalty)
