"""
Running fusion metrics for one orchestrator instance.

Averages are rolled as (old + new) / 2, so recent fusions dominate. The
conflict rate decays by 10% on each agreeing fusion and moves halfway to 1
on each disagreeing one.
"""

from dataclasses import dataclass

from .data_models import EmotionData
from .enums import DominantSource

AGREEMENT_THRESHOLD = 0.7
CONFLICT_DECAY = 0.9


@dataclass
class FusionMetrics:
    """
    Fusion counters and rolling averages.

    Attributes:
        total_fusions: Fusion attempts that reached computation
        successful_fusions: Attempts that produced a record
        average_confidence: Rolling fused confidence (0-1)
        average_quality: Rolling overall quality (0-1)
        conflict_rate: Rolling disagreement rate (0-1)
        average_latency: Rolling computation time in ms
        modality_preference: Last non-balanced dominant source
    """
    total_fusions: int = 0
    successful_fusions: int = 0
    average_confidence: float = 0.0
    average_quality: float = 0.0
    conflict_rate: float = 0.0
    average_latency: float = 0.0
    modality_preference: DominantSource = DominantSource.BALANCED

    @property
    def failed_fusions(self) -> int:
        return self.total_fusions - self.successful_fusions

    def record_attempt(self) -> None:
        self.total_fusions += 1

    def record_success(self, fused: EmotionData, latency_ms: float) -> None:
        """Fold one successful fusion into the running metrics."""
        self.successful_fusions += 1
        self.average_latency = (self.average_latency + latency_ms) / 2
        self.average_confidence = (self.average_confidence + fused.fusion.confidence) / 2
        self.average_quality = (self.average_quality + fused.quality.overall_quality) / 2

        if fused.fusion.agreement < AGREEMENT_THRESHOLD:
            self.conflict_rate = (self.conflict_rate + 1) / 2
        else:
            self.conflict_rate *= CONFLICT_DECAY

        if fused.fusion.dominant_source is not DominantSource.BALANCED:
            self.modality_preference = fused.fusion.dominant_source
