"""
Cross-modal conflict detection.

Face and voice can legitimately disagree (a masked smile over a strained
voice), and the disagreement itself is clinically informative. It is
classified here instead of being averaged away.

Decision rules:
1. Conflict when arousal or valence differ by more than the threshold (0.4)
2. Severity is the larger of the two differences
3. A modality dominates the resolution only when its confidence exceeds the
   other's by more than 0.3; otherwise resolution is AI-mediated
"""

import logging

from .data_models import ConflictAnalysis, FaceEmotionData, VoiceEmotionData
from .enums import ResolutionStrategy

logger = logging.getLogger(__name__)

DEFAULT_DISAGREEMENT_THRESHOLD = 0.4
DOMINANCE_MARGIN = 0.3
CONFLICT_RESOLUTION_CONFIDENCE = 0.6
AGREEMENT_RESOLUTION_CONFIDENCE = 0.9


class ConflictAnalyzer:
    """
    Detect and classify disagreement between one face and one voice sample.

    Usage:
        analyzer = ConflictAnalyzer(threshold=0.4)
        analysis = analyzer.analyze(face, voice)
    """

    def __init__(
        self,
        threshold: float = DEFAULT_DISAGREEMENT_THRESHOLD,
        dominance_margin: float = DOMINANCE_MARGIN
    ):
        """
        Initialize analyzer.

        Args:
            threshold: Per-axis difference above which modalities conflict
            dominance_margin: Confidence gap needed for one side to dominate
        """
        self.threshold = threshold
        self.dominance_margin = dominance_margin

    def analyze(self, face: FaceEmotionData, voice: VoiceEmotionData) -> ConflictAnalysis:
        arousal_diff = abs(face.arousal - voice.prosody.arousal)
        valence_diff = abs(face.valence - voice.prosody.valence)

        dimensions = []
        if arousal_diff > self.threshold:
            dimensions.append('arousal')
        if valence_diff > self.threshold:
            dimensions.append('valence')
        has_conflict = bool(dimensions)

        analysis = ConflictAnalysis(
            has_conflict=has_conflict,
            conflict_severity=max(arousal_diff, valence_diff),
            conflict_dimensions=dimensions,
            resolution_strategy=self.resolution_strategy(face, voice),
            resolution_confidence=(
                CONFLICT_RESOLUTION_CONFIDENCE if has_conflict
                else AGREEMENT_RESOLUTION_CONFIDENCE
            ),
        )

        if has_conflict:
            logger.debug(
                f"Modality conflict on {dimensions}: "
                f"severity={analysis.conflict_severity:.2f}, "
                f"resolution={analysis.resolution_strategy.value}"
            )

        return analysis

    def resolution_strategy(
        self,
        face: FaceEmotionData,
        voice: VoiceEmotionData
    ) -> ResolutionStrategy:
        """Pick the dominant modality by confidence, or defer to AI mediation."""
        confidence_diff = face.confidence - voice.confidence

        if abs(confidence_diff) > self.dominance_margin:
            if confidence_diff > 0:
                return ResolutionStrategy.FACE_DOMINANT
            return ResolutionStrategy.VOICE_DOMINANT

        return ResolutionStrategy.AI_MEDIATED
