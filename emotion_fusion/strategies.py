"""
Fusion strategies: turn a (face, voice) pair into one fused estimate.

Available strategies:
- WeightedAverageFusion: confidence-weighted linear blend with base weights
- ConfidenceBasedFusion: the clearly more confident modality dominates (0.7/0.3)
- AIMediatedFusion: conflict-aware adaptive weights plus an online-learned
  per-bucket adjustment

Tradeoffs:
- Weighted average has the lowest variance but lets a noisy modality pull the
  estimate when its confidence is overstated
- Confidence-based reacts sharply to confidence swings
- AI-mediated adapts to recurring face/voice patterns within a session at
  the cost of being stateful

Single-modality passthrough (`fuse_face_only`, `fuse_voice_only`) lives here
as well so every fused record is assembled the same way.
"""

import logging
import math
import numbers
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

import numpy as np

from .affects import calculate_affects
from .config import FusionConfig
from .conflict import ConflictAnalyzer
from .data_models import (
    BASIC_EMOTIONS,
    ConflictAnalysis,
    EmotionData,
    FaceEmotionData,
    FusionContext,
    FusionInfo,
    FusionSources,
    FusionWeights,
    QualityIndicators,
    VoiceEmotionData,
)
from .enums import DominantSource, ResolutionStrategy, StrategyType
from .exceptions import FusionComputationError

logger = logging.getLogger(__name__)

AffectCalculator = Callable[[float, float], Dict[str, float]]

DEFAULT_FACE_WEIGHT = 0.6
DEFAULT_VOICE_WEIGHT = 0.4

CONFIDENCE_TIE_MARGIN = 0.1
DOMINANT_SHARE = 0.7
CLOSE_CONFIDENCE_MARGIN = 0.2

UNSTABLE_VOICE_THRESHOLD = 0.5
UNSTABLE_VOICE_PENALTY = 0.7
RESOLUTION_BOOST = 1.3
RESOLUTION_PENALTY = 0.7
HIGH_AROUSAL_THRESHOLD = 0.5
LEARNING_RATE = 0.1
ADJUSTMENT_SCALE = 0.1
TREND_WINDOW = 5
HISTORY_WINDOW = 100


def _clip(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return float(np.clip(value, low, high))


def _check_finite(modality: str, values: Dict[str, float]) -> None:
    """Raise FusionComputationError if any named value is not a finite number."""
    for name, value in values.items():
        if not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise FusionComputationError(
                f"Invalid {modality} input '{name}': {value!r}", modality=modality
            )


def validate_face(face: FaceEmotionData) -> None:
    """
    Check that a face sample carries finite numbers where fusion reads them.

    Raises:
        FusionComputationError: On a missing, non-numeric or non-finite field
    """
    try:
        values = {
            "timestamp": face.timestamp,
            "arousal": face.arousal,
            "valence": face.valence,
            "confidence": face.confidence,
        }
        values.update({f"face_emotions.{k}": v for k, v in face.face_emotions.items()})
    except AttributeError as e:
        raise FusionComputationError(f"Malformed face sample: {e}", modality="face") from e
    _check_finite("face", values)


def validate_voice(voice: VoiceEmotionData) -> None:
    """
    Check that a voice sample carries finite numbers where fusion reads them.

    Raises:
        FusionComputationError: On a missing, non-numeric or non-finite field
    """
    try:
        prosody = voice.prosody
        ve = voice.voice_emotions
        values = {
            "timestamp": voice.timestamp,
            "arousal": prosody.arousal,
            "valence": prosody.valence,
            "intensity": prosody.intensity,
            "stability": prosody.stability,
            "confidence": voice.confidence,
            "excitement": ve.excitement,
            "stress": ve.stress,
            "uncertainty": ve.uncertainty,
            "engagement": ve.engagement,
            "authenticity": ve.authenticity,
        }
    except AttributeError as e:
        raise FusionComputationError(f"Malformed voice sample: {e}", modality="voice") from e
    _check_finite("voice", values)


def environmental_noise(voice: VoiceEmotionData) -> float:
    """Background noise estimate from voice stability (0-1)."""
    return max(0.0, 1.0 - voice.prosody.stability)


def weighted_combine(value1: float, value2: float, weight1: float, weight2: float) -> float:
    """Weighted mean of two values; unweighted mean when both weights are 0."""
    total_weight = weight1 + weight2
    if total_weight == 0:
        return (value1 + value2) / 2
    return (value1 * weight1 + value2 * weight2) / total_weight


def _emotion_keys(face: FaceEmotionData) -> List[str]:
    return list(face.face_emotions) or list(BASIC_EMOTIONS)


def voice_basic_emotions(voice: VoiceEmotionData) -> Dict[str, float]:
    """Voice to basic emotion mapping for passthrough and confidence-based fusion."""
    ve = voice.voice_emotions
    prosody = voice.prosody
    mapped = {
        'happy': ve.excitement,
        'sad': 1 - ve.engagement,
        'angry': ve.stress,
        'fearful': ve.uncertainty,
        'surprised': prosody.intensity,
        'disgusted': max(0.0, -prosody.valence),
        'neutral': ve.authenticity,
    }
    return {k: _clip(v, 0.0, 1.0) for k, v in mapped.items()}


class FusionStrategy(ABC):
    """Interface for combining one face and one voice sample."""

    strategy_type: StrategyType
    resolution_label: str

    def __init__(self, affect_calculator: AffectCalculator = calculate_affects):
        self.affect_calculator = affect_calculator

    @abstractmethod
    def fuse(
        self,
        face: FaceEmotionData,
        voice: VoiceEmotionData,
        context: FusionContext
    ) -> EmotionData:
        """Fuse a synchronized (or best-effort) modality pair."""
        pass

    def learn(self, fused: EmotionData) -> None:
        """
        Commit an accepted fused record to strategy state.

        Called by the orchestrator only after the record passed every gate;
        `fuse` itself never changes learned state. Memoryless strategies
        ignore it.
        """
        pass

    def _build(
        self,
        face: FaceEmotionData,
        voice: VoiceEmotionData,
        arousal: float,
        valence: float,
        basic_emotions: Dict[str, float],
        confidence: float,
        agreement: float,
        dominant_source: DominantSource,
        overall_quality: float,
        conflict: Optional[ConflictAnalysis] = None
    ) -> EmotionData:
        arousal = _clip(arousal)
        valence = _clip(valence)
        return EmotionData(
            timestamp=max(face.timestamp, voice.timestamp),
            arousal=arousal,
            valence=valence,
            affects=self.affect_calculator(arousal, valence),
            basic_emotions=basic_emotions,
            sources=FusionSources(face=face, voice=voice, combined=True),
            fusion=FusionInfo(
                confidence=confidence,
                agreement=agreement,
                dominant_source=dominant_source,
                conflict_resolution=self.resolution_label,
                conflict=conflict,
            ),
            quality=QualityIndicators(
                face_quality=face.confidence,
                voice_quality=voice.confidence,
                environmental_noise=environmental_noise(voice),
                overall_quality=overall_quality,
            ),
        )


class WeightedAverageFusion(FusionStrategy):
    """
    Confidence-weighted linear blend.

    Effective weight per modality = base weight * modality confidence.

    Usage:
        strategy = WeightedAverageFusion(face_weight=0.6, voice_weight=0.4)
        fused = strategy.fuse(face, voice, FusionContext())
    """

    strategy_type = StrategyType.WEIGHTED_AVERAGE
    resolution_label = "weighted-average"

    def __init__(
        self,
        face_weight: float = DEFAULT_FACE_WEIGHT,
        voice_weight: float = DEFAULT_VOICE_WEIGHT,
        affect_calculator: AffectCalculator = calculate_affects
    ):
        """
        Initialize strategy.

        Args:
            face_weight: Base weight for the face modality (>= 0)
            voice_weight: Base weight for the voice modality (>= 0)
            affect_calculator: (arousal, valence) -> affect shares
        """
        super().__init__(affect_calculator)

        if face_weight < 0 or voice_weight < 0:
            raise ValueError(f"Weights must be non-negative: {face_weight}, {voice_weight}")

        total = face_weight + voice_weight
        if total > 0:
            face_weight /= total
            voice_weight /= total

        self.face_weight = face_weight
        self.voice_weight = voice_weight

    def fuse(self, face, voice, context):
        validate_face(face)
        validate_voice(voice)

        face_w = self.face_weight * face.confidence
        voice_w = self.voice_weight * voice.confidence

        arousal = weighted_combine(face.arousal, voice.prosody.arousal, face_w, voice_w)
        valence = weighted_combine(face.valence, voice.prosody.valence, face_w, voice_w)

        voice_basic = self._voice_basic_emotions(voice)
        basic_emotions = {
            emotion: weighted_combine(
                face.face_emotions.get(emotion, 0.0),
                voice_basic.get(emotion, 0.0),
                face_w,
                voice_w,
            )
            for emotion in _emotion_keys(face)
        }

        mean_confidence = (face.confidence + voice.confidence) / 2

        if self.face_weight > self.voice_weight:
            dominant = DominantSource.FACE
        elif self.voice_weight > self.face_weight:
            dominant = DominantSource.VOICE
        else:
            dominant = DominantSource.BALANCED

        return self._build(
            face, voice, arousal, valence, basic_emotions,
            confidence=mean_confidence,
            agreement=self.agreement(face, voice),
            dominant_source=dominant,
            overall_quality=mean_confidence,
        )

    @staticmethod
    def agreement(face: FaceEmotionData, voice: VoiceEmotionData) -> float:
        """1 - mean absolute arousal/valence difference, clipped to [0, 1]."""
        arousal_diff = abs(face.arousal - voice.prosody.arousal)
        valence_diff = abs(face.valence - voice.prosody.valence)
        return _clip(1 - (arousal_diff + valence_diff) / 2, 0.0, 1.0)

    @staticmethod
    def _voice_basic_emotions(voice: VoiceEmotionData) -> Dict[str, float]:
        """Voice to basic emotion mapping used by weighted-average fusion."""
        ve = voice.voice_emotions
        prosody = voice.prosody
        mapped = {
            'happy': ve.excitement * 0.8,
            'sad': max(0.0, 1 - ve.engagement - prosody.valence),
            'angry': ve.stress * prosody.intensity,
            'fearful': ve.uncertainty * ve.stress,
            'surprised': prosody.intensity if prosody.arousal > 0.5 else 0.0,
            'disgusted': max(0.0, -prosody.valence * 0.5),
            'neutral': ve.authenticity * (1 - prosody.intensity),
        }
        return {k: _clip(v, 0.0, 1.0) for k, v in mapped.items()}


class ConfidenceBasedFusion(FusionStrategy):
    """
    Let the clearly more confident modality dominate.

    Decision rules:
    1. |face_conf - voice_conf| > 0.1: dominant modality 0.7, other 0.3
    2. Otherwise: balanced 0.5 / 0.5
    """

    strategy_type = StrategyType.CONFIDENCE_BASED
    resolution_label = "confidence-based"

    def fuse(self, face, voice, context):
        validate_face(face)
        validate_voice(voice)

        face_conf = face.confidence
        voice_conf = voice.confidence
        confidence_gap = abs(face_conf - voice_conf)

        if confidence_gap > CONFIDENCE_TIE_MARGIN:
            if face_conf > voice_conf:
                face_share, dominant = DOMINANT_SHARE, DominantSource.FACE
            else:
                face_share, dominant = 1 - DOMINANT_SHARE, DominantSource.VOICE
        else:
            face_share, dominant = 0.5, DominantSource.BALANCED
        voice_share = 1 - face_share

        arousal = face.arousal * face_share + voice.prosody.arousal * voice_share
        valence = face.valence * face_share + voice.prosody.valence * voice_share

        total_conf = face_conf + voice_conf
        ratio = face_conf / total_conf if total_conf > 0 else 0.5
        voice_basic = voice_basic_emotions(voice)
        basic_emotions = {
            emotion: face.face_emotions.get(emotion, 0.0) * ratio
            + voice_basic.get(emotion, 0.0) * (1 - ratio)
            for emotion in _emotion_keys(face)
        }

        best_confidence = max(face_conf, voice_conf)

        return self._build(
            face, voice, arousal, valence, basic_emotions,
            confidence=best_confidence,
            agreement=0.8 if confidence_gap < CLOSE_CONFIDENCE_MARGIN else 0.5,
            dominant_source=dominant,
            overall_quality=best_confidence,
        )


@dataclass
class SessionContext:
    """
    Descriptor of the session so far, built from fused history.

    Attributes:
        time_of_day: Local hour (0-23)
        session_length: Number of fused samples seen
        emotional_trend: Mean arousal/valence change over the last 5 samples
        arousal_variability: Std of arousal over the history window
        valence_variability: Std of valence over the history window
    """
    time_of_day: int
    session_length: int
    emotional_trend: float
    arousal_variability: float
    valence_variability: float


class AIMediatedFusion(FusionStrategy):
    """
    Conflict-aware fusion with an online-learned adjustment table.

    Algorithm:
    1. Describe the session context from fused history
    2. Analyze cross-modal conflict
    3. Start from modality confidences; damp unstable voice (x0.7); on a
       conflict favoring one side, boost it (x1.3) and damp the other (x0.7);
       renormalize
    4. Blend arousal/valence, add 10% of the learned bucket adjustment, clamp
    5. Once the record is accepted (`learn`), move the bucket's adjustment
       toward mean(arousal, valence) of the result by the learning rate

    Buckets are keyed by face and voice arousal level ('high' above 0.5,
    otherwise 'low'), e.g. 'high-low'. The table belongs to this instance and
    is never persisted unless exported.
    """

    strategy_type = StrategyType.AI_LEARNED
    resolution_label = ResolutionStrategy.AI_MEDIATED.value

    def __init__(
        self,
        conflict_analyzer: Optional[ConflictAnalyzer] = None,
        adaptive_weighting: bool = True,
        learning_rate: float = LEARNING_RATE,
        patterns: Optional[Dict[str, float]] = None,
        affect_calculator: AffectCalculator = calculate_affects
    ):
        """
        Initialize strategy.

        Args:
            conflict_analyzer: Analyzer to use (default thresholds if None)
            adaptive_weighting: Apply stability/conflict weight scaling
            learning_rate: Exponential smoothing factor for the pattern table
            patterns: Initial pattern table (copied)
            affect_calculator: (arousal, valence) -> affect shares
        """
        super().__init__(affect_calculator)
        self.conflict_analyzer = conflict_analyzer or ConflictAnalyzer()
        self.adaptive_weighting = adaptive_weighting
        self.learning_rate = learning_rate
        self._patterns: Dict[str, float] = dict(patterns or {})
        self.last_context: Optional[SessionContext] = None

    def fuse(self, face, voice, context):
        validate_face(face)
        validate_voice(voice)

        session = self.analyze_context(context.history)
        self.last_context = session
        conflict = self.conflict_analyzer.analyze(face, voice)
        weights = self.calculate_weights(face, voice, conflict)

        key = self.pattern_key(face, voice)
        adjustment = self._patterns.get(key, 0.0) * ADJUSTMENT_SCALE

        arousal = _clip(
            face.arousal * weights.face + voice.prosody.arousal * weights.voice + adjustment
        )
        valence = _clip(
            face.valence * weights.face + voice.prosody.valence * weights.voice + adjustment
        )

        voice_basic = self._voice_basic_emotions(voice)
        basic_emotions = {
            emotion: face.face_emotions.get(emotion, 0.0) * weights.face
            + voice_basic.get(emotion, 0.0) * weights.voice
            for emotion in _emotion_keys(face)
        }

        logger.debug(
            f"AI-mediated fusion: bucket={key}, weights=({weights.face:.2f}, "
            f"{weights.voice:.2f}), adjustment={adjustment:+.3f}, "
            f"session_length={session.session_length}"
        )

        return self._build(
            face, voice, arousal, valence, basic_emotions,
            confidence=weights.confidence,
            agreement=0.3 if conflict.has_conflict else 0.9,
            dominant_source=(
                DominantSource.FACE if weights.face > weights.voice else DominantSource.VOICE
            ),
            overall_quality=weights.quality,
            conflict=conflict,
        )

    def analyze_context(self, history: List[EmotionData]) -> SessionContext:
        window = history[-HISTORY_WINDOW:]

        trend = 0.0
        if len(window) >= 2:
            recent = window[-TREND_WINDOW:]
            arousal_trend = recent[-1].arousal - recent[0].arousal
            valence_trend = recent[-1].valence - recent[0].valence
            trend = (arousal_trend + valence_trend) / 2

        arousal_var = valence_var = 0.0
        if len(window) >= 2:
            arousal_var = float(np.std([s.arousal for s in window]))
            valence_var = float(np.std([s.valence for s in window]))

        return SessionContext(
            time_of_day=datetime.now().hour,
            session_length=len(history),
            emotional_trend=trend,
            arousal_variability=arousal_var,
            valence_variability=valence_var,
        )

    def calculate_weights(
        self,
        face: FaceEmotionData,
        voice: VoiceEmotionData,
        conflict: ConflictAnalysis
    ) -> FusionWeights:
        face_w = face.confidence
        voice_w = voice.confidence

        if self.adaptive_weighting:
            if voice.prosody.stability < UNSTABLE_VOICE_THRESHOLD:
                voice_w *= UNSTABLE_VOICE_PENALTY

            if conflict.has_conflict:
                if conflict.resolution_strategy is ResolutionStrategy.FACE_DOMINANT:
                    face_w *= RESOLUTION_BOOST
                    voice_w *= RESOLUTION_PENALTY
                elif conflict.resolution_strategy is ResolutionStrategy.VOICE_DOMINANT:
                    voice_w *= RESOLUTION_BOOST
                    face_w *= RESOLUTION_PENALTY

        total = face_w + voice_w
        if total > 0:
            face_w /= total
            voice_w /= total
        else:
            face_w = voice_w = 0.5

        return FusionWeights(
            face=face_w,
            voice=voice_w,
            confidence=min(face.confidence, voice.confidence) * conflict.resolution_confidence,
            quality=(face.confidence + voice.confidence) / 2,
        )

    @staticmethod
    def pattern_key(face: FaceEmotionData, voice: VoiceEmotionData) -> str:
        face_level = 'high' if face.arousal > HIGH_AROUSAL_THRESHOLD else 'low'
        voice_level = 'high' if voice.prosody.arousal > HIGH_AROUSAL_THRESHOLD else 'low'
        return f"{face_level}-{voice_level}"

    def learn(self, fused: EmotionData) -> None:
        """Move the bucket of the fused pair toward the accepted result."""
        face, voice = fused.sources.face, fused.sources.voice
        if face is None or voice is None:
            return

        key = self.pattern_key(face, voice)
        current = self._patterns.get(key, 0.0)
        target = (fused.arousal + fused.valence) / 2
        self._patterns[key] = current + (target - current) * self.learning_rate

    def export_patterns(self) -> Dict[str, float]:
        """Copy of the learned pattern table."""
        return dict(self._patterns)

    def load_patterns(self, patterns: Dict[str, float]) -> None:
        """Replace the learned pattern table (e.g. from a previous export)."""
        for key, value in patterns.items():
            _check_finite("pattern", {key: value})
        self._patterns = dict(patterns)
        logger.info(f"Loaded {len(self._patterns)} learned fusion patterns")

    @staticmethod
    def _voice_basic_emotions(voice: VoiceEmotionData) -> Dict[str, float]:
        """Voice to basic emotion mapping used by AI-mediated fusion (valence-scaled)."""
        ve = voice.voice_emotions
        prosody = voice.prosody
        mapped = {
            'happy': ve.excitement * prosody.valence,
            'sad': (1 - ve.engagement) * abs(prosody.valence),
            'angry': ve.stress * prosody.intensity,
            'fearful': ve.uncertainty * ve.stress,
            'surprised': prosody.intensity if prosody.arousal > 0 else 0.0,
            'disgusted': max(0.0, -prosody.valence * 0.8),
            'neutral': ve.authenticity * (1 - prosody.intensity),
        }
        return {k: _clip(v, 0.0, 1.0) for k, v in mapped.items()}


def fuse_face_only(
    face: FaceEmotionData,
    affect_calculator: AffectCalculator = calculate_affects
) -> EmotionData:
    """Passthrough record when only a face sample is available."""
    validate_face(face)
    arousal = _clip(face.arousal)
    valence = _clip(face.valence)
    return EmotionData(
        timestamp=face.timestamp,
        arousal=arousal,
        valence=valence,
        affects=affect_calculator(arousal, valence),
        basic_emotions=dict(face.face_emotions),
        sources=FusionSources(face=face, voice=None, combined=False),
        fusion=FusionInfo(
            confidence=face.confidence,
            agreement=1.0,
            dominant_source=DominantSource.FACE,
            conflict_resolution='face-only',
        ),
        quality=QualityIndicators(
            face_quality=face.confidence,
            voice_quality=0.0,
            environmental_noise=0.0,
            overall_quality=face.confidence,
        ),
    )


def fuse_voice_only(
    voice: VoiceEmotionData,
    affect_calculator: AffectCalculator = calculate_affects
) -> EmotionData:
    """Passthrough record when only a voice sample is available."""
    validate_voice(voice)
    arousal = _clip(voice.prosody.arousal)
    valence = _clip(voice.prosody.valence)
    return EmotionData(
        timestamp=voice.timestamp,
        arousal=arousal,
        valence=valence,
        affects=affect_calculator(arousal, valence),
        basic_emotions=voice_basic_emotions(voice),
        sources=FusionSources(face=None, voice=voice, combined=False),
        fusion=FusionInfo(
            confidence=voice.confidence,
            agreement=1.0,
            dominant_source=DominantSource.VOICE,
            conflict_resolution='voice-only',
        ),
        quality=QualityIndicators(
            face_quality=0.0,
            voice_quality=voice.confidence,
            environmental_noise=environmental_noise(voice),
            overall_quality=voice.confidence,
        ),
    )


def create_strategy(
    config: FusionConfig,
    affect_calculator: AffectCalculator = calculate_affects
) -> FusionStrategy:
    """
    Resolve the configured strategy name to a strategy instance.

    'mutual-information' and unrecognized names resolve to a weighted
    average with the default 0.6 / 0.4 weights.

    Args:
        config: Fusion configuration
        affect_calculator: (arousal, valence) -> affect shares

    Returns:
        FusionStrategy instance
    """
    try:
        strategy_type = StrategyType(config.strategy)
    except ValueError:
        logger.warning(
            f"Unknown fusion strategy '{config.strategy}', "
            f"falling back to {StrategyType.WEIGHTED_AVERAGE.value}"
        )
        return WeightedAverageFusion(affect_calculator=affect_calculator)

    if strategy_type is StrategyType.WEIGHTED_AVERAGE:
        return WeightedAverageFusion(
            face_weight=config.weights.face_weight,
            voice_weight=config.weights.voice_weight,
            affect_calculator=affect_calculator,
        )

    if strategy_type is StrategyType.CONFIDENCE_BASED:
        return ConfidenceBasedFusion(affect_calculator=affect_calculator)

    if strategy_type is StrategyType.AI_LEARNED:
        return AIMediatedFusion(
            conflict_analyzer=ConflictAnalyzer(
                threshold=config.conflict_resolution.disagreement_threshold
            ),
            adaptive_weighting=config.weights.adaptive_weighting,
            affect_calculator=affect_calculator,
        )

    logger.info(
        f"Strategy '{strategy_type.value}' has no dedicated implementation, "
        f"using {StrategyType.WEIGHTED_AVERAGE.value} with default weights"
    )
    return WeightedAverageFusion(affect_calculator=affect_calculator)
