"""
Core data models for the multimodal emotion fusion engine.

Per-modality records arrive from external collaborators (face expression
detector, voice prosody analyzer) and are consumed as-is. The fused record
is the single consensus estimate handed to downstream consumers.

Timestamps are milliseconds on the producer's clock. The two modalities do
not share a clock, so only ordering and rough proximity are meaningful.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from utils.config_loader import normalize_keys

from .enums import DominantSource, ResolutionStrategy

BASIC_EMOTIONS = (
    'neutral', 'happy', 'sad', 'angry', 'fearful', 'disgusted', 'surprised'
)


@dataclass
class FaceEmotionData:
    """
    Emotion estimate derived from facial expression.

    Attributes:
        timestamp: Capture time in milliseconds
        arousal: Activation (-1 calm to 1 excited)
        valence: Pleasantness (-1 negative to 1 positive)
        face_emotions: Basic emotion probabilities (0-1)
        confidence: Face detection confidence (0-1)
        landmarks: Optional raw landmark payload
    """
    timestamp: float
    arousal: float
    valence: float
    face_emotions: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0
    landmarks: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FaceEmotionData':
        """Build from a wire record (camelCase or snake_case keys)."""
        data = normalize_keys(data, depth=1)
        return cls(
            timestamp=float(data['timestamp']),
            arousal=float(data['arousal']),
            valence=float(data['valence']),
            face_emotions=dict(data.get('face_emotions') or {}),
            confidence=float(data.get('confidence', 0.0)),
            landmarks=data.get('landmarks'),
        )


@dataclass
class ProsodyFeatures:
    """Speech prosody summary (arousal/valence in [-1,1], rest in [0,1])."""
    arousal: float
    valence: float
    intensity: float = 0.0
    stability: float = 1.0
    pace: float = 0.5
    volume: float = 0.5
    pitch: float = 0.5


@dataclass
class VoiceEmotions:
    """Voice-specific affective indicators (0-1)."""
    excitement: float = 0.0
    stress: float = 0.0
    uncertainty: float = 0.0
    engagement: float = 0.0
    authenticity: float = 0.0
    fatigue: float = 0.0


@dataclass
class VoiceEmotionData:
    """
    Emotion estimate derived from voice prosody.

    Attributes:
        timestamp: Chunk time in milliseconds
        prosody: Prosodic arousal/valence and delivery features
        voice_emotions: Voice-specific indicators
        confidence: Overall analysis confidence (0-1)
        provider: Name of the upstream analyzer
    """
    timestamp: float
    prosody: ProsodyFeatures
    voice_emotions: VoiceEmotions = field(default_factory=VoiceEmotions)
    confidence: float = 0.0
    provider: str = "mock"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VoiceEmotionData':
        """Build from a wire record (camelCase or snake_case keys)."""
        data = normalize_keys(data, depth=2)
        prosody = data['prosody']
        voice_emotions = data.get('voice_emotions') or {}
        # The wire format repeats the detector confidence inside voiceEmotions
        voice_emotions = {
            k: float(v) for k, v in voice_emotions.items()
            if k in VoiceEmotions.__dataclass_fields__
        }
        return cls(
            timestamp=float(data['timestamp']),
            prosody=ProsodyFeatures(**{
                k: float(v) for k, v in prosody.items()
                if k in ProsodyFeatures.__dataclass_fields__
            }),
            voice_emotions=VoiceEmotions(**voice_emotions),
            confidence=float(data.get('confidence', 0.0)),
            provider=data.get('provider', 'mock'),
        )


@dataclass
class FusionWeights:
    """Per-call modality weights and derived confidence/quality."""
    face: float
    voice: float
    confidence: float
    quality: float


@dataclass
class ConflictAnalysis:
    """
    Cross-modal disagreement assessment.

    Attributes:
        has_conflict: Whether any axis exceeded the disagreement threshold
        conflict_severity: Largest per-axis difference (not clipped)
        conflict_dimensions: Axes that exceeded the threshold
        resolution_strategy: How the conflict should be resolved
        resolution_confidence: Confidence in that resolution (0-1)
    """
    has_conflict: bool
    conflict_severity: float
    conflict_dimensions: List[str]
    resolution_strategy: ResolutionStrategy
    resolution_confidence: float


@dataclass
class FusionSources:
    """Inputs that produced a fused record."""
    face: Optional[FaceEmotionData]
    voice: Optional[VoiceEmotionData]
    combined: bool


@dataclass
class FusionInfo:
    """How a fused record was produced."""
    confidence: float
    agreement: float
    dominant_source: DominantSource
    conflict_resolution: str
    conflict: Optional[ConflictAnalysis] = None


@dataclass
class QualityIndicators:
    """Signal quality of the fused record (0-1)."""
    face_quality: float
    voice_quality: float
    environmental_noise: float
    overall_quality: float


@dataclass
class EmotionData:
    """Fused multimodal emotional state."""
    timestamp: float
    arousal: float
    valence: float
    affects: Dict[str, float]
    basic_emotions: Dict[str, float]
    sources: FusionSources
    fusion: FusionInfo
    quality: QualityIndicators

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain Python types."""
        data = asdict(self)
        data['fusion']['dominant_source'] = self.fusion.dominant_source.value
        if self.fusion.conflict is not None:
            data['fusion']['conflict']['resolution_strategy'] = (
                self.fusion.conflict.resolution_strategy.value
            )
        return data


@dataclass
class FusionContext:
    """
    Context handed to a strategy alongside the modality pair.

    Attributes:
        history: Previously fused records, oldest first
    """
    history: List[EmotionData] = field(default_factory=list)
