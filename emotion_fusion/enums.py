"""
Enumerations for the multimodal emotion fusion engine.
"""

from enum import Enum


class Modality(str, Enum):
    """Independent sensing channels."""
    FACE = "face"
    VOICE = "voice"


class DominantSource(str, Enum):
    """Which modality drove a fused estimate."""
    FACE = "face"
    VOICE = "voice"
    BALANCED = "balanced"


class StrategyType(str, Enum):
    """Selectable fusion algorithms."""
    WEIGHTED_AVERAGE = "weighted-average"
    CONFIDENCE_BASED = "confidence-based"
    AI_LEARNED = "ai-learned"
    MUTUAL_INFORMATION = "mutual-information"  # Resolves to weighted average


class ResolutionStrategy(str, Enum):
    """How a cross-modal disagreement is resolved."""
    FACE_DOMINANT = "face-dominant"
    VOICE_DOMINANT = "voice-dominant"
    AVERAGE = "average"
    AI_MEDIATED = "ai-mediated"


class InterpolationMethod(str, Enum):
    """Interpolation hint carried by the synchronization settings."""
    LINEAR = "linear"
    CUBIC = "cubic"
    NEAREST = "nearest"
