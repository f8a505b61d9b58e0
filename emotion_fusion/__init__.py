"""
Multimodal emotion fusion engine.

Combines per-frame facial expression estimates and per-chunk voice prosody
estimates into one (arousal, valence) reading with affect shares, basic
emotion probabilities, confidence, agreement and quality indicators.

Components:
- TemporalBuffer: bounded per-modality history and best-effort pairing
- ConflictAnalyzer: cross-modal disagreement detection
- Fusion strategies: weighted average, confidence-based, AI-mediated
- FusionOrchestrator: streaming entry point with metrics and subscribers
"""

from .affects import (
    AFFECT_ANCHORS,
    basic_emotions_to_arousal_valence,
    calculate_affects,
    get_dominant_affect,
)
from .config import FusionConfig, load_fusion_config
from .conflict import ConflictAnalyzer
from .data_models import (
    ConflictAnalysis,
    EmotionData,
    FaceEmotionData,
    FusionContext,
    ProsodyFeatures,
    VoiceEmotionData,
    VoiceEmotions,
)
from .enums import DominantSource, Modality, ResolutionStrategy, StrategyType
from .exceptions import ConfigurationError, FusionComputationError, FusionError
from .metrics import FusionMetrics
from .orchestrator import FusionOrchestrator
from .strategies import (
    AIMediatedFusion,
    ConfidenceBasedFusion,
    FusionStrategy,
    WeightedAverageFusion,
    create_strategy,
)
from .temporal_buffer import SynchronizedPair, TemporalBuffer

__all__ = [
    'AFFECT_ANCHORS',
    'basic_emotions_to_arousal_valence',
    'calculate_affects',
    'get_dominant_affect',
    'FusionConfig',
    'load_fusion_config',
    'ConflictAnalyzer',
    'ConflictAnalysis',
    'EmotionData',
    'FaceEmotionData',
    'FusionContext',
    'ProsodyFeatures',
    'VoiceEmotionData',
    'VoiceEmotions',
    'DominantSource',
    'Modality',
    'ResolutionStrategy',
    'StrategyType',
    'ConfigurationError',
    'FusionComputationError',
    'FusionError',
    'FusionMetrics',
    'FusionOrchestrator',
    'AIMediatedFusion',
    'ConfidenceBasedFusion',
    'FusionStrategy',
    'WeightedAverageFusion',
    'create_strategy',
    'SynchronizedPair',
    'TemporalBuffer',
]
