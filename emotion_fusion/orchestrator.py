"""
Fusion orchestrator: the streaming entry point of the engine.

Per incoming sample:
1. Validate and append to the temporal buffer (malformed samples are dropped)
2. Search for a synchronized face/voice pair (best effort)
3. Apply quality gates
4. Dispatch: nothing -> skip; one modality -> passthrough; pair -> strategy
5. Commit learning, update metrics and history (accepted records only)
6. Deliver to subscribers, inline

Everything runs on the calling thread before add_face_data/add_voice_data
return. The orchestrator is not thread-safe; callers serialize access.

Failures inside a fusion attempt are contained here: they are logged, the
attempt is dropped, and buffers/metrics stay consistent. Callers of the
add_* methods never see an exception; they observe either an emission or
silence, and silence means "carry forward the last known state".
"""

import logging
import time
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, Dict, List, Optional, Tuple, Union

from .affects import calculate_affects
from .config import FusionConfig
from .data_models import (
    ConflictAnalysis,
    EmotionData,
    FaceEmotionData,
    FusionContext,
    VoiceEmotionData,
)
from .enums import Modality
from .exceptions import FusionComputationError
from .metrics import FusionMetrics
from .strategies import (
    AffectCalculator,
    AIMediatedFusion,
    FusionStrategy,
    create_strategy,
    fuse_face_only,
    fuse_voice_only,
    validate_face,
    validate_voice,
)
from .temporal_buffer import TemporalBuffer

logger = logging.getLogger(__name__)

HISTORY_SIZE = 100

FusedCallback = Callable[[EmotionData], None]
ConflictCallback = Callable[[ConflictAnalysis], None]


class FusionOrchestrator:
    """
    Multimodal emotion fusion service.

    Usage:
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        orchestrator.on_fused_emotion(handle_emotion)
        orchestrator.add_face_data(face_sample)
        orchestrator.add_voice_data(voice_sample)
    """

    def __init__(
        self,
        config: Union[FusionConfig, Dict, None] = None,
        strategy: Optional[FusionStrategy] = None,
        affect_calculator: AffectCalculator = calculate_affects
    ):
        """
        Initialize orchestrator.

        Args:
            config: FusionConfig or mapping (defaults if None)
            strategy: Pre-built strategy; resolved from config if None
            affect_calculator: (arousal, valence) -> affect shares, used for
                single-modality records and by config-resolved strategies

        Raises:
            ConfigurationError: If the configuration is structurally invalid
        """
        if not isinstance(config, FusionConfig):
            config = FusionConfig.from_dict(config)

        self.config = config
        self.affect_calculator = affect_calculator
        self.strategy = strategy or create_strategy(config, affect_calculator)
        self.buffer = TemporalBuffer(config.synchronization.buffer_size)
        self.metrics = FusionMetrics()
        self.history: Deque[EmotionData] = deque(maxlen=HISTORY_SIZE)

        self._fused_subscribers: List[FusedCallback] = []
        self._conflict_subscribers: List[ConflictCallback] = []

        logger.info(
            f"Fusion orchestrator initialized: strategy={config.strategy} "
            f"({type(self.strategy).__name__}), "
            f"buffer_size={config.synchronization.buffer_size}, "
            f"max_time_drift={config.synchronization.max_time_drift}ms"
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_face_data(self, face: FaceEmotionData) -> None:
        """Buffer a face sample and attempt a fusion. Malformed samples are dropped."""
        if not self._admit(validate_face, face, Modality.FACE):
            return
        self.buffer.add_face(face)
        self._attempt_fusion()

    def add_voice_data(self, voice: VoiceEmotionData) -> None:
        """Buffer a voice sample and attempt a fusion. Malformed samples are dropped."""
        if not self._admit(validate_voice, voice, Modality.VOICE):
            return
        self.buffer.add_voice(voice)
        self._attempt_fusion()

    def mark_face_missing(self, timestamp: float) -> None:
        """Record a face detector dropout (no fusion attempt)."""
        self.buffer.record_gap(Modality.FACE, timestamp)

    def mark_voice_missing(self, timestamp: float) -> None:
        """Record a voice analyzer dropout (no fusion attempt)."""
        self.buffer.record_gap(Modality.VOICE, timestamp)

    def force_fusion(self) -> Optional[EmotionData]:
        """
        Fuse the latest sample of each modality, ignoring time drift.

        Subscribers are not notified; the record is returned instead.

        Returns:
            Fused record, or None if nothing is buffered (or the attempt
            was gated or failed)
        """
        if not self.config.enabled:
            logger.debug("Fusion disabled, force_fusion skipped")
            return None

        face = self.buffer.latest_face()
        voice = self.buffer.latest_voice()

        if face is None and voice is None:
            logger.debug("No modality data buffered, nothing to fuse")
            return None

        return self._perform_fusion(face, voice)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _admit(self, validator: Callable, sample, modality: Modality) -> bool:
        try:
            validator(sample)
        except FusionComputationError as e:
            logger.warning(f"Rejected {modality.value} sample: {e}")
            return False
        return True

    def _attempt_fusion(self) -> None:
        if not self.config.enabled:
            logger.debug("Fusion disabled, sample buffered only")
            return

        max_drift = self.config.synchronization.max_time_drift
        try:
            pair = self.buffer.find_synchronized_pair(max_drift)
        except Exception:
            logger.exception("Synchronization search failed, skipping fusion")
            return

        if pair.is_empty:
            logger.debug("No modality data available, skipping fusion")
            return

        if pair.face is not None and pair.voice is not None and not pair.synchronized:
            logger.debug(
                f"No pair within {max_drift}ms, fusing latest samples "
                f"(face={pair.face.timestamp}, voice={pair.voice.timestamp})"
            )

        fused = self._perform_fusion(pair.face, pair.voice)
        if fused is not None:
            self._publish(fused)

    def _perform_fusion(
        self,
        face: Optional[FaceEmotionData],
        voice: Optional[VoiceEmotionData]
    ) -> Optional[EmotionData]:
        try:
            face, voice = self._apply_quality_gates(face, voice)
            if face is None and voice is None:
                return None

            start = time.perf_counter()
            self.metrics.record_attempt()

            if face is not None and voice is not None:
                context = FusionContext(history=list(self.history))
                fused = self.strategy.fuse(face, voice, context)
            elif face is not None:
                fused = fuse_face_only(face, self.affect_calculator)
            else:
                fused = fuse_voice_only(voice, self.affect_calculator)

            min_quality = self.config.quality_gates.min_overall_quality
            if fused.quality.overall_quality < min_quality:
                logger.debug(
                    f"Fused quality {fused.quality.overall_quality:.2f} below "
                    f"{min_quality:.2f}, not emitted"
                )
                return None

            if fused.sources.combined:
                self.strategy.learn(fused)
        except FusionComputationError as e:
            logger.warning(f"Emotion fusion dropped: {e}")
            return None
        except Exception:
            logger.exception("Emotion fusion failed, dropping attempt")
            return None

        latency_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_success(fused, latency_ms)
        self.history.append(fused)

        return fused

    def _apply_quality_gates(
        self,
        face: Optional[FaceEmotionData],
        voice: Optional[VoiceEmotionData]
    ) -> Tuple[Optional[FaceEmotionData], Optional[VoiceEmotionData]]:
        gates = self.config.quality_gates
        dropped = False

        if face is not None and face.confidence < gates.min_face_confidence:
            logger.debug(f"Face confidence {face.confidence:.2f} below gate, excluded")
            face = None
            dropped = True

        if voice is not None and voice.confidence < gates.min_voice_confidence:
            logger.debug(f"Voice confidence {voice.confidence:.2f} below gate, excluded")
            voice = None
            dropped = True

        single = (face is None) != (voice is None)
        if single:
            if gates.require_both_modalities:
                logger.debug("Both modalities required, single-modality fusion skipped")
                return None, None
            if dropped and not self.config.conflict_resolution.fallback_to_single:
                logger.debug("Fallback to single modality disabled, fusion skipped")
                return None, None

        return face, voice

    def _publish(self, fused: EmotionData) -> None:
        for callback in list(self._fused_subscribers):
            try:
                callback(fused)
            except Exception:
                logger.exception("Fused-emotion subscriber raised")

        conflict = fused.fusion.conflict
        if conflict is not None and conflict.has_conflict:
            for callback in list(self._conflict_subscribers):
                try:
                    callback(conflict)
                except Exception:
                    logger.exception("Conflict subscriber raised")

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def on_fused_emotion(self, callback: FusedCallback) -> Callable[[], None]:
        """
        Subscribe to fused records.

        Returns:
            Callable that removes this subscription
        """
        self._fused_subscribers.append(callback)
        return lambda: _discard(self._fused_subscribers, callback)

    def on_conflict_detected(self, callback: ConflictCallback) -> Callable[[], None]:
        """
        Subscribe to cross-modal conflicts surfaced by the active strategy.

        Returns:
            Callable that removes this subscription
        """
        self._conflict_subscribers.append(callback)
        return lambda: _discard(self._conflict_subscribers, callback)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_metrics(self) -> FusionMetrics:
        """Snapshot copy of the running metrics."""
        return replace(self.metrics)

    def get_history(self) -> List[EmotionData]:
        """Fused records retained for context, oldest first."""
        return list(self.history)

    def export_learned_patterns(self) -> Dict[str, float]:
        """Learned pattern table of the active strategy (empty if stateless)."""
        if isinstance(self.strategy, AIMediatedFusion):
            return self.strategy.export_patterns()
        return {}

    def update_config(self, partial: Union[Dict, FusionConfig]) -> None:
        """
        Merge configuration changes (shallow, per top-level section).

        Takes effect for subsequent fusions only. A learned pattern table
        carries over when the AI-learned strategy stays selected.

        Raises:
            ConfigurationError: If the merged configuration is invalid
        """
        if isinstance(partial, FusionConfig):
            new_config = partial
        else:
            new_config = self.config.merged(partial)

        strategy_changed = (
            new_config.strategy != self.config.strategy
            or new_config.weights != self.config.weights
            or new_config.conflict_resolution != self.config.conflict_resolution
        )
        if strategy_changed:
            new_strategy = create_strategy(new_config, self.affect_calculator)
            if isinstance(self.strategy, AIMediatedFusion) and isinstance(new_strategy, AIMediatedFusion):
                new_strategy.load_patterns(self.strategy.export_patterns())
            self.strategy = new_strategy

        self.buffer.resize(new_config.synchronization.buffer_size)
        self.config = new_config

        logger.info(
            f"Fusion config updated: strategy={new_config.strategy} "
            f"({type(self.strategy).__name__}), enabled={new_config.enabled}"
        )

    def reset(self) -> None:
        """Clear buffers, history and metrics. Learned patterns are kept."""
        self.buffer.clear()
        self.history.clear()
        self.metrics = FusionMetrics()
        logger.debug("Fusion orchestrator reset")

    def destroy(self) -> None:
        """Reset and detach all subscribers."""
        self.reset()
        self._fused_subscribers.clear()
        self._conflict_subscribers.clear()
        logger.debug("Fusion orchestrator destroyed")


def _discard(subscribers: List, callback: Callable) -> None:
    if callback in subscribers:
        subscribers.remove(callback)
