"""
Unit tests for the fusion orchestrator.

Tests cover:
- Push-driven fusion and subscriber delivery
- Forced fusion
- Metrics and history
- Failure containment and malformed input
- Pattern learning on accepted records
- Quality gates and the enabled flag
- Configuration updates and lifecycle
"""

import logging

import pytest # pyright: ignore[reportMissingImports]
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from emotion_fusion.data_models import (
    FaceEmotionData,
    ProsodyFeatures,
    VoiceEmotionData,
)
from emotion_fusion.enums import DominantSource, ResolutionStrategy
from emotion_fusion.exceptions import ConfigurationError
from emotion_fusion.orchestrator import HISTORY_SIZE, FusionOrchestrator
from emotion_fusion.strategies import (
    AIMediatedFusion,
    ConfidenceBasedFusion,
    FusionStrategy,
    WeightedAverageFusion,
)


def make_face(timestamp=1000, arousal=0.6, valence=0.4, confidence=0.8):
    return FaceEmotionData(timestamp=timestamp, arousal=arousal, valence=valence,
                           face_emotions={'happy': 0.7}, confidence=confidence)


def make_voice(timestamp=1050, arousal=0.2, valence=0.2, confidence=0.8):
    return VoiceEmotionData(timestamp=timestamp,
                            prosody=ProsodyFeatures(arousal=arousal, valence=valence),
                            confidence=confidence)


class ExplodingStrategy(FusionStrategy):
    """Strategy that fails on every pair."""

    resolution_label = "exploding"

    def fuse(self, face, voice, context):
        raise RuntimeError("boom")


@pytest.fixture
def orchestrator():
    return FusionOrchestrator()


@pytest.fixture
def received(orchestrator):
    records = []
    orchestrator.on_fused_emotion(records.append)
    return records


class TestPushFusion:
    """Test fusion on incoming samples."""

    def test_face_only_emits_passthrough(self, orchestrator, received):
        orchestrator.add_face_data(make_face())

        assert len(received) == 1
        fused = received[0]
        assert fused.sources.voice is None
        assert fused.fusion.agreement == 1.0
        assert fused.fusion.dominant_source is DominantSource.FACE
        assert fused.fusion.conflict_resolution == 'face-only'

    def test_voice_only_emits_passthrough(self, orchestrator, received):
        orchestrator.add_voice_data(make_voice())
        assert received[0].fusion.conflict_resolution == 'voice-only'

    def test_pair_uses_strategy(self, orchestrator, received):
        orchestrator.add_face_data(make_face())
        orchestrator.add_voice_data(make_voice())

        assert len(received) == 2
        fused = received[1]
        assert fused.sources.combined is True
        assert fused.arousal == pytest.approx(0.44)
        assert fused.valence == pytest.approx(0.32)

    def test_far_apart_samples_still_fused(self, orchestrator, received):
        orchestrator.add_face_data(make_face(timestamp=0))
        orchestrator.add_voice_data(make_voice(timestamp=60000))
        assert received[-1].sources.combined is True

    def test_history_and_metrics(self, orchestrator, received):
        orchestrator.add_face_data(make_face())
        orchestrator.add_voice_data(make_voice())

        metrics = orchestrator.get_metrics()
        assert metrics.total_fusions == 2
        assert metrics.successful_fusions == 2
        assert metrics.failed_fusions == 0
        assert metrics.average_latency >= 0
        assert metrics.modality_preference is DominantSource.FACE
        assert orchestrator.get_history() == received

    def test_history_bounded(self, orchestrator):
        for i in range(HISTORY_SIZE + 20):
            orchestrator.add_face_data(make_face(timestamp=i))
        assert len(orchestrator.get_history()) == HISTORY_SIZE

    def test_rolling_metrics(self, orchestrator):
        orchestrator.add_face_data(make_face(confidence=0.8))
        metrics = orchestrator.get_metrics()
        assert metrics.average_confidence == pytest.approx(0.4)
        assert metrics.average_quality == pytest.approx(0.4)
        assert metrics.conflict_rate == 0.0

    def test_conflict_rate_rises_on_disagreement(self):
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        orchestrator.add_face_data(make_face(arousal=0.9, valence=0.9, confidence=0.9))
        orchestrator.add_voice_data(make_voice(arousal=-0.9, valence=-0.9, confidence=0.9))
        assert orchestrator.get_metrics().conflict_rate == pytest.approx(0.5)


class TestForceFusion:
    """Test fusion on demand."""

    def test_nothing_buffered(self, orchestrator):
        assert orchestrator.force_fusion() is None
        assert orchestrator.get_metrics().total_fusions == 0

    def test_repeatable_without_new_data(self, orchestrator):
        orchestrator.add_face_data(make_face())
        orchestrator.add_voice_data(make_voice(timestamp=90000))

        first = orchestrator.force_fusion()
        second = orchestrator.force_fusion()
        assert first is not None
        assert first == second

    def test_does_not_notify_subscribers(self, orchestrator, received):
        orchestrator.add_face_data(make_face())
        received.clear()

        fused = orchestrator.force_fusion()
        assert fused is not None
        assert received == []
        assert orchestrator.get_history()[-1] is fused

    def test_uses_latest_samples(self, orchestrator):
        orchestrator.add_face_data(make_face(timestamp=1000, arousal=0.1))
        orchestrator.add_voice_data(make_voice(timestamp=1100))
        orchestrator.add_face_data(make_face(timestamp=99000, arousal=0.9))

        fused = orchestrator.force_fusion()
        assert fused.sources.face.arousal == 0.9


class TestFailureContainment:
    """Test that a failing attempt never escapes or corrupts state."""

    def test_nan_input_dropped(self, orchestrator, received, caplog):
        with caplog.at_level(logging.WARNING):
            orchestrator.add_face_data(make_face(arousal=float('nan')))

        assert received == []
        assert len(orchestrator.buffer) == 0
        metrics = orchestrator.get_metrics()
        assert metrics.total_fusions == 0
        assert metrics.successful_fusions == 0
        assert 'arousal' in caplog.text

    def test_strategy_exception_contained(self, received):
        orchestrator = FusionOrchestrator(strategy=ExplodingStrategy())
        orchestrator.on_fused_emotion(received.append)

        orchestrator.add_face_data(make_face())
        orchestrator.add_voice_data(make_voice())

        assert len(received) == 1
        metrics = orchestrator.get_metrics()
        assert metrics.total_fusions == 2
        assert metrics.successful_fusions == 1
        assert len(orchestrator.get_history()) == 1

    def test_recovers_after_failure(self, orchestrator, received):
        orchestrator.add_face_data(make_face(timestamp=1000, arousal=float('nan')))
        orchestrator.add_voice_data(make_voice(timestamp=1050))
        assert len(received) == 1
        assert received[0].sources.face is None

        orchestrator.add_face_data(make_face(timestamp=1100))
        assert len(received) == 2
        assert received[-1].sources.combined is True

        metrics = orchestrator.get_metrics()
        assert metrics.total_fusions == 2
        assert metrics.successful_fusions == 2

    def test_affect_calculator_exception_contained(self, received):
        def broken(arousal, valence):
            raise RuntimeError("catalog unavailable")

        orchestrator = FusionOrchestrator(affect_calculator=broken)
        orchestrator.on_fused_emotion(received.append)
        orchestrator.add_face_data(make_face())

        assert received == []
        metrics = orchestrator.get_metrics()
        assert metrics.total_fusions == 1
        assert metrics.successful_fusions == 0

    def test_subscriber_exception_isolated(self, orchestrator):
        delivered = []

        def broken(_):
            raise ValueError("subscriber bug")

        orchestrator.on_fused_emotion(broken)
        orchestrator.on_fused_emotion(delivered.append)
        orchestrator.add_face_data(make_face())

        assert len(delivered) == 1
        assert orchestrator.get_metrics().successful_fusions == 1


class TestMalformedInput:
    """Test that malformed samples are rejected before buffering."""

    def test_missing_confidence(self, orchestrator, received, caplog):
        with caplog.at_level(logging.WARNING):
            orchestrator.add_face_data(make_face(confidence=None))

        assert received == []
        assert len(orchestrator.buffer) == 0
        assert orchestrator.get_metrics().total_fusions == 0
        assert 'confidence' in caplog.text

    def test_non_numeric_confidence(self, orchestrator, received):
        orchestrator.add_face_data(make_face(confidence='high'))
        orchestrator.add_voice_data(make_voice(confidence='0.8'))

        assert received == []
        assert len(orchestrator.buffer) == 0

    def test_missing_timestamp_does_not_block_other_modality(self, orchestrator, received):
        orchestrator.add_voice_data(make_voice())
        orchestrator.add_face_data(make_face(timestamp=None))

        assert len(received) == 1
        assert received[0].sources.face is None
        assert len(orchestrator.buffer.face_data) == 0

    def test_missing_voice_timestamp(self, orchestrator, received):
        orchestrator.add_face_data(make_face())
        orchestrator.add_voice_data(make_voice(timestamp=None))

        assert len(received) == 1
        assert received[0].sources.voice is None
        assert len(orchestrator.buffer.voice_data) == 0

    def test_none_sample(self, orchestrator, received):
        orchestrator.add_face_data(None)
        orchestrator.add_voice_data(None)

        assert received == []
        assert len(orchestrator.buffer) == 0

    def test_valid_sample_after_rejection(self, orchestrator, received):
        orchestrator.add_face_data(make_face(confidence=None))
        orchestrator.add_face_data(make_face())
        assert len(received) == 1


class TestPatternLearning:
    """Test that only accepted records train the AI-learned strategy."""

    def test_accepted_pair_trains(self):
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        orchestrator.add_face_data(make_face(arousal=0.8, valence=0.6))
        orchestrator.add_voice_data(make_voice(arousal=0.7, valence=0.5))

        assert orchestrator.export_learned_patterns() == {'high-high': pytest.approx(0.065)}

    def test_quality_gate_drop_does_not_train(self):
        orchestrator = FusionOrchestrator({
            'strategy': 'ai-learned',
            'quality_gates': {'min_overall_quality': 0.9},
        })
        orchestrator.add_face_data(make_face(arousal=0.8, valence=0.6))
        orchestrator.add_voice_data(make_voice(arousal=0.7, valence=0.5))

        assert orchestrator.get_metrics().successful_fusions == 0
        assert orchestrator.export_learned_patterns() == {}

    def test_failed_attempt_does_not_train(self):
        def broken(arousal, valence):
            raise RuntimeError("catalog unavailable")

        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'}, affect_calculator=broken)
        orchestrator.add_face_data(make_face(arousal=0.8, valence=0.6))
        orchestrator.add_voice_data(make_voice(arousal=0.7, valence=0.5))

        assert orchestrator.get_metrics().successful_fusions == 0
        assert orchestrator.export_learned_patterns() == {}

    def test_single_modality_does_not_train(self):
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        orchestrator.add_face_data(make_face(arousal=0.8, valence=0.6))

        assert orchestrator.get_metrics().successful_fusions == 1
        assert orchestrator.export_learned_patterns() == {}


class TestSubscribers:
    """Test subscriber lists."""

    def test_multiple_subscribers(self, orchestrator):
        first, second = [], []
        orchestrator.on_fused_emotion(first.append)
        orchestrator.on_fused_emotion(second.append)
        orchestrator.add_face_data(make_face())
        assert len(first) == len(second) == 1

    def test_unsubscribe(self, orchestrator):
        records = []
        unsubscribe = orchestrator.on_fused_emotion(records.append)
        unsubscribe()
        unsubscribe()
        orchestrator.add_face_data(make_face())
        assert records == []

    def test_conflict_subscriber(self):
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        conflicts = []
        orchestrator.on_conflict_detected(conflicts.append)

        orchestrator.add_face_data(make_face(arousal=0.9, valence=0.9, confidence=0.9))
        assert conflicts == []

        orchestrator.add_voice_data(make_voice(arousal=-0.9, valence=-0.9, confidence=0.9))
        assert len(conflicts) == 1
        assert conflicts[0].has_conflict is True
        assert conflicts[0].conflict_severity >= 1.6
        assert conflicts[0].resolution_strategy is ResolutionStrategy.AI_MEDIATED

    def test_no_conflict_notification_on_agreement(self):
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        conflicts = []
        orchestrator.on_conflict_detected(conflicts.append)
        orchestrator.add_face_data(make_face(arousal=0.5, valence=0.3))
        orchestrator.add_voice_data(make_voice(arousal=0.4, valence=0.2))
        assert conflicts == []


class TestQualityGates:
    """Test input and output quality gates."""

    def test_low_confidence_face_excluded(self, orchestrator, received):
        orchestrator.add_face_data(make_face(confidence=0.2))
        assert received == []
        assert orchestrator.get_metrics().total_fusions == 0

    def test_low_confidence_modality_falls_back_to_other(self, orchestrator, received):
        orchestrator.add_voice_data(make_voice(confidence=0.8))
        orchestrator.add_face_data(make_face(confidence=0.2))
        assert received[-1].fusion.conflict_resolution == 'voice-only'

    def test_fallback_to_single_disabled(self, received):
        orchestrator = FusionOrchestrator({'conflict_resolution': {'fallback_to_single': False}})
        orchestrator.on_fused_emotion(received.append)

        orchestrator.add_voice_data(make_voice(confidence=0.8))
        assert len(received) == 1

        orchestrator.add_face_data(make_face(confidence=0.2))
        assert len(received) == 1

    def test_require_both_modalities(self, received):
        orchestrator = FusionOrchestrator({'quality_gates': {'require_both_modalities': True}})
        orchestrator.on_fused_emotion(received.append)

        orchestrator.add_face_data(make_face())
        assert received == []

        orchestrator.add_voice_data(make_voice())
        assert len(received) == 1
        assert received[0].sources.combined is True

    def test_min_overall_quality(self, orchestrator, received):
        orchestrator.add_face_data(make_face(confidence=0.35))

        assert received == []
        metrics = orchestrator.get_metrics()
        assert metrics.total_fusions == 1
        assert metrics.successful_fusions == 0
        assert orchestrator.get_history() == []


class TestEnabledFlag:
    """Test disabled fusion."""

    def test_disabled_buffers_only(self, received):
        orchestrator = FusionOrchestrator({'enabled': False})
        orchestrator.on_fused_emotion(received.append)

        orchestrator.add_face_data(make_face())
        assert received == []
        assert len(orchestrator.buffer) == 1
        assert orchestrator.force_fusion() is None

    def test_reenable(self, received):
        orchestrator = FusionOrchestrator({'enabled': False})
        orchestrator.on_fused_emotion(received.append)
        orchestrator.add_face_data(make_face())

        orchestrator.update_config({'enabled': True})
        orchestrator.add_voice_data(make_voice())
        assert received[0].sources.combined is True


class TestConfiguration:
    """Test strategy resolution and config updates."""

    def test_default_strategy(self, orchestrator):
        assert isinstance(orchestrator.strategy, WeightedAverageFusion)

    def test_unknown_strategy_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            orchestrator = FusionOrchestrator({'strategy': 'does-not-exist'})

        assert type(orchestrator.strategy) is WeightedAverageFusion
        assert orchestrator.strategy.face_weight == pytest.approx(0.6)
        assert 'does-not-exist' in caplog.text

        received = []
        orchestrator.on_fused_emotion(received.append)
        orchestrator.add_face_data(make_face())
        orchestrator.add_voice_data(make_voice())
        assert received[-1].arousal == pytest.approx(0.44)

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            FusionOrchestrator({'synchronization': {'buffer_size': 0}})

    def test_update_strategy(self, orchestrator):
        orchestrator.update_config({'strategy': 'confidence-based'})
        assert isinstance(orchestrator.strategy, ConfidenceBasedFusion)
        assert orchestrator.config.strategy == 'confidence-based'

    def test_update_buffer_size(self, orchestrator):
        for i in range(10):
            orchestrator.add_face_data(make_face(timestamp=i))

        orchestrator.update_config({'synchronization': {'bufferSize': 3}})
        assert orchestrator.buffer.max_buffer_size == 3
        assert len(orchestrator.buffer.face_data) == 3
        assert orchestrator.config.synchronization.max_time_drift == 1000

    def test_invalid_update_keeps_previous_config(self, orchestrator):
        with pytest.raises(ConfigurationError):
            orchestrator.update_config({'weights': {'face_weight': -1}})
        assert orchestrator.config.weights.face_weight == 0.6

    def test_non_mapping_section_update_rejected(self, orchestrator):
        with pytest.raises(ConfigurationError):
            orchestrator.update_config({'weights': None})
        assert orchestrator.config.weights.face_weight == 0.6

        with pytest.raises(ConfigurationError):
            orchestrator.update_config({'quality_gates': {'min_face_confidence': 'low'}})
        assert orchestrator.config.quality_gates.min_face_confidence == 0.3

    def test_learned_patterns_survive_weight_update(self):
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        orchestrator.add_face_data(make_face(arousal=0.8, valence=0.6))
        orchestrator.add_voice_data(make_voice(arousal=0.7, valence=0.5))
        learned = orchestrator.export_learned_patterns()
        assert 'high-high' in learned

        orchestrator.update_config({'weights': {'adaptive_weighting': False}})
        assert isinstance(orchestrator.strategy, AIMediatedFusion)
        assert orchestrator.strategy.adaptive_weighting is False
        assert orchestrator.export_learned_patterns() == learned

    def test_stateless_strategy_exports_nothing(self, orchestrator):
        assert orchestrator.export_learned_patterns() == {}

    def test_injected_strategy(self):
        strategy = AIMediatedFusion(patterns={'low-low': 0.2})
        orchestrator = FusionOrchestrator(strategy=strategy)
        assert orchestrator.export_learned_patterns() == {'low-low': 0.2}


class TestState:
    """Test metrics snapshots and lifecycle."""

    def test_metrics_snapshot_is_copy(self, orchestrator):
        orchestrator.add_face_data(make_face())
        snapshot = orchestrator.get_metrics()
        snapshot.total_fusions = 999
        assert orchestrator.get_metrics().total_fusions == 1

    def test_history_is_copy(self, orchestrator):
        orchestrator.add_face_data(make_face())
        orchestrator.get_history().clear()
        assert len(orchestrator.get_history()) == 1

    def test_reset(self):
        orchestrator = FusionOrchestrator({'strategy': 'ai-learned'})
        orchestrator.add_face_data(make_face(arousal=0.8))
        orchestrator.add_voice_data(make_voice(arousal=0.7))
        learned = orchestrator.export_learned_patterns()

        orchestrator.reset()
        orchestrator.reset()

        assert orchestrator.get_history() == []
        assert orchestrator.get_metrics().total_fusions == 0
        assert len(orchestrator.buffer) == 0
        assert orchestrator.force_fusion() is None
        assert orchestrator.export_learned_patterns() == learned

    def test_destroy_detaches_subscribers(self, orchestrator, received):
        conflicts = []
        orchestrator.on_conflict_detected(conflicts.append)
        orchestrator.destroy()

        orchestrator.add_face_data(make_face())
        assert received == []

    def test_missing_markers(self, orchestrator, received):
        orchestrator.add_face_data(make_face(timestamp=100))
        orchestrator.mark_face_missing(200)
        orchestrator.mark_voice_missing(200)

        assert len(received) == 1
        assert orchestrator.buffer.latest_face().timestamp == 100
        assert orchestrator.force_fusion().sources.face.timestamp == 100
