"""
Fusion engine configuration.

Sections mirror the YAML layout in configs/fusion.yaml. Keys may be given in
snake_case or in the camelCase of the browser client's wire format.

Merging is shallow: a section passed to `merged()` replaces the whole
section, with missing keys taking their defaults rather than the previous
values.
"""

import logging
import math
import numbers
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional

from utils.config_loader import load_config, normalize_keys

from .enums import InterpolationMethod
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class WeightsConfig:
    """Base modality weights."""
    face_weight: float = 0.6
    voice_weight: float = 0.4
    adaptive_weighting: bool = True


@dataclass
class ConflictResolutionConfig:
    """Cross-modal disagreement handling."""
    strategy: str = "contextual"
    disagreement_threshold: float = 0.4
    fallback_to_single: bool = True


@dataclass
class QualityGatesConfig:
    """Minimum input/output quality for a fusion to be emitted."""
    min_face_confidence: float = 0.3
    min_voice_confidence: float = 0.3
    min_overall_quality: float = 0.4
    require_both_modalities: bool = False


@dataclass
class SynchronizationConfig:
    """Temporal pairing of the two modality streams."""
    max_time_drift: float = 1000.0  # ms
    interpolation_method: str = InterpolationMethod.LINEAR.value
    buffer_size: int = 10


_SECTIONS = {
    'weights': WeightsConfig,
    'conflict_resolution': ConflictResolutionConfig,
    'quality_gates': QualityGatesConfig,
    'synchronization': SynchronizationConfig,
}


@dataclass
class FusionConfig:
    """Complete fusion engine configuration."""
    enabled: bool = True
    strategy: str = "weighted-average"
    weights: WeightsConfig = field(default_factory=WeightsConfig)
    conflict_resolution: ConflictResolutionConfig = field(default_factory=ConflictResolutionConfig)
    quality_gates: QualityGatesConfig = field(default_factory=QualityGatesConfig)
    synchronization: SynchronizationConfig = field(default_factory=SynchronizationConfig)

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FusionConfig':
        """
        Build configuration from a (possibly partial) mapping.

        Accepts either the bare fusion mapping or a document with a
        top-level 'fusion' key.

        Raises:
            ConfigurationError: If the mapping or a value has the wrong type
        """
        if not data:
            return cls()
        _require_mapping('fusion config', data)
        data = normalize_keys(data, depth=2)
        if isinstance(data.get('fusion'), dict):
            data = normalize_keys(data['fusion'], depth=2)
        return cls(**_coerce_sections(data))

    def merged(self, partial: Dict[str, Any]) -> 'FusionConfig':
        """Return a new configuration with top-level keys of `partial` replaced."""
        _require_mapping('config update', partial)
        partial = normalize_keys(partial, depth=2)
        return replace(self, **_coerce_sections(partial))

    def validate(self) -> None:
        """
        Check structural validity.

        Raises:
            ConfigurationError: On wrongly typed sections or values, negative
                weights, thresholds outside [0, 1], or non-positive buffer
                size / time drift
        """
        for name, section_cls in _SECTIONS.items():
            section = getattr(self, name)
            if not isinstance(section, section_cls):
                raise ConfigurationError(
                    f"'{name}' must be a mapping, got {type(section).__name__}"
                )

        flags = {
            'enabled': self.enabled,
            'adaptive_weighting': self.weights.adaptive_weighting,
            'fallback_to_single': self.conflict_resolution.fallback_to_single,
            'require_both_modalities': self.quality_gates.require_both_modalities,
        }
        for name, value in flags.items():
            if not isinstance(value, bool):
                raise ConfigurationError(f"{name} must be true or false, got {value!r}")

        texts = {
            'strategy': self.strategy,
            'conflict_resolution.strategy': self.conflict_resolution.strategy,
            'interpolation_method': self.synchronization.interpolation_method,
        }
        for name, value in texts.items():
            if not isinstance(value, str):
                raise ConfigurationError(f"{name} must be a string, got {value!r}")

        numeric = {
            'face_weight': self.weights.face_weight,
            'voice_weight': self.weights.voice_weight,
            'disagreement_threshold': self.conflict_resolution.disagreement_threshold,
            'min_face_confidence': self.quality_gates.min_face_confidence,
            'min_voice_confidence': self.quality_gates.min_voice_confidence,
            'min_overall_quality': self.quality_gates.min_overall_quality,
            'max_time_drift': self.synchronization.max_time_drift,
        }
        for name, value in numeric.items():
            if not _is_number(value):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")

        if self.weights.face_weight < 0 or self.weights.voice_weight < 0:
            raise ConfigurationError(
                f"Modality weights must be non-negative: "
                f"face={self.weights.face_weight}, voice={self.weights.voice_weight}"
            )

        thresholds = {
            'disagreement_threshold': self.conflict_resolution.disagreement_threshold,
            'min_face_confidence': self.quality_gates.min_face_confidence,
            'min_voice_confidence': self.quality_gates.min_voice_confidence,
            'min_overall_quality': self.quality_gates.min_overall_quality,
        }
        for name, value in thresholds.items():
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")

        buffer_size = self.synchronization.buffer_size
        if not isinstance(buffer_size, int) or isinstance(buffer_size, bool) or buffer_size < 1:
            raise ConfigurationError(f"buffer_size must be a positive integer, got {buffer_size!r}")
        if self.synchronization.max_time_drift <= 0:
            raise ConfigurationError(
                f"max_time_drift must be positive, got {self.synchronization.max_time_drift}"
            )

        methods = {m.value for m in InterpolationMethod}
        if self.synchronization.interpolation_method not in methods:
            logger.warning(
                f"Unknown interpolation method '{self.synchronization.interpolation_method}', "
                f"expected one of {sorted(methods)}"
            )


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def _require_mapping(name: str, value: Any) -> None:
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name} must be a mapping, got {type(value).__name__}")


def _coerce_sections(data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn section mappings into their dataclasses, dropping unknown keys."""
    known = {f.name for f in fields(FusionConfig)}
    result = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown fusion config key: {key}")
            continue
        section_cls = _SECTIONS.get(key)
        if section_cls is not None and not isinstance(value, section_cls):
            _require_mapping(f"'{key}'", value)
            section_fields = {f.name for f in fields(section_cls)}
            unknown = set(value) - section_fields
            if unknown:
                logger.warning(f"Ignoring unknown keys in '{key}': {sorted(map(str, unknown))}")
            value = section_cls(**{k: v for k, v in value.items() if k in section_fields})
        result[key] = value
    return result


def load_fusion_config(config_path) -> FusionConfig:
    """
    Load a FusionConfig from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated FusionConfig
    """
    return FusionConfig.from_dict(load_config(config_path))
