"""
Affect catalog on the circumplex model.

100 named affects (the client calls it the 98-affect catalog), each anchored
at an (arousal, valence) point:
- Arousal: -1 (low/calm) to +1 (high/excited)
- Valence: -1 (negative) to +1 (positive)

A fused estimate is expressed as a distribution over the catalog using
inverse-distance weighting: closer anchors receive larger shares.
"""

from typing import Dict, Tuple

import numpy as np

# name -> (arousal, valence)
AFFECT_ANCHORS: Dict[str, Tuple[float, float]] = {
    "Adventurous": (0.4, 0.6),
    "Afraid": (0.7, -0.6),
    "Alarmed": (0.8, -0.5),
    "Ambitious": (0.5, 0.4),
    "Amorous": (0.3, 0.7),
    "Amused": (0.3, 0.6),
    "Angry": (0.7, -0.7),
    "Annoyed": (0.4, -0.4),
    "Anxious": (0.6, -0.3),
    "Apathetic": (-0.6, -0.2),
    "Aroused": (0.8, 0.3),
    "Ashamed": (-0.2, -0.6),
    "Astonished": (0.6, 0.1),
    "At ease": (-0.3, 0.3),
    "Attentive": (0.2, 0.3),
    "Bellicose": (0.6, -0.5),
    "Bitter": (0.2, -0.7),
    "Bored": (-0.7, -0.3),
    "Calm": (-0.4, 0.4),
    "Compassionate": (0.1, 0.6),
    "Confident": (0.3, 0.5),
    "Conscientious": (0.2, 0.4),
    "Content": (-0.1, 0.6),
    "Convinced": (0.1, 0.5),
    "Courageous": (0.5, 0.5),
    "Curious": (0.3, 0.3),
    "Dejected": (-0.3, -0.6),
    "Delighted": (0.4, 0.8),
    "Depressed": (-0.5, -0.7),
    "Despairing": (-0.2, -0.8),
    "Determined": (0.4, 0.4),
    "Disappointed": (-0.1, -0.5),
    "Disgusted": (0.1, -0.6),
    "Dissatisfied": (0.0, -0.4),
    "Distressed": (0.5, -0.6),
    "Doubtful": (0.0, -0.3),
    "Droopy": (-0.6, -0.4),
    "Eager": (0.5, 0.6),
    "Elated": (0.6, 0.8),
    "Embarrassed": (0.0, -0.5),
    "Enthusiastic": (0.6, 0.7),
    "Envious": (0.2, -0.5),
    "Excited": (0.8, 0.6),
    "Expectant": (0.3, 0.2),
    "Feel guilt": (-0.1, -0.6),
    "Feel well": (0.0, 0.5),
    "Feeling superior": (0.2, 0.3),
    "Friendly": (0.1, 0.6),
    "Frustrated": (0.4, -0.5),
    "Glad": (0.2, 0.6),
    "Gloomy": (-0.4, -0.5),
    "Happy": (0.3, 0.7),
    "Hateful": (0.5, -0.8),
    "Hesitant": (-0.1, -0.2),
    "Hopeful": (0.2, 0.5),
    "Hopeless": (-0.4, -0.7),
    "Hostile": (0.6, -0.6),
    "Impatient": (0.4, -0.3),
    "Impressed": (0.3, 0.4),
    "Indifferent": (-0.5, 0.0),
    "Inspired": (0.4, 0.7),
    "Interested": (0.3, 0.4),
    "Joyful": (0.4, 0.8),
    "Languid": (-0.7, 0.0),
    "Light-hearted": (0.2, 0.7),
    "Lonely": (-0.3, -0.5),
    "Longing": (-0.1, -0.3),
    "Lusting": (0.5, 0.4),
    "Melancholic": (-0.3, -0.4),
    "Miserable": (-0.2, -0.8),
    "Passionate": (0.7, 0.5),
    "Peaceful": (-0.5, 0.5),
    "Pensive": (-0.2, -0.1),
    "Pleased": (0.0, 0.6),
    "Polite": (-0.1, 0.4),
    "Relaxed": (-0.6, 0.6),
    "Reverent": (0.0, 0.3),
    "Sad": (-0.3, -0.7),
    "Satisfied": (-0.2, 0.6),
    "Scared": (0.6, -0.7),
    "Selfconfident": (0.3, 0.5),
    "Serene": (-0.4, 0.6),
    "Serious": (0.0, 0.0),
    "Sleepy": (-0.8, 0.1),
    "Solemn": (-0.1, 0.1),
    "Startled": (0.7, -0.2),
    "Stimulated": (0.6, 0.4),
    "Strained": (0.3, -0.4),
    "Successful": (0.3, 0.7),
    "Suspicious": (0.2, -0.3),
    "Taken aback": (0.4, -0.1),
    "Tense": (0.5, -0.4),
    "Tired": (-0.7, -0.2),
    "Tranquil": (-0.5, 0.4),
    "Uncomfortable": (0.1, -0.4),
    "Unhappy": (-0.1, -0.7),
    "Unsatisfied": (0.1, -0.5),
    "Upset": (0.3, -0.6),
    "Wavering": (0.0, -0.2),
    "Worried": (0.4, -0.5),
}

# Face detector class -> (arousal, valence)
BASIC_EMOTION_COORDINATES: Dict[str, Tuple[float, float]] = {
    'neutral': (0.0, 0.0),
    'happy': (0.3, 0.7),
    'sad': (-0.3, -0.7),
    'angry': (0.7, -0.7),
    'fearful': (0.6, -0.6),
    'disgusted': (0.1, -0.6),
    'surprised': (0.6, 0.1),
}

_AFFECT_NAMES = list(AFFECT_ANCHORS)
_AFFECT_POINTS = np.array([AFFECT_ANCHORS[name] for name in _AFFECT_NAMES])

EXACT_MATCH_DISTANCE = 0.01
EXACT_MATCH_WEIGHT = 100.0
DISTANCE_SMOOTHING = 0.1


def _distances(arousal: float, valence: float) -> np.ndarray:
    return np.hypot(_AFFECT_POINTS[:, 0] - arousal, _AFFECT_POINTS[:, 1] - valence)


def calculate_affects(arousal: float, valence: float) -> Dict[str, float]:
    """
    Express an (arousal, valence) point as percentage shares of the catalog.

    Weight per affect is 1 / (distance + 0.1), or a fixed 100 when the point
    sits on the anchor. Shares are rounded to two decimals so the total stays
    within a few hundredths of 100.

    Args:
        arousal: Arousal value (-1 to 1)
        valence: Valence value (-1 to 1)

    Returns:
        Mapping of affect name to share (0-100)
    """
    distances = _distances(arousal, valence)
    weights = np.where(
        distances < EXACT_MATCH_DISTANCE,
        EXACT_MATCH_WEIGHT,
        1.0 / (distances + DISTANCE_SMOOTHING),
    )
    shares = weights / weights.sum() * 100.0

    return {name: round(float(share), 2) for name, share in zip(_AFFECT_NAMES, shares)}


def get_dominant_affect(arousal: float, valence: float) -> str:
    """Name of the affect anchored closest to (arousal, valence)."""
    return _AFFECT_NAMES[int(np.argmin(_distances(arousal, valence)))]


def basic_emotions_to_arousal_valence(emotions: Dict[str, float]) -> Tuple[float, float]:
    """
    Project basic emotion probabilities onto the circumplex.

    Unknown emotion names are ignored. Returns (0, 0) when no known emotion
    carries weight.

    Args:
        emotions: Basic emotion name -> probability

    Returns:
        (arousal, valence), each clipped to [-1, 1]
    """
    total_arousal = 0.0
    total_valence = 0.0
    total_weight = 0.0

    for emotion, weight in emotions.items():
        coords = BASIC_EMOTION_COORDINATES.get(emotion)
        if coords is None:
            continue
        total_arousal += coords[0] * weight
        total_valence += coords[1] * weight
        total_weight += weight

    if total_weight <= 0:
        return 0.0, 0.0

    arousal = float(np.clip(total_arousal / total_weight, -1.0, 1.0))
    valence = float(np.clip(total_valence / total_weight, -1.0, 1.0))
    return arousal, valence
