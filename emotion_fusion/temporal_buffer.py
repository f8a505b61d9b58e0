"""
Bounded per-modality history with best-effort synchronization.

Engineering challenge:
- Face estimates arrive every few captured frames, voice estimates once per
  recognized speech chunk; both rates are bursty and unrelated
- There is no shared clock, so exact lockstep pairing would starve output

Pairing strategy:
1. Nearest face/voice pair within the allowed drift, most recent first
2. Otherwise the latest sample of each modality, even if far apart
3. Otherwise whichever single modality has data
4. Otherwise nothing

Slots may be empty (detector dropout); every search skips them.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, Optional, TypeVar, Union

from .data_models import FaceEmotionData, VoiceEmotionData
from .enums import Modality

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_TIME_DRIFT_MS = 1000.0


@dataclass
class SynchronizedPair:
    """
    Result of a synchronization search.

    Attributes:
        face: Selected face sample, if any
        voice: Selected voice sample, if any
        synchronized: True when both were found within the drift tolerance
    """
    face: Optional[FaceEmotionData]
    voice: Optional[VoiceEmotionData]
    synchronized: bool = False

    @property
    def is_empty(self) -> bool:
        return self.face is None and self.voice is None


class TemporalBuffer:
    """
    Two ring buffers of optional samples plus a shared timestamp log.

    Usage:
        buffer = TemporalBuffer(max_buffer_size=10)
        buffer.add_face(face_sample)
        pair = buffer.find_synchronized_pair(max_time_drift=1000)
    """

    def __init__(self, max_buffer_size: int = 10):
        """
        Initialize buffer.

        Args:
            max_buffer_size: Samples retained per modality (timestamp log
                retains twice as many)
        """
        if max_buffer_size < 1:
            raise ValueError(f"max_buffer_size must be positive, got {max_buffer_size}")

        self.max_buffer_size = max_buffer_size
        self.face_data: Deque[Optional[FaceEmotionData]] = deque(maxlen=max_buffer_size)
        self.voice_data: Deque[Optional[VoiceEmotionData]] = deque(maxlen=max_buffer_size)
        self.timestamps: Deque[float] = deque(maxlen=max_buffer_size * 2)

    def add_face(self, sample: FaceEmotionData) -> None:
        """Append a face sample, dropping the oldest beyond the bound."""
        self.face_data.append(sample)
        self.timestamps.append(sample.timestamp)

    def add_voice(self, sample: VoiceEmotionData) -> None:
        """Append a voice sample, dropping the oldest beyond the bound."""
        self.voice_data.append(sample)
        self.timestamps.append(sample.timestamp)

    def record_gap(self, modality: Union[Modality, str], timestamp: float) -> None:
        """
        Append an empty slot for a modality whose detector produced nothing.

        Args:
            modality: 'face' or 'voice'
            timestamp: Time of the missed observation (ms)
        """
        modality = Modality(modality)
        if modality is Modality.FACE:
            self.face_data.append(None)
        else:
            self.voice_data.append(None)
        self.timestamps.append(timestamp)
        logger.debug(f"Recorded {modality.value} gap at {timestamp}")

    def latest_face(self) -> Optional[FaceEmotionData]:
        return _latest_valid(self.face_data)

    def latest_voice(self) -> Optional[VoiceEmotionData]:
        return _latest_valid(self.voice_data)

    def find_synchronized_pair(
        self,
        max_time_drift: float = DEFAULT_MAX_TIME_DRIFT_MS
    ) -> SynchronizedPair:
        """
        Find the most recent face/voice pair within the drift tolerance.

        Scans face samples newest first; for each, scans voice samples newest
        first and returns the first pair whose timestamps differ by at most
        `max_time_drift`. Falls back to the latest sample per modality.

        Args:
            max_time_drift: Maximum timestamp difference in ms

        Returns:
            SynchronizedPair (possibly with one or both sides None)
        """
        for face in reversed(self.face_data):
            if face is None:
                continue
            for voice in reversed(self.voice_data):
                if voice is None:
                    continue
                if abs(face.timestamp - voice.timestamp) <= max_time_drift:
                    return SynchronizedPair(face=face, voice=voice, synchronized=True)

        return SynchronizedPair(face=self.latest_face(), voice=self.latest_voice())

    def resize(self, max_buffer_size: int) -> None:
        """Change the bound, keeping the newest samples."""
        if max_buffer_size < 1:
            raise ValueError(f"max_buffer_size must be positive, got {max_buffer_size}")
        if max_buffer_size == self.max_buffer_size:
            return

        self.max_buffer_size = max_buffer_size
        self.face_data = deque(self.face_data, maxlen=max_buffer_size)
        self.voice_data = deque(self.voice_data, maxlen=max_buffer_size)
        self.timestamps = deque(self.timestamps, maxlen=max_buffer_size * 2)
        logger.debug(f"Temporal buffer resized to {max_buffer_size}")

    def clear(self) -> None:
        self.face_data.clear()
        self.voice_data.clear()
        self.timestamps.clear()

    def __len__(self) -> int:
        return len(self.face_data) + len(self.voice_data)


def _latest_valid(buffer: Iterable[Optional[T]]) -> Optional[T]:
    for sample in reversed(buffer):
        if sample is not None:
            return sample
    return None
