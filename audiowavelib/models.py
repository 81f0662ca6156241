from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

import numpy as np

if TYPE_CHECKING:
    from .transport import Transport


class PlayerState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


def freeze_amplitudes(values) -> np.ndarray:
    """Return a read-only float32 copy of *values*.

    Amplitude series are handed to consumers on other threads, so they
    are never mutated after publication.
    """
    arr = np.array(values, dtype=np.float32)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class InProgress:
    """Extraction has consumed ``fraction`` (0..1) of the file's frames."""
    fraction: float


@dataclass(frozen=True, eq=False)
class Completed:
    """Terminal stream value carrying the normalized amplitude series."""
    amplitudes: np.ndarray

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Completed):
            return NotImplemented
        return np.array_equal(self.amplitudes, other.amplitudes)

    __hash__ = None  # type: ignore[assignment]


ExtractionProgress = Union[InProgress, Completed]


@dataclass
class PlaybackSession:
    """One loaded resource.  Owned by the controller, replaced on load().

    Attributes:
        generation:   Load generation this session belongs to.  Background
                      callbacks compare against it to detect staleness.
        path:         The file that was opened.
        transport:    Backend playing the decoded audio.
        duration:     Total length in seconds.
        current_time: Elapsed time in seconds, within [0, duration].
    """
    generation: int
    path: str
    transport: Transport
    duration: float
    current_time: float = 0.0

    @property
    def progress(self) -> float:
        if self.duration <= 0:
            return 0.0
        return min(max(self.current_time / self.duration, 0.0), 1.0)

    def clamp_time(self, seconds: float) -> float:
        return min(max(float(seconds), 0.0), max(self.duration, 0.0))
