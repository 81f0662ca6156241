from __future__ import annotations

import math
import os

import numpy as np
import soundfile as sf


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class WaveformError(Exception):
    """Base class for failures while extracting amplitude data."""
    pass


class InvalidFormatError(WaveformError):
    """The container/codec cannot be decoded to float samples."""
    pass


class NoAudioDataError(WaveformError):
    """A chunk read yielded no samples before the reported end of file."""
    pass


class AudioFileNotFoundError(WaveformError, FileNotFoundError):
    """The resource does not exist or is not a regular file."""
    pass


# LibsndfileError derives from RuntimeError; soundfile raises TypeError or
# ValueError for headerless formats (e.g. .raw) opened without a layout
_DECODE_ERRORS = (RuntimeError, TypeError, ValueError)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_time(seconds: float) -> str:
    """``m:ss`` for a player time label; non-finite or negative → ``0:00``."""
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return "0:00"
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def format_duration(samples: int, samplerate: int) -> str:
    if samplerate <= 0:
        return "00:00.000"
    seconds = samples / samplerate
    m = int(seconds // 60)
    s = int(seconds % 60)
    ms = int((seconds % 1) * 1000)
    return f"{m:02d}:{s:02d}.{ms:03d}"


# ---------------------------------------------------------------------------
# DSP
# ---------------------------------------------------------------------------

def to_mono(data: np.ndarray) -> np.ndarray:
    """Fold a (frames, channels) block to 1-D float32 by averaging channels."""
    if data.ndim == 1:
        return data.astype(np.float32, copy=False)
    if data.shape[1] == 1:
        return np.ascontiguousarray(data[:, 0], dtype=np.float32)
    return np.mean(data, axis=1, dtype=np.float32)


def accumulate_bar_peaks(
    peaks: np.ndarray,
    block: np.ndarray,
    start_frame: int,
    samples_per_bar: int,
) -> None:
    """Fold the peak magnitudes of *block* into *peaks* in place.

    *block* holds mono frames beginning at absolute frame *start_frame*.
    The block is cut at every bar boundary it crosses; each segment's peak
    is max-merged into its bar.  Frames past the last full bar belong to
    the last bar.
    """
    n = int(block.size)
    if n == 0:
        return
    last_bar = len(peaks) - 1
    first = min(start_frame // samples_per_bar, last_bar)
    last = min((start_frame + n - 1) // samples_per_bar, last_bar)
    bars = np.arange(first, last + 1)
    offsets = np.maximum(bars * samples_per_bar - start_frame, 0)
    segment_peaks = np.maximum.reduceat(np.abs(block), offsets)
    peaks[bars] = np.maximum(peaks[bars], segment_peaks)


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------

class AudioReader:
    """Sequential mono reader over a libsndfile handle.

    Use as a context manager; :meth:`read` returns float32 mono blocks.
    """

    def __init__(self, handle: sf.SoundFile):
        self._handle = handle
        self.path: str = handle.name
        self.samplerate: int = int(handle.samplerate)
        self.channels: int = int(handle.channels)
        self.frames: int = max(int(handle.frames), 0)

    @property
    def duration(self) -> float:
        if self.samplerate <= 0:
            return 0.0
        return self.frames / self.samplerate

    def read(self, frames: int) -> np.ndarray:
        try:
            data = self._handle.read(frames, dtype='float32', always_2d=True)
        except _DECODE_ERRORS as e:
            raise InvalidFormatError(
                f"Decoding {os.path.basename(self.path)} failed: {e}") from e
        return to_mono(data)

    def close(self) -> None:
        self._handle.close()

    def __enter__(self) -> AudioReader:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_audio(path: str) -> AudioReader:
    """Open *path* for chunked reading.

    Raises AudioFileNotFoundError for missing files and InvalidFormatError
    when libsndfile cannot decode the container.
    """
    path = os.fspath(path)
    if not os.path.isfile(path):
        raise AudioFileNotFoundError(f"Audio file not found: {path}")
    try:
        handle = sf.SoundFile(path)
    except _DECODE_ERRORS as e:
        raise InvalidFormatError(f"Cannot decode {os.path.basename(path)}: {e}") from e
    if handle.samplerate <= 0 or handle.channels <= 0:
        handle.close()
        raise InvalidFormatError(f"Unsupported sample layout in {os.path.basename(path)}")
    return AudioReader(handle)


def read_audio(path: str) -> tuple[np.ndarray, int]:
    """Read the whole file as (frames, channels) float32 plus samplerate."""
    path = os.fspath(path)
    if not os.path.isfile(path):
        raise AudioFileNotFoundError(f"Audio file not found: {path}")
    try:
        data, samplerate = sf.read(path, dtype='float32', always_2d=True)
    except _DECODE_ERRORS as e:
        raise InvalidFormatError(f"Cannot decode {os.path.basename(path)}: {e}") from e
    return data, int(samplerate)
