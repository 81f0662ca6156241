"""Waveform extraction: streamed per-bar peak envelopes and the background worker."""

from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Iterator

import numpy as np

from .audio import (
    NoAudioDataError,
    accumulate_bar_peaks,
    open_audio,
)
from .log import dbg
from .models import Completed, ExtractionProgress, InProgress, freeze_amplitudes

log = logging.getLogger(__name__)

DEFAULT_CHUNK_SECONDS = 1.0


# ---------------------------------------------------------------------------
# Normalization and placeholders
# ---------------------------------------------------------------------------

def normalize_peaks(peaks: np.ndarray) -> np.ndarray:
    """Scale *peaks* so the largest becomes 1.0.

    All-zero input (silence, empty file) is returned unscaled.
    """
    peaks = np.asarray(peaks, dtype=np.float32)
    if peaks.size == 0:
        return peaks.copy()
    max_peak = float(np.max(peaks))
    if max_peak <= 0.0:
        return peaks.copy()
    return peaks / np.float32(max_peak)


def placeholder_amplitudes(bar_count: int, *, low: float = 0.2,
                           high: float = 0.8,
                           seed: int | None = 0) -> np.ndarray:
    """Pseudo-random bar values shown when real extraction failed."""
    if bar_count <= 0:
        raise ValueError(f"bar_count must be positive, got {bar_count}")
    rng = np.random.default_rng(seed)
    return freeze_amplitudes(rng.uniform(low, high, size=bar_count))


def placeholder_heights(bar_count: int) -> np.ndarray:
    """Deterministic idle pattern for a display with no amplitude data yet."""
    idx = np.arange(max(bar_count, 0), dtype=np.float64)
    return freeze_amplitudes(np.sin(idx * 0.3) * 0.3 + 0.4)


# ---------------------------------------------------------------------------
# Progress helpers for consumers drawing bars
# ---------------------------------------------------------------------------

def bar_is_played(index: int, bar_count: int, progress: float) -> bool:
    """True if bar *index* starts before the playback *progress* fraction."""
    if bar_count <= 0:
        return False
    return index / bar_count < progress


def bar_partial_fill(index: int, bar_count: int, progress: float) -> float | None:
    """Covered fraction of bar *index* when *progress* falls strictly inside it."""
    if bar_count <= 0:
        return None
    start = index / bar_count
    end = (index + 1) / bar_count
    if start < progress < end:
        return (progress - start) / (end - start)
    return None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class WaveformExtractor:
    """Streams an audio file and reduces it to *bar_count* peak values.

    The file is read in chunks of ``chunk_seconds`` at its native rate, so
    memory use is bounded by one chunk regardless of file length.
    """

    def __init__(self, chunk_seconds: float = DEFAULT_CHUNK_SECONDS):
        if not chunk_seconds > 0:
            raise ValueError(f"chunk_seconds must be positive, got {chunk_seconds}")
        self.chunk_seconds = float(chunk_seconds)

    def stream(
        self,
        path: str,
        bar_count: int,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[ExtractionProgress]:
        """Yield InProgress after every chunk, then a single Completed.

        Setting *cancel_event* (or closing the generator) stops the stream
        between chunks without a Completed value; the file is closed either
        way.
        """
        if bar_count <= 0:
            raise ValueError(f"bar_count must be positive, got {bar_count}")

        with open_audio(path) as reader:
            total = reader.frames
            samples_per_bar = max(total // bar_count, 1)
            chunk = max(int(math.ceil(reader.samplerate * self.chunk_seconds)), 1)
            peaks = np.zeros(bar_count, dtype=np.float32)
            dbg(f"{path}: {total} frames @ {reader.samplerate} Hz, "
                f"{samples_per_bar} frames/bar, chunk {chunk}")

            processed = 0
            while processed < total:
                if cancel_event is not None and cancel_event.is_set():
                    dbg(f"{path}: cancelled at frame {processed}")
                    return
                want = min(chunk, total - processed)
                block = reader.read(want)
                if block.size == 0:
                    raise NoAudioDataError(
                        f"No samples at frame {processed} of {total} in {path}"
                    )
                accumulate_bar_peaks(peaks, block, processed, samples_per_bar)
                processed += int(block.size)
                yield InProgress(min(processed / total, 1.0))

        if cancel_event is not None and cancel_event.is_set():
            return
        yield Completed(freeze_amplitudes(normalize_peaks(peaks)))

    def generate(self, path: str, bar_count: int) -> np.ndarray:
        """Blocking extraction; returns the normalized series."""
        result = None
        for update in self.stream(path, bar_count):
            if isinstance(update, Completed):
                result = update.amplitudes
        return result


def generate(path: str, bar_count: int, *,
             chunk_seconds: float = DEFAULT_CHUNK_SECONDS) -> np.ndarray:
    """Normalized peak amplitudes (0..1) of *path*, one per bar."""
    return WaveformExtractor(chunk_seconds).generate(path, bar_count)


def stream_generate(path: str, bar_count: int, *,
                    chunk_seconds: float = DEFAULT_CHUNK_SECONDS,
                    cancel_event: threading.Event | None = None,
                    ) -> Iterator[ExtractionProgress]:
    """Generator form of :func:`generate` reporting per-chunk progress."""
    return WaveformExtractor(chunk_seconds).stream(path, bar_count, cancel_event)


# ---------------------------------------------------------------------------
# Background worker
# ---------------------------------------------------------------------------

class WaveformWorker:
    """Runs :meth:`WaveformExtractor.stream` on a daemon thread.

    Callbacks fire on the worker thread:

    * ``on_update(update)`` for every InProgress / Completed value,
    * ``on_error(exc)`` if extraction raised.

    :meth:`cancel` is cooperative; the thread exits before reading the
    next chunk and no further callbacks are made.
    """

    def __init__(self, path: str, bar_count: int, *,
                 on_update: Callable[[ExtractionProgress], None],
                 on_error: Callable[[Exception], None],
                 extractor: WaveformExtractor | None = None):
        self._path = path
        self._bar_count = bar_count
        self._on_update = on_update
        self._on_error = on_error
        self._extractor = extractor or WaveformExtractor()
        self._cancelled = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.run, name="audiowave-waveform", daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        """Request early termination of the extraction."""
        self._cancelled.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread; True once it has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def run(self) -> None:
        stream = self._extractor.stream(self._path, self._bar_count,
                                        self._cancelled)
        try:
            while True:
                try:
                    update = next(stream)
                except StopIteration:
                    return
                except Exception as e:
                    if not self._cancelled.is_set():
                        log.warning("Waveform extraction failed for %s: %s",
                                    self._path, e)
                        self._on_error(e)
                    return
                if self._cancelled.is_set():
                    return
                try:
                    self._on_update(update)
                except Exception:
                    # observer failures are not extraction failures
                    log.exception("Waveform update handler failed for %s",
                                  self._path)
        finally:
            stream.close()
