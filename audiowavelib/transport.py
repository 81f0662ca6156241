"""Playback backends driven by :class:`~audiowavelib.controller.PlaybackController`."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

import numpy as np

from .audio import WaveformError, read_audio

log = logging.getLogger(__name__)


class SessionSetupError(Exception):
    """The playback backend could not open or configure the resource."""
    pass


def _load_sounddevice():
    """Import sounddevice; a missing PortAudio library means no playback."""
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise SessionSetupError(f"Audio output unavailable: {e}") from e
    return sd


class Transport(ABC):
    """Minimal playback backend: open one resource, play/pause, seek.

    ``open()`` raises :class:`SessionSetupError` on failure.  The remaining
    methods may raise backend-specific errors; the controller logs them.
    """

    @abstractmethod
    def open(self, path: str) -> float:
        """Prepare *path* for playback and return its duration in seconds."""
        ...

    @property
    @abstractmethod
    def samplerate(self) -> int:
        ...

    @property
    @abstractmethod
    def is_playing(self) -> bool:
        ...

    @property
    @abstractmethod
    def current_time(self) -> float:
        ...

    @abstractmethod
    def play(self) -> None:
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def seek(self, seconds: float) -> None:
        ...

    @abstractmethod
    def release(self) -> None:
        """Stop output and drop the decoded resource."""
        ...


class SounddeviceTransport(Transport):
    """Plays decoded audio through a sounddevice OutputStream.

    The file is decoded once by soundfile on :meth:`open`; the stream
    callback copies frames from the shared read position, which
    :meth:`seek` may move at any time.
    """

    def __init__(self, device: int | str | None = None):
        self._device = device
        self._stream = None  # sounddevice.OutputStream while output is open
        self._audio: np.ndarray | None = None  # (frames, channels) float32
        self._samplerate: int = 0
        self._position: int = 0
        self._lock = threading.Lock()

    @property
    def samplerate(self) -> int:
        return self._samplerate

    @property
    def is_playing(self) -> bool:
        return self._stream is not None and self._stream.active

    @property
    def current_time(self) -> float:
        if self._samplerate <= 0:
            return 0.0
        with self._lock:
            return self._position / self._samplerate

    @property
    def total_frames(self) -> int:
        return 0 if self._audio is None else int(self._audio.shape[0])

    def open(self, path: str) -> float:
        self.release()
        sd = _load_sounddevice()
        try:
            audio, samplerate = read_audio(path)
        except (WaveformError, OSError) as e:
            raise SessionSetupError(str(e)) from e
        try:
            sd.check_output_settings(
                device=self._device,
                samplerate=samplerate,
                channels=audio.shape[1],
                dtype='float32',
            )
        except (sd.PortAudioError, ValueError) as e:
            raise SessionSetupError(f"Output device rejected {path}: {e}") from e

        self._audio = audio
        self._samplerate = samplerate
        with self._lock:
            self._position = 0
        return audio.shape[0] / samplerate if samplerate > 0 else 0.0

    def play(self) -> None:
        """Start output from the current position."""
        import sounddevice as sd

        self._close_stream()
        audio = self._audio
        if audio is None or audio.size == 0:
            return

        with self._lock:
            if self._position >= audio.shape[0]:
                self._position = 0

        def callback(outdata, frames, time_info, status):
            with self._lock:
                pos = self._position
                end = min(pos + frames, audio.shape[0])
                count = end - pos
                if count > 0:
                    outdata[:count] = audio[pos:end]
                outdata[count:] = 0
                self._position = end
                finished = end >= audio.shape[0]
            if finished:
                raise sd.CallbackStop()

        self._stream = sd.OutputStream(
            samplerate=self._samplerate,
            channels=audio.shape[1],
            dtype='float32',
            device=self._device,
            callback=callback,
        )
        self._stream.start()

    def pause(self) -> None:
        """Stop output, keeping the read position."""
        self._close_stream()

    def seek(self, seconds: float) -> None:
        frame = int(round(max(float(seconds), 0.0) * self._samplerate))
        with self._lock:
            self._position = min(frame, self.total_frames)

    def release(self) -> None:
        self._close_stream()
        self._audio = None
        self._samplerate = 0
        with self._lock:
            self._position = 0

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        import sounddevice as sd

        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError:
            log.exception("Failed to close output stream")
