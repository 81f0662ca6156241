"""Shared fixtures: synthetic audio files and injectable playback doubles."""

from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pytest
import soundfile as sf

from audiowavelib.controller import PlaybackController
from audiowavelib.transport import SessionSetupError, Transport

SAMPLERATE = 8000


class FakeTransport(Transport):
    """In-memory transport whose position only moves when a test moves it."""

    def __init__(self, duration: float = 100.0, *, fail: str | None = None,
                 play_error: Exception | None = None):
        self.duration = duration
        self.fail = fail
        self.play_error = play_error
        self.path = None
        self.playing = False
        self.position = 0.0
        self.released = False
        self.calls: list[str] = []

    @property
    def samplerate(self) -> int:
        return 44100

    @property
    def is_playing(self) -> bool:
        return self.playing

    @property
    def current_time(self) -> float:
        return self.position

    def open(self, path: str) -> float:
        self.calls.append("open")
        if self.fail is not None:
            raise SessionSetupError(self.fail)
        self.path = path
        return self.duration

    def play(self) -> None:
        self.calls.append("play")
        if self.play_error is not None:
            raise self.play_error
        self.playing = True

    def pause(self) -> None:
        self.calls.append("pause")
        self.playing = False

    def seek(self, seconds: float) -> None:
        self.calls.append("seek")
        self.position = seconds

    def release(self) -> None:
        self.calls.append("release")
        self.released = True
        self.playing = False

    def finish(self) -> None:
        """Simulate the backend running off the end of the audio."""
        self.position = self.duration
        self.playing = False


class ManualTicker:
    """Ticker double; tests call fire() instead of waiting on a thread."""

    def __init__(self, interval: float, callback):
        self.interval = interval
        self.callback = callback
        self.active = False

    def start(self) -> None:
        self.active = True

    def stop(self) -> None:
        self.active = False

    def fire(self) -> None:
        self.callback()


@pytest.fixture
def write_wav(tmp_path):
    """Write float32 samples to a WAV in tmp_path and return its path."""
    def _write(name, data, samplerate=SAMPLERATE):
        path = tmp_path / name
        sf.write(str(path), np.asarray(data, dtype=np.float32), samplerate,
                 subtype="FLOAT")
        return str(path)
    return _write


@pytest.fixture
def tone_wav(write_wav):
    """2.5 s, 220 Hz tone with a rising envelope."""
    t = np.arange(int(SAMPLERATE * 2.5)) / SAMPLERATE
    envelope = np.linspace(0.1, 0.9, t.size)
    return write_wav("tone.wav", envelope * np.sin(2 * np.pi * 220.0 * t))


@pytest.fixture
def make_controller():
    """Build a controller wired to FakeTransport and ManualTicker doubles."""
    def _make(duration=100.0, *, fail=None, play_error=None, config=None):
        transports: list[FakeTransport] = []
        tickers: list[ManualTicker] = []

        def transport_factory():
            transport = FakeTransport(duration, fail=fail, play_error=play_error)
            transports.append(transport)
            return transport

        def ticker_factory(interval, callback):
            ticker = ManualTicker(interval, callback)
            tickers.append(ticker)
            return ticker

        controller = PlaybackController(
            config,
            transport_factory=transport_factory,
            ticker_factory=ticker_factory,
        )
        return SimpleNamespace(controller=controller, transports=transports,
                               tickers=tickers)
    return _make
