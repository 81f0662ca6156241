import sys
from types import SimpleNamespace

import numpy as np
import pytest

from audiowavelib.transport import SessionSetupError, SounddeviceTransport


class _FakeStream:
    def __init__(self, registry, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.active = False
        self.closed = False
        registry.append(self)

    def start(self):
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True


@pytest.fixture
def fake_sd(monkeypatch):
    """Stand-in sounddevice module recording streams and device checks."""
    streams = []
    checks = []

    class PortAudioError(Exception):
        pass

    class CallbackStop(Exception):
        pass

    def check_output_settings(**kwargs):
        checks.append(kwargs)

    module = SimpleNamespace(
        OutputStream=lambda **kwargs: _FakeStream(streams, **kwargs),
        PortAudioError=PortAudioError,
        CallbackStop=CallbackStop,
        check_output_settings=check_output_settings,
        streams=streams,
        checks=checks,
    )
    monkeypatch.setitem(sys.modules, "sounddevice", module)
    return module


@pytest.fixture
def ramp_wav(write_wav):
    return write_wav("ramp.wav", np.linspace(-0.5, 0.5, 1000))


def _pull(stream, frames, channels=1):
    outdata = np.ones((frames, channels), dtype=np.float32)
    stream.callback(outdata, frames, None, None)
    return outdata


def test_open_returns_duration_and_checks_device(fake_sd, ramp_wav):
    transport = SounddeviceTransport()

    duration = transport.open(ramp_wav)

    assert duration == 1000 / 8000
    assert transport.samplerate == 8000
    assert transport.current_time == 0.0
    assert not transport.is_playing
    assert fake_sd.checks == [{"device": None, "samplerate": 8000,
                               "channels": 1, "dtype": "float32"}]


def test_open_failures_become_session_setup_errors(fake_sd, ramp_wav, tmp_path):
    transport = SounddeviceTransport()

    with pytest.raises(SessionSetupError):
        transport.open(str(tmp_path / "missing.wav"))

    def reject(**kwargs):
        raise fake_sd.PortAudioError("Invalid sample rate")

    fake_sd.check_output_settings = reject
    with pytest.raises(SessionSetupError, match="Invalid sample rate"):
        transport.open(ramp_wav)


def test_missing_backend_becomes_session_setup_error(monkeypatch, ramp_wav):
    monkeypatch.setitem(sys.modules, "sounddevice", None)

    with pytest.raises(SessionSetupError, match="Audio output unavailable"):
        SounddeviceTransport().open(ramp_wav)


def test_callback_streams_frames_and_advances_position(fake_sd, ramp_wav):
    transport = SounddeviceTransport()
    transport.open(ramp_wav)

    transport.play()
    stream = fake_sd.streams[-1]
    outdata = _pull(stream, 100)

    assert transport.is_playing
    assert stream.kwargs["samplerate"] == 8000
    assert stream.kwargs["channels"] == 1
    np.testing.assert_allclose(outdata[:, 0], np.linspace(-0.5, 0.5, 1000)[:100],
                               rtol=1e-6)
    assert transport.current_time == 100 / 8000


def test_callback_zero_fills_and_stops_at_end(fake_sd, ramp_wav):
    transport = SounddeviceTransport()
    transport.open(ramp_wav)
    transport.seek(950 / 8000)
    transport.play()
    stream = fake_sd.streams[-1]

    outdata = np.ones((100, 1), dtype=np.float32)
    with pytest.raises(fake_sd.CallbackStop):
        stream.callback(outdata, 100, None, None)

    assert np.all(outdata[50:] == 0.0)
    assert transport.current_time == 1000 / 8000


def test_pause_closes_stream_and_keeps_position(fake_sd, ramp_wav):
    transport = SounddeviceTransport()
    transport.open(ramp_wav)
    transport.play()
    stream = fake_sd.streams[-1]
    _pull(stream, 400)

    transport.pause()

    assert stream.closed
    assert not transport.is_playing
    assert transport.current_time == 400 / 8000


def test_play_at_end_rewinds(fake_sd, ramp_wav):
    transport = SounddeviceTransport()
    transport.open(ramp_wav)
    transport.seek(10.0)
    assert transport.current_time == 1000 / 8000

    transport.play()

    assert transport.current_time == 0.0


def test_seek_clamps_to_file(fake_sd, ramp_wav):
    transport = SounddeviceTransport()
    transport.open(ramp_wav)

    transport.seek(-1.0)
    assert transport.current_time == 0.0
    transport.seek(0.05)
    assert transport.current_time == 0.05


def test_release_drops_everything(fake_sd, ramp_wav):
    transport = SounddeviceTransport()
    transport.open(ramp_wav)
    transport.play()
    stream = fake_sd.streams[-1]

    transport.release()

    assert stream.closed
    assert transport.samplerate == 0
    assert transport.total_frames == 0
    assert transport.current_time == 0.0
