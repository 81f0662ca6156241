import math

import numpy as np
import pytest

from audiowavelib.audio import (
    AudioFileNotFoundError,
    InvalidFormatError,
    accumulate_bar_peaks,
    format_duration,
    format_time,
    open_audio,
    read_audio,
    to_mono,
)


@pytest.mark.parametrize("seconds, expected", [
    (0, "0:00"),
    (9.99, "0:09"),
    (61.9, "1:01"),
    (600, "10:00"),
    (3725, "62:05"),
    (-3, "0:00"),
    (math.nan, "0:00"),
    (math.inf, "0:00"),
])
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


def test_format_duration():
    assert format_duration(8000 * 61 + 4000, 8000) == "01:01.500"
    assert format_duration(100, 0) == "00:00.000"


def test_to_mono_averages_channels():
    block = np.array([[1.0, 0.0], [0.5, -0.5]], dtype=np.float32)

    np.testing.assert_allclose(to_mono(block), [0.5, 0.0])
    assert to_mono(block[:, :1]).shape == (2,)


def test_accumulate_splits_block_at_bar_boundaries():
    peaks = np.zeros(4, dtype=np.float32)
    block = np.zeros(20, dtype=np.float32)
    block[2] = 0.3    # frame 7, bar 0
    block[9] = -0.6   # frame 14, bar 1
    block[17] = 0.2   # frame 22, bar 2

    accumulate_bar_peaks(peaks, block, start_frame=5, samples_per_bar=10)

    np.testing.assert_allclose(peaks, [0.3, 0.6, 0.2, 0.0])


def test_accumulate_keeps_existing_maximum():
    peaks = np.array([0.9, 0.1], dtype=np.float32)

    accumulate_bar_peaks(peaks, np.full(10, 0.5, dtype=np.float32),
                         start_frame=0, samples_per_bar=5)

    np.testing.assert_allclose(peaks, [0.9, 0.5])


def test_accumulate_folds_overflow_into_last_bar():
    peaks = np.zeros(2, dtype=np.float32)
    block = np.zeros(5, dtype=np.float32)
    block[4] = 0.7   # frame 24, past the last full bar

    accumulate_bar_peaks(peaks, block, start_frame=20, samples_per_bar=10)

    np.testing.assert_allclose(peaks, [0.0, 0.7])


def test_open_audio_reports_layout(write_wav):
    path = write_wav("stereo.wav", np.zeros((4000, 2)))

    with open_audio(path) as reader:
        assert reader.samplerate == 8000
        assert reader.channels == 2
        assert reader.frames == 4000
        assert reader.duration == 0.5
        assert reader.read(100).shape == (100,)


def test_read_audio_keeps_channels(write_wav):
    path = write_wav("stereo.wav", np.zeros((300, 2)))

    data, samplerate = read_audio(path)

    assert data.shape == (300, 2)
    assert data.dtype == np.float32
    assert samplerate == 8000


def test_read_audio_errors(tmp_path):
    with pytest.raises(AudioFileNotFoundError):
        read_audio(str(tmp_path / "missing.wav"))

    bogus = tmp_path / "bogus.wav"
    bogus.write_bytes(b"\x00" * 64)
    with pytest.raises(InvalidFormatError):
        read_audio(str(bogus))


def test_headerless_formats_raise_invalid_format(tmp_path):
    raw = tmp_path / "take.raw"
    raw.write_bytes(b"\x01\x02" * 256)

    with pytest.raises(InvalidFormatError):
        read_audio(str(raw))
    with pytest.raises(InvalidFormatError):
        open_audio(str(raw))
