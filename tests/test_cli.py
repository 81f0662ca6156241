import json

import numpy as np
import pytest

from audiowave import main


def test_extracts_and_writes_json(tone_wav, tmp_path):
    out = tmp_path / "out" / "tone.json"

    assert main([tone_wav, "--bars", "8", "--json", str(out)]) == 0

    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["bar_count"] == 8
    assert len(data["amplitudes"]) == 8
    assert max(data["amplitudes"]) == 1.0
    assert data["samplerate"] == 8000
    assert data["frames"] == 20000


def test_preset_supplies_bar_count(tone_wav, tmp_path):
    preset = tmp_path / "preset.json"
    preset.write_text(json.dumps({"schema_version": "1.0", "bar_count": 5}),
                      encoding="utf-8")
    out = tmp_path / "tone.json"

    assert main([tone_wav, "--preset", str(preset), "--json", str(out)]) == 0
    assert len(json.loads(out.read_text(encoding="utf-8"))["amplitudes"]) == 5


def test_missing_file_exits_with_error(tmp_path):
    assert main([str(tmp_path / "missing.wav")]) == 1


def test_invalid_preset_exits_with_config_error(tone_wav, tmp_path):
    preset = tmp_path / "bad.json"
    preset.write_text(json.dumps({"tick_rate_hz": 240}), encoding="utf-8")

    assert main([tone_wav, "--preset", str(preset)]) == 2


def test_non_positive_bars_rejected_by_parser(tone_wav):
    with pytest.raises(SystemExit) as excinfo:
        main([tone_wav, "--bars", "0"])

    assert excinfo.value.code == 2


def test_silent_file_prints_zeros(write_wav, capsys):
    path = write_wav("silence.wav", np.zeros(800))

    assert main([path, "--bars", "4"]) == 0
    assert "0.00 0.00 0.00 0.00" in capsys.readouterr().out
