from ._version import __version__
from .models import (
    PlayerState,
    InProgress,
    Completed,
    ExtractionProgress,
    PlaybackSession,
)
from .audio import (
    WaveformError,
    InvalidFormatError,
    NoAudioDataError,
    AudioFileNotFoundError,
    format_time,
)
from .waveform import (
    WaveformExtractor,
    WaveformWorker,
    generate,
    stream_generate,
    normalize_peaks,
    placeholder_amplitudes,
    placeholder_heights,
    bar_is_played,
    bar_partial_fill,
)
from .transport import Transport, SounddeviceTransport, SessionSetupError
from .controller import PlaybackController, Ticker
from .config import (
    default_config,
    merge_configs,
    build_config,
    validate_config,
    validate_config_fields,
    validate_param_values,
    load_preset,
    save_preset,
    ConfigError,
    ConfigFieldError,
    ParamSpec,
    WAVEFORM_PARAMS,
    PLAYBACK_PARAMS,
)
from .events import EventBus

__all__ = [
    "__version__",
    "PlayerState",
    "InProgress",
    "Completed",
    "ExtractionProgress",
    "PlaybackSession",
    "WaveformError",
    "InvalidFormatError",
    "NoAudioDataError",
    "AudioFileNotFoundError",
    "format_time",
    "WaveformExtractor",
    "WaveformWorker",
    "generate",
    "stream_generate",
    "normalize_peaks",
    "placeholder_amplitudes",
    "placeholder_heights",
    "bar_is_played",
    "bar_partial_fill",
    "Transport",
    "SounddeviceTransport",
    "SessionSetupError",
    "PlaybackController",
    "Ticker",
    "default_config",
    "merge_configs",
    "build_config",
    "validate_config",
    "validate_config_fields",
    "validate_param_values",
    "load_preset",
    "save_preset",
    "ConfigError",
    "ConfigFieldError",
    "ParamSpec",
    "WAVEFORM_PARAMS",
    "PLAYBACK_PARAMS",
    "EventBus",
]
