"""Environment-gated trace logging for audiowave.

Usage::

    from audiowavelib.log import dbg

    dbg(f"load generation {generation}: {path}")

Nothing is written unless ``AW_DEBUG`` is ``1`` or ``true``.  Each line
goes to stderr as ``[HH:MM:SS.mmm thread Caller] message``.  The thread
name tells the controller's command thread apart from the extraction
worker (``audiowave-waveform``) and the progress ticker
(``audiowave-tick``).
"""

from __future__ import annotations

import os
import sys
import threading
from datetime import datetime

ENV_VAR = "AW_DEBUG"

_enabled: bool | None = None
_write_lock = threading.Lock()


def enabled() -> bool:
    global _enabled
    if _enabled is None:
        _enabled = os.environ.get(ENV_VAR, "").strip().lower() in ("1", "true")
    return _enabled


def reset_enabled() -> None:
    """Forget the cached ``AW_DEBUG`` lookup so the next call re-reads it."""
    global _enabled
    _enabled = None


def _origin(depth: int) -> str:
    """Class of the bound method *depth* frames up, else its module."""
    try:
        frame = sys._getframe(depth + 1)
    except ValueError:
        return "?"
    owner = frame.f_locals.get("self")
    if owner is not None:
        return type(owner).__name__
    return frame.f_globals.get("__name__", "?").rpartition(".")[2]


def dbg(msg: str) -> None:
    if not enabled():
        return
    line = "[{} {} {}] {}".format(
        datetime.now().strftime("%H:%M:%S.%f")[:-3],
        threading.current_thread().name,
        _origin(1),
        msg,
    )
    with _write_lock:
        print(line, file=sys.stderr, flush=True)
