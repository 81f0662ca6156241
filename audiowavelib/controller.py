"""Playback state machine synchronised with background waveform extraction."""

from __future__ import annotations

import functools
import logging
import math
import threading
from typing import Any, Callable

import numpy as np

from .audio import format_time
from .config import build_config
from .events import EventBus
from .log import dbg
from .models import (
    Completed,
    ExtractionProgress,
    InProgress,
    PlaybackSession,
    PlayerState,
    freeze_amplitudes,
)
from .transport import SounddeviceTransport, Transport
from .waveform import WaveformExtractor, WaveformWorker, placeholder_amplitudes

log = logging.getLogger(__name__)

_EMPTY = freeze_amplitudes([])


class Ticker:
    """Calls *callback* every *interval* seconds on a daemon thread.

    :meth:`stop` only signals the thread; it never joins, so it is safe to
    call from inside the callback or while holding a lock the callback
    needs.  A callback already in flight may still run once after stop().
    """

    def __init__(self, interval: float, callback: Callable[[], None]):
        self._interval = float(interval)
        self._callback = callback
        self._stop: threading.Event | None = None

    @property
    def active(self) -> bool:
        return self._stop is not None

    def start(self) -> None:
        if self._stop is not None:
            return
        stop = threading.Event()
        self._stop = stop

        def run() -> None:
            while not stop.wait(self._interval):
                try:
                    self._callback()
                except Exception:
                    log.exception("Progress tick failed")

        threading.Thread(target=run, name="audiowave-tick", daemon=True).start()

    def stop(self) -> None:
        stop, self._stop = self._stop, None
        if stop is not None:
            stop.set()


class PlaybackController:
    """Owns one playback session and its amplitude series.

    State machine::

        IDLE --load--> LOADING --ok--> READY --play--> PLAYING <--> PAUSED
                          |
                          +--fail--> ERROR

    ``load()`` and ``reset()`` are accepted in every state.  Other commands
    are ignored when the current state does not allow them; none of them
    raise.  Observers subscribe to :attr:`events`:

    * ``state.changed(state, error)``
    * ``time.changed(current_time, duration, progress)``
    * ``waveform.progress(fraction)``
    * ``amplitudes.changed(amplitudes, placeholder)``

    Events fire on whichever thread caused them (caller, extraction worker
    or progress ticker) while the controller lock is held; handlers must
    not block.  A handler that raises is logged and does not affect the
    controller or the other handlers.
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        transport_factory: Callable[[], Transport] = SounddeviceTransport,
        ticker_factory: Callable[[float, Callable[[], None]], Ticker] = Ticker,
        event_bus: EventBus | None = None,
    ):
        self.config = build_config(config)
        self.events = event_bus or EventBus()
        self._transport_factory = transport_factory
        self._ticker_factory = ticker_factory
        self._lock = threading.RLock()

        self._generation = 0
        self._state = PlayerState.IDLE
        self._error: str | None = None
        self._session: PlaybackSession | None = None
        self._ticker: Ticker | None = None
        self._worker: WaveformWorker | None = None
        self._amplitudes: np.ndarray = _EMPTY
        self._placeholder = False
        self._waveform_progress = 0.0

    # ------------------------------------------------------------------
    # Observable fields
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def error(self) -> str | None:
        """Message of the last session setup failure while in ERROR."""
        return self._error

    @property
    def bar_count(self) -> int:
        return self.config["bar_count"]

    @property
    def has_session(self) -> bool:
        return self._session is not None

    @property
    def path(self) -> str | None:
        session = self._session
        return session.path if session is not None else None

    @property
    def current_time(self) -> float:
        session = self._session
        return session.current_time if session is not None else 0.0

    @property
    def duration(self) -> float:
        session = self._session
        return session.duration if session is not None else 0.0

    @property
    def progress(self) -> float:
        session = self._session
        return session.progress if session is not None else 0.0

    @property
    def amplitudes(self) -> np.ndarray:
        return self._amplitudes

    @property
    def amplitudes_are_placeholder(self) -> bool:
        return self._placeholder

    @property
    def waveform_progress(self) -> float:
        return self._waveform_progress

    @property
    def current_time_formatted(self) -> str:
        return format_time(self.current_time)

    @property
    def duration_formatted(self) -> str:
        return format_time(self.duration)

    @property
    def remaining_time_formatted(self) -> str:
        return format_time(self.duration - self.current_time)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def load(self, path: str) -> PlayerState:
        """Replace the current session with *path*.

        Waveform extraction starts on a worker thread; the playback
        session is prepared on the calling thread.  Returns the resulting
        state, READY or ERROR (or whatever a concurrent reset()/load() left
        behind).
        """
        with self._lock:
            self._teardown()
            self._clear_waveform()
            self._generation += 1
            generation = self._generation
            self._error = None
            self._set_state(PlayerState.LOADING)
            self._emit_time()
            dbg(f"load generation {generation}: {path}")

            worker = WaveformWorker(
                path, self.bar_count,
                on_update=functools.partial(self._on_waveform_update, generation),
                on_error=functools.partial(self._on_waveform_error, generation),
                extractor=WaveformExtractor(self.config["chunk_seconds"]),
            )
            self._worker = worker
            worker.start()

        transport: Transport | None = None
        try:
            transport = self._transport_factory()
            duration = float(transport.open(path))
        except Exception as e:
            log.warning("Could not prepare playback for %s: %s", path, e)
            if transport is not None:
                self._release_transport(transport)
            with self._lock:
                if generation == self._generation:
                    self._error = str(e) or type(e).__name__
                    self._set_state(PlayerState.ERROR)
                return self._state

        with self._lock:
            if generation != self._generation:
                dbg(f"generation {generation} superseded during preparation")
                self._release_transport(transport)
                return self._state
            self._session = PlaybackSession(
                generation=generation,
                path=str(path),
                transport=transport,
                duration=max(duration, 0.0),
            )
            self._ticker = self._ticker_factory(
                1.0 / self.config["tick_rate_hz"],
                functools.partial(self._on_tick, generation),
            )
            self._set_state(PlayerState.READY)
            self._emit_time()
            return self._state

    def play(self) -> None:
        with self._lock:
            session = self._session
            if session is None or self._state not in (PlayerState.READY, PlayerState.PAUSED):
                return
            try:
                session.transport.play()
            except Exception:
                log.exception("Failed to start playback of %s", session.path)
                return
            self._set_state(PlayerState.PLAYING)
            self._ticker.start()

    def pause(self) -> None:
        with self._lock:
            session = self._session
            if session is None or self._state is not PlayerState.PLAYING:
                return
            self._ticker.stop()
            try:
                session.transport.pause()
            except Exception:
                log.exception("Failed to pause playback of %s", session.path)
            self._sync_time(session)
            self._set_state(PlayerState.PAUSED)

    def toggle_play_pause(self) -> None:
        with self._lock:
            if self._state is PlayerState.PLAYING:
                self.pause()
            else:
                self.play()

    def seek_to_time(self, seconds: float) -> None:
        """Move to *seconds*, clamped to [0, duration].

        Non-finite targets are ignored.
        """
        with self._lock:
            session = self._session
            if session is None or not math.isfinite(seconds):
                return
            target = session.clamp_time(seconds)
            try:
                session.transport.seek(target)
            except Exception:
                log.exception("Failed to seek %s to %.3f s", session.path, target)
                return
            session.current_time = target
            self._emit_time()

    def seek_to_progress(self, progress: float) -> None:
        """Move to a fraction (clamped to [0, 1]) of the duration."""
        with self._lock:
            session = self._session
            if session is None or not math.isfinite(progress):
                return
            fraction = min(max(float(progress), 0.0), 1.0)
            self.seek_to_time(session.duration * fraction)

    def skip_forward(self, seconds: float | None = None) -> None:
        if seconds is None:
            seconds = self.config["skip_seconds"]
        with self._lock:
            if self._session is not None:
                self.seek_to_time(self._session.current_time + seconds)

    def skip_backward(self, seconds: float | None = None) -> None:
        if seconds is None:
            seconds = self.config["skip_seconds"]
        with self._lock:
            if self._session is not None:
                self.seek_to_time(self._session.current_time - seconds)

    def reset(self) -> None:
        """Stop everything and return to IDLE.  Safe in any state."""
        with self._lock:
            had_session = self._session is not None
            self._teardown()
            self._clear_waveform()
            self._generation += 1
            self._error = None
            self._set_state(PlayerState.IDLE)
            if had_session:
                self._emit_time()

    def wait_for_waveform(self, timeout: float | None = None) -> bool:
        """Block until the current extraction worker has finished."""
        with self._lock:
            worker = self._worker
        if worker is None:
            return True
        return worker.join(timeout)

    # ------------------------------------------------------------------
    # Background callbacks
    # ------------------------------------------------------------------

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            session = self._session
            if (session is None or session.generation != generation
                    or self._state is not PlayerState.PLAYING):
                return
            self._sync_time(session)
            transport = session.transport
            epsilon = self.config["end_epsilon"]
            if (not transport.is_playing
                    and session.current_time >= session.duration - epsilon):
                dbg(f"playback finished at {session.current_time:.3f} s")
                self._ticker.stop()
                try:
                    transport.pause()
                except Exception:
                    log.exception("Failed to stop finished playback of %s", session.path)
                self._set_state(PlayerState.PAUSED)
                self.seek_to_progress(0.0)

    def _on_waveform_update(self, generation: int, update: ExtractionProgress) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if isinstance(update, InProgress):
                self._waveform_progress = update.fraction
                self.events.notify("waveform.progress", fraction=update.fraction)
            elif isinstance(update, Completed):
                self._amplitudes = update.amplitudes
                self._placeholder = False
                self._waveform_progress = 1.0
                self.events.notify("waveform.progress", fraction=1.0)
                self.events.notify("amplitudes.changed",
                                   amplitudes=self._amplitudes, placeholder=False)

    def _on_waveform_error(self, generation: int, exc: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                return
            log.warning("Showing placeholder waveform: %s", exc)
            self._amplitudes = placeholder_amplitudes(
                self.bar_count,
                low=self.config["placeholder_low"],
                high=self.config["placeholder_high"],
                seed=self.config["placeholder_seed"],
            )
            self._placeholder = True
            self.events.notify("amplitudes.changed",
                               amplitudes=self._amplitudes, placeholder=True)

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _set_state(self, state: PlayerState) -> None:
        if state is self._state and state is not PlayerState.ERROR:
            return
        dbg(f"{self._state.value} -> {state.value}")
        self._state = state
        self.events.notify("state.changed", state=state, error=self._error)

    def _emit_time(self) -> None:
        self.events.notify("time.changed", current_time=self.current_time,
                           duration=self.duration, progress=self.progress)

    def _sync_time(self, session: PlaybackSession) -> None:
        try:
            position = session.transport.current_time
        except Exception:
            log.exception("Failed to read playback position of %s", session.path)
            return
        if not math.isfinite(position):
            return
        session.current_time = session.clamp_time(position)
        self._emit_time()

    def _teardown(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
        if self._worker is not None:
            self._worker.cancel()
            self._worker = None
        session, self._session = self._session, None
        if session is not None:
            self._release_transport(session.transport)

    def _clear_waveform(self) -> None:
        had_amplitudes = self._amplitudes.size > 0
        self._amplitudes = _EMPTY
        self._placeholder = False
        self._waveform_progress = 0.0
        if had_amplitudes:
            self.events.notify("amplitudes.changed",
                               amplitudes=self._amplitudes, placeholder=False)

    @staticmethod
    def _release_transport(transport: Transport) -> None:
        try:
            transport.release()
        except Exception:
            log.exception("Failed to release playback transport")
