"""Named countdown/count-up timers driven by one shared cooperative tick loop.

The loop is not tied to any host API: it asks a :class:`FrameScheduler` for
the next frame, and :meth:`TimerManager.tick` can also be called directly by
any host loop. Time comes from an injectable millisecond clock.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

import structlog

from .errors import ConfigurationError, PersistenceError
from .event_bus import EventBus
from .event_types import TimerEvent, TimerEventPayload
from .storage import Storage
from ..utils.clock import Clock, system_clock

LOGGER = structlog.get_logger(__name__)

STORAGE_KEY = "timer/timers"
DEFAULT_FRAME_INTERVAL_MS = 16.0


class TimerType(str, Enum):
    COUNTDOWN = "countdown"
    COUNTUP = "countup"


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(slots=True)
class TimerInstance:
    """State of one timer. ``start_time`` is the anchor of the pending accrual."""

    id: str
    type: TimerType
    status: TimerStatus
    duration: float
    elapsed: float = 0.0
    start_time: float = 0.0
    speed_multiplier: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "duration": self.duration,
            "elapsed": self.elapsed,
            "startTime": self.start_time,
            "speedMultiplier": self.speed_multiplier,
        }

    @classmethod
    def from_dict(cls, timer_id: str, data: Dict[str, Any]) -> "TimerInstance":
        """Rebuild a persisted timer; raises ``ValueError`` on malformed entries."""

        elapsed = data.get("elapsed")
        duration = data.get("duration")
        for name, value in (("elapsed", elapsed), ("duration", duration)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number")
        speed = data.get("speedMultiplier", 1)
        if isinstance(speed, bool) or not isinstance(speed, (int, float)):
            speed = 1
        return cls(
            id=timer_id,
            type=TimerType(data.get("type") or TimerType.COUNTDOWN.value),
            status=TimerStatus(data.get("status") or TimerStatus.IDLE.value),
            duration=float(duration),
            elapsed=float(elapsed),
            start_time=float(data.get("startTime") or 0),
            speed_multiplier=max(0.0, float(speed)),
        )


TimerCompletionCallback = Callable[[TimerInstance], None]
FrameCallback = Callable[[], None]


class FrameScheduler(Protocol):
    """Host primitive that runs ``callback`` once, on the next frame."""

    def request_frame(self, callback: FrameCallback) -> None:
        ...


class ManualFrameScheduler:
    """Queues frames until :meth:`run_pending` is called."""

    def __init__(self) -> None:
        self._queue: Deque[FrameCallback] = deque()

    def request_frame(self, callback: FrameCallback) -> None:
        self._queue.append(callback)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run_pending(self) -> int:
        """Run the frames queued so far; frames they request wait for the next call."""

        batch = len(self._queue)
        for _ in range(batch):
            self._queue.popleft()()
        return batch


class AsyncioFrameScheduler:
    """Schedules frames on an asyncio loop at a fixed interval."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, *, interval_ms: float = DEFAULT_FRAME_INTERVAL_MS) -> None:
        self._loop = loop
        self.interval_ms = interval_ms

    def request_frame(self, callback: FrameCallback) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_later(self.interval_ms / 1000.0, callback)


class TimerManager:
    """Owns every named timer, persists the table and emits ``timer:*`` events."""

    def __init__(
        self,
        event_bus: EventBus,
        storage: Storage,
        *,
        clock: Clock = system_clock,
        scheduler: Optional[FrameScheduler] = None,
    ) -> None:
        self._bus = event_bus
        self._storage = storage
        self._clock = clock
        self._scheduler: FrameScheduler = scheduler or ManualFrameScheduler()
        self._timers: Dict[str, TimerInstance] = {}
        self._callbacks: Dict[str, List[TimerCompletionCallback]] = {}
        self._ticking = False
        # Frames requested by an earlier loop are ignored once it was stopped.
        self._loop_generation = 0

        self._load()
        self._save()

    # Persistence

    def _load(self) -> None:
        try:
            saved = self._storage.get(STORAGE_KEY)
        except PersistenceError as exc:
            LOGGER.error("timers.load_failed", error=str(exc))
            return
        if not isinstance(saved, dict):
            return

        for timer_id, data in saved.items():
            if not isinstance(data, dict):
                LOGGER.warning("timers.invalid_entry", timer_id=timer_id)
                continue
            try:
                timer = TimerInstance.from_dict(timer_id, data)
            except ValueError as exc:
                LOGGER.warning("timers.invalid_entry", timer_id=timer_id, error=str(exc))
                continue
            if timer.status == TimerStatus.RUNNING:
                # Downtime while the process was gone is never counted.
                timer.status = TimerStatus.PAUSED
                LOGGER.warning("timers.loaded_running_paused", timer_id=timer_id)
            self._timers[timer_id] = timer
        LOGGER.debug("timers.loaded", count=len(self._timers))

    def _save(self) -> None:
        try:
            self._storage.set(STORAGE_KEY, {timer_id: timer.to_dict() for timer_id, timer in self._timers.items()})
        except PersistenceError as exc:
            LOGGER.error("timers.save_failed", error=str(exc))

    # Helpers

    def _lookup(self, timer_id: str, action: str) -> Optional[TimerInstance]:
        timer = self._timers.get(timer_id)
        if timer is None:
            LOGGER.warning("timers.not_found", timer_id=timer_id, action=action)
        return timer

    def _pending_accrual(self, timer: TimerInstance, now: float) -> float:
        if timer.status != TimerStatus.RUNNING:
            return 0.0
        return max(0.0, now - timer.start_time) * timer.speed_multiplier

    def _fold(self, timer: TimerInstance, now: float) -> None:
        """Move the accrual since the anchor into ``elapsed`` and re-anchor at ``now``."""

        timer.elapsed += self._pending_accrual(timer, now)
        timer.start_time = now
        if timer.type == TimerType.COUNTDOWN and timer.elapsed > timer.duration:
            timer.elapsed = timer.duration

    def _remaining(self, timer: TimerInstance, elapsed: float) -> Optional[float]:
        if timer.type != TimerType.COUNTDOWN:
            return None
        return max(0.0, timer.duration - elapsed)

    def _payload(self, timer: TimerInstance) -> TimerEventPayload:
        return TimerEventPayload(
            timer_id=timer.id,
            elapsed=timer.elapsed,
            remaining=self._remaining(timer, timer.elapsed),
            duration=timer.duration,
        )

    def _is_due(self, timer: TimerInstance) -> bool:
        return timer.type == TimerType.COUNTDOWN and timer.elapsed >= timer.duration

    def _complete(self, timer: TimerInstance) -> None:
        timer.status = TimerStatus.COMPLETED
        timer.elapsed = timer.duration
        LOGGER.debug("timers.completed", timer_id=timer.id)
        self._bus.emit(TimerEvent.COMPLETED, self._payload(timer))
        self._run_callbacks(timer.id)

    def _run_callbacks(self, timer_id: str) -> None:
        callbacks = self._callbacks.pop(timer_id, [])
        timer = self._timers.get(timer_id)
        if not callbacks or timer is None:
            return
        snapshot = replace(timer)
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception as exc:
                LOGGER.error("timers.callback_failed", timer_id=timer_id, error=str(exc))

    # Tick loop

    def _ensure_loop(self) -> None:
        if self._ticking:
            return
        self._ticking = True
        self._loop_generation += 1
        LOGGER.debug("timers.loop_started")
        self._request_frame(self._loop_generation)

    def _request_frame(self, generation: int) -> None:
        self._scheduler.request_frame(lambda: self._on_frame(generation))

    def _on_frame(self, generation: int) -> None:
        if not self._ticking or generation != self._loop_generation:
            return
        if self.tick():
            self._request_frame(generation)
        else:
            self._ticking = False
            LOGGER.debug("timers.loop_stopped")

    def _stop_loop(self) -> None:
        self._ticking = False
        self._loop_generation += 1

    def tick(self) -> bool:
        """Advance every running timer to ``now``; return whether any are still running."""

        now = self._clock()
        for timer in list(self._timers.values()):
            # A listener or callback may have removed or stopped it meanwhile.
            if timer.status != TimerStatus.RUNNING or self._timers.get(timer.id) is not timer:
                continue
            self._fold(timer, now)
            self._bus.emit(TimerEvent.TICK, self._payload(timer))
            # TICK listeners may remove or replace the timer before it completes.
            if self._timers.get(timer.id) is not timer:
                continue
            if timer.status == TimerStatus.RUNNING and self._is_due(timer):
                self._complete(timer)

        self._save()
        return any(timer.status == TimerStatus.RUNNING for timer in self._timers.values())

    @property
    def is_ticking(self) -> bool:
        return self._ticking

    # Creation and control

    def create_timer(
        self,
        timer_id: str,
        duration: float = 0,
        type: TimerType = TimerType.COUNTDOWN,
        speed_multiplier: float = 1,
    ) -> TimerInstance:
        """Create (or replace) a timer in the IDLE state and return a copy of it.

        Raises:
            ConfigurationError: if a countdown is given a non-positive duration.
        """

        timer_type = TimerType(type)
        if timer_type == TimerType.COUNTDOWN and duration <= 0:
            raise ConfigurationError(f"Countdown timer '{timer_id}' requires a positive duration, got {duration}")
        if timer_id in self._timers:
            LOGGER.warning("timers.overwrite", timer_id=timer_id)
            self.remove_timer(timer_id)

        timer = TimerInstance(
            id=timer_id,
            type=timer_type,
            status=TimerStatus.IDLE,
            duration=float(duration),
            speed_multiplier=max(0.0, float(speed_multiplier)),
        )
        self._timers[timer_id] = timer
        self._save()
        LOGGER.debug("timers.created", timer_id=timer_id, duration=timer.duration, type=timer_type.value)
        return replace(timer)

    def start_timer(self, timer_id: str) -> None:
        timer = self._lookup(timer_id, "start")
        if timer is None or timer.status == TimerStatus.RUNNING:
            return
        if timer.status == TimerStatus.COMPLETED:
            LOGGER.warning("timers.start_completed", timer_id=timer_id)
            return

        timer.start_time = self._clock()
        timer.status = TimerStatus.RUNNING
        self._save()
        self._ensure_loop()
        LOGGER.debug("timers.started", timer_id=timer_id)
        self._bus.emit(TimerEvent.STARTED, self._payload(timer))

    def pause_timer(self, timer_id: str) -> None:
        timer = self._lookup(timer_id, "pause")
        if timer is None or timer.status != TimerStatus.RUNNING:
            return

        self._fold(timer, self._clock())
        if self._is_due(timer):
            self._complete(timer)
            self._save()
            return

        timer.status = TimerStatus.PAUSED
        self._save()
        LOGGER.debug("timers.paused", timer_id=timer_id, elapsed=timer.elapsed)
        self._bus.emit(TimerEvent.PAUSED, self._payload(timer))

    def resume_timer(self, timer_id: str) -> None:
        timer = self._lookup(timer_id, "resume")
        if timer is None or timer.status != TimerStatus.PAUSED:
            return

        timer.start_time = self._clock()
        timer.status = TimerStatus.RUNNING
        self._save()
        self._ensure_loop()
        LOGGER.debug("timers.resumed", timer_id=timer_id)
        self._bus.emit(TimerEvent.RESUMED, self._payload(timer))

    def reset_timer(self, timer_id: str) -> None:
        timer = self._lookup(timer_id, "reset")
        if timer is None:
            return

        was_running = timer.status == TimerStatus.RUNNING
        timer.status = TimerStatus.IDLE
        timer.elapsed = 0.0
        timer.start_time = 0.0
        self._save()
        LOGGER.debug("timers.reset", timer_id=timer_id)
        if was_running:
            self._bus.emit(TimerEvent.STOPPED, self._payload(timer))

    def remove_timer(self, timer_id: str) -> None:
        timer = self._lookup(timer_id, "remove")
        if timer is None:
            return

        was_running = timer.status == TimerStatus.RUNNING
        del self._timers[timer_id]
        self._callbacks.pop(timer_id, None)
        self._save()
        LOGGER.debug("timers.removed", timer_id=timer_id)
        if was_running:
            self._bus.emit(TimerEvent.STOPPED, self._payload(timer))

    def set_timer_speed(self, timer_id: str, multiplier: float) -> None:
        """Change the speed of future accrual; time already counted is not rescaled."""

        timer = self._lookup(timer_id, "set_speed")
        if timer is None:
            return

        self._fold(timer, self._clock())
        timer.speed_multiplier = max(0.0, float(multiplier))
        self._save()
        LOGGER.debug("timers.speed_changed", timer_id=timer_id, speed=timer.speed_multiplier)
        self._bus.emit(TimerEvent.MODIFIED, self._payload(timer))

    def add_time(self, timer_id: str, delta_ms: float) -> None:
        """Extend (or shorten, with a negative delta) a countdown's duration."""

        timer = self._lookup(timer_id, "add_time")
        if timer is None:
            return
        if timer.type != TimerType.COUNTDOWN:
            LOGGER.warning("timers.add_time_unsupported", timer_id=timer_id, type=timer.type.value)
            return
        if timer.status == TimerStatus.COMPLETED:
            LOGGER.warning("timers.add_time_completed", timer_id=timer_id)
            return

        self._fold(timer, self._clock())
        timer.duration = max(timer.elapsed, timer.duration + delta_ms)
        self._save()
        LOGGER.debug("timers.time_added", timer_id=timer_id, delta_ms=delta_ms, duration=timer.duration)
        self._bus.emit(TimerEvent.MODIFIED, self._payload(timer))

    # Bulk operations

    def pause_all(self) -> None:
        running = [t.id for t in self._timers.values() if t.status == TimerStatus.RUNNING]
        for timer_id in running:
            self.pause_timer(timer_id)
        LOGGER.debug("timers.paused_all", count=len(running))

    def resume_all(self) -> None:
        paused = [t.id for t in self._timers.values() if t.status == TimerStatus.PAUSED]
        for timer_id in paused:
            self.resume_timer(timer_id)
        LOGGER.debug("timers.resumed_all", count=len(paused))

    def stop_all_timers(self) -> None:
        for timer in list(self._timers.values()):
            if timer.status in (TimerStatus.RUNNING, TimerStatus.PAUSED):
                self.reset_timer(timer.id)
        self._callbacks.clear()
        self._stop_loop()
        LOGGER.debug("timers.stopped_all")

    # Completion callbacks

    def on_timer_complete(self, timer_id: str, callback: TimerCompletionCallback) -> None:
        timer = self._lookup(timer_id, "on_complete")
        if timer is None:
            return
        if timer.status == TimerStatus.COMPLETED:
            LOGGER.warning("timers.callback_after_completion", timer_id=timer_id)
            return
        self._callbacks.setdefault(timer_id, []).append(callback)

    def off_timer_complete(self, timer_id: str, callback: Optional[TimerCompletionCallback] = None) -> None:
        callbacks = self._callbacks.get(timer_id)
        if not callbacks:
            return
        if callback is None:
            del self._callbacks[timer_id]
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            LOGGER.warning("timers.callback_not_found", timer_id=timer_id)
            return
        if not callbacks:
            del self._callbacks[timer_id]

    # Reads

    def get_elapsed_time(self, timer_id: str) -> float:
        timer = self._timers.get(timer_id)
        if timer is None:
            return 0.0
        elapsed = timer.elapsed + self._pending_accrual(timer, self._clock())
        if timer.type == TimerType.COUNTDOWN:
            return min(elapsed, timer.duration)
        return elapsed

    def get_time_remaining(self, timer_id: str) -> float:
        timer = self._timers.get(timer_id)
        if timer is None or timer.type != TimerType.COUNTDOWN:
            return 0.0
        return max(0.0, timer.duration - self.get_elapsed_time(timer_id))

    def is_running(self, timer_id: str) -> bool:
        timer = self._timers.get(timer_id)
        return timer is not None and timer.status == TimerStatus.RUNNING

    def get_timer(self, timer_id: str) -> Optional[TimerInstance]:
        timer = self._timers.get(timer_id)
        return replace(timer) if timer is not None else None

    def get_all_timers(self) -> List[TimerInstance]:
        return [replace(timer) for timer in self._timers.values()]

    @staticmethod
    def format_time(milliseconds: float) -> str:
        """Format milliseconds as ``MM:SS.sss``.

        >>> TimerManager.format_time(83456)
        '01:23.456'
        >>> TimerManager.format_time(-5)
        '00:00.000'
        """

        milliseconds = max(0, int(milliseconds))
        total_seconds, ms = divmod(milliseconds, 1000)
        minutes, seconds = divmod(total_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}.{ms:03d}"
