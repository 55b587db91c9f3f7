"""Synchronous publish/subscribe hub connecting the engine managers."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from .event_types import TimerEvent

LOGGER = structlog.get_logger(__name__)

Listener = Callable[[Any], None]
EventName = str

_QUIET_EVENTS = {TimerEvent.TICK.value}


def _event_key(name: Any) -> str:
    return name.value if hasattr(name, "value") else str(name)


@dataclass(frozen=True, slots=True)
class Subscription:
    """Opaque handle identifying exactly one listener registration."""

    event: str
    token: int


@dataclass(slots=True)
class _Registration:
    subscription: Subscription
    listener: Listener
    once: bool = False
    active: bool = field(default=True)


class EventBus:
    """Typed event hub.

    Listeners run synchronously in registration order. A listener may emit
    further events; those are dispatched depth-first before the outer emit
    continues with its remaining listeners.
    """

    def __init__(self, *, debug: bool = False) -> None:
        self._listeners: Dict[str, List[_Registration]] = {}
        self._tokens = itertools.count(1)
        self.debug = debug
        if debug:
            LOGGER.debug("event_bus.debug_enabled")

    def on(self, name: EventName, listener: Listener) -> Subscription:
        return self._register(name, listener, once=False)

    def once(self, name: EventName, listener: Listener) -> Subscription:
        return self._register(name, listener, once=True)

    def _register(self, name: EventName, listener: Listener, *, once: bool) -> Subscription:
        key = _event_key(name)
        subscription = Subscription(event=key, token=next(self._tokens))
        self._listeners.setdefault(key, []).append(
            _Registration(subscription=subscription, listener=listener, once=once)
        )
        return subscription

    def off(self, target: Union[Subscription, EventName], listener: Optional[Listener] = None) -> int:
        """Remove registrations and return how many were removed.

        * ``off(subscription)`` removes exactly that registration.
        * ``off(name, listener)`` removes the first registration of ``listener``.
        * ``off(name)`` removes *every* listener for ``name``, including ones
          registered by unrelated code. Prefer subscription handles.
        """

        if isinstance(target, Subscription):
            return self._remove(target.event, lambda reg: reg.subscription == target, first_only=True)

        key = _event_key(target)
        if listener is None:
            return self._remove(key, lambda reg: True, first_only=False)
        return self._remove(key, lambda reg: reg.listener == listener, first_only=True)

    def _remove(self, key: str, predicate: Callable[[_Registration], bool], *, first_only: bool) -> int:
        registrations = self._listeners.get(key)
        if not registrations:
            return 0
        kept: List[_Registration] = []
        removed = 0
        for reg in registrations:
            if predicate(reg) and not (first_only and removed):
                reg.active = False
                removed += 1
            else:
                kept.append(reg)
        if kept:
            self._listeners[key] = kept
        else:
            del self._listeners[key]
        return removed

    def emit(self, name: EventName, payload: Any = None) -> bool:
        """Deliver ``payload`` to every listener of ``name``; return whether any existed."""

        key = _event_key(name)
        if self.debug and key not in _QUIET_EVENTS:
            LOGGER.debug("event_bus.emit", event_name=key, payload=payload)

        registrations = list(self._listeners.get(key, ()))
        if not registrations:
            return False

        for reg in registrations:
            # Removed by an earlier listener during this same dispatch.
            if not reg.active:
                continue
            if reg.once:
                self.off(reg.subscription)
            reg.listener(payload)
        return True

    def listener_count(self, name: EventName) -> int:
        return len(self._listeners.get(_event_key(name), ()))

    def has_listeners(self, name: EventName) -> bool:
        return self.listener_count(name) > 0

    def clear(self) -> None:
        for registrations in self._listeners.values():
            for reg in registrations:
                reg.active = False
        self._listeners.clear()
