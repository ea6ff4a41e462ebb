"""Callback registry over a fixed, enumerated event vocabulary."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Callable, Generic, TypeVar

from devmonitor.logging_config import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=StrEnum)

Listener = Callable[..., Any]


class EventEmitter(Generic[E]):
    """Synchronous listener registry keyed by the members of one StrEnum.

    Listeners run in registration order on the emitting thread. A failing
    listener is logged and does not stop the others.
    """

    def __init__(self, vocabulary: type[E]) -> None:
        self._vocabulary = vocabulary
        self._listeners: dict[E, list[Listener]] = {event: [] for event in vocabulary}

    def on(self, event: E, callback: Listener) -> None:
        self._listeners[self._check(event)].append(callback)

    def off(self, event: E, callback: Listener) -> None:
        listeners = self._listeners[self._check(event)]
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: E, *args: Any) -> None:
        for callback in list(self._listeners[self._check(event)]):
            try:
                callback(*args)
            except Exception as exc:
                logger.error("event_listener_failed", event=str(event), error=str(exc))

    def listener_count(self, event: E) -> int:
        return len(self._listeners[self._check(event)])

    def _check(self, event: E) -> E:
        if not isinstance(event, self._vocabulary):
            raise ValueError(f"Unknown event {event!r} for {self._vocabulary.__name__}")
        return event
