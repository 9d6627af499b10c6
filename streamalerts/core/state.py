"""Small observable state holder for process-wide flags such as stream liveness."""

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StateHolder(Generic[T]):
    """Holds one value and notifies listeners when it changes."""

    def __init__(self, name: str, initial: T) -> None:
        self.name = name
        self._value = initial
        self._listeners: list[Callable[[T, T], None]] = []

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Store *value*; returns True when it differs from the previous one."""
        previous = self._value
        if previous == value:
            return False
        self._value = value
        logger.info(f"{self.name}: {previous} -> {value}")
        for listener in list(self._listeners):
            try:
                listener(previous, value)
            except Exception as e:
                logger.exception(f"{self.name} listener failed: {e}")
        return True

    def add_listener(self, listener: Callable[[T, T], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[T, T], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)


class LiveState(StateHolder[bool]):
    """Whether the tracked channel is currently live."""

    def __init__(self) -> None:
        super().__init__("stream_live", False)
