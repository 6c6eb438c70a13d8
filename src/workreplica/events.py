"""Observer registration for change notifications."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Observer = Callable[[T], "Awaitable[None] | None"]


class Broadcaster(Generic[T]):
    """Explicit observer list.

    Observers may be plain callables or coroutine functions. emit() awaits
    coroutine observers in registration order. Observer errors are logged
    and skipped.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._observers: list[Observer[T]] = []

    def __len__(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: Observer[T]) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def emit(self, payload: T) -> None:
        for observer in list(self._observers):
            try:
                result = observer(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("observer failed", event=self.name)
