from __future__ import annotations

from typing import Any, Callable

POINTER_MOVE = "pointer.move"
POINTER_OVER = "pointer.over"
POINTER_LEAVE = "pointer.leave"
SCROLL = "scroll"
RESIZE = "resize"
ACTIVATE = "activate"

InputHandler = Callable[[str, dict[str, Any]], None]


class InputBus:
    """Delivers input events to subscribers as soon as they are published.

    Each handler runs to completion before the next one, so subscribers never
    see a half-applied event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[InputHandler]] = {}

    def subscribe(self, name: str, handler: InputHandler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: InputHandler) -> None:
        handlers = self._subscribers.get(name)
        if handlers is None:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    def subscribers(self, name: str) -> int:
        return len(self._subscribers.get(name, ()))

    def publish(self, name: str, **data: Any) -> None:
        # Copy so a handler may unsubscribe while being dispatched.
        for handler in list(self._subscribers.get(name, ())):
            handler(name, data)
