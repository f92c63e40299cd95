from __future__ import annotations

from typing import Any, Callable, Iterable, List

from packages.common.types import Instrument

NewSecuritiesHandler = Callable[[Any, List[Instrument]], None]


class NewSecuritiesEvent:
    """
    Observer list for "new instruments discovered".

    Handlers run synchronously, in subscription order, over a snapshot of the
    list taken when fire() starts; a handler may unsubscribe itself.
    """

    def __init__(self) -> None:
        self._handlers: List[NewSecuritiesHandler] = []

    def subscribe(self, handler: NewSecuritiesHandler) -> NewSecuritiesHandler:
        self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: NewSecuritiesHandler) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            pass

    def __iadd__(self, handler: NewSecuritiesHandler) -> "NewSecuritiesEvent":
        self.subscribe(handler)
        return self

    def __isub__(self, handler: NewSecuritiesHandler) -> "NewSecuritiesEvent":
        self.unsubscribe(handler)
        return self

    def __len__(self) -> int:
        return len(self._handlers)

    def fire(self, sender: Any, securities: Iterable[Instrument]) -> int:
        items = list(securities)
        handlers = list(self._handlers)
        for h in handlers:
            h(sender, items)
        return len(handlers)
