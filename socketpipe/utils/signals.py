"""
A small synchronous signal, used to announce option changes.

Receivers are called in the order they connected. The signal holds only weak
references to them, so connecting does not keep an object alive: a
ProxyServer that is gone simply stops receiving.
"""
from __future__ import annotations

import weakref
from collections.abc import Callable
from typing import Any


def _ref(receiver: Callable) -> weakref.ref:
    if hasattr(receiver, "__self__") and hasattr(receiver, "__func__"):
        # a plain weakref to a bound method dies immediately
        return weakref.WeakMethod(receiver)
    return weakref.ref(receiver)


class SyncSignal:
    def __init__(self) -> None:
        self.receivers: list[weakref.ref] = []

    def connect(self, receiver: Callable[..., None]) -> None:
        self.receivers.append(_ref(receiver))

    def disconnect(self, receiver: Callable[..., None]) -> None:
        self.receivers = [r for r in self.receivers if r() not in (None, receiver)]

    def send(self, *args: Any, **kwargs: Any) -> None:
        """
        Call all live receivers with the given arguments. An exception raised
        by a receiver propagates, later receivers are not called.
        """
        self.receivers = [r for r in self.receivers if r() is not None]
        for ref in list(self.receivers):
            receiver = ref()
            if receiver is not None:
                receiver(*args, **kwargs)
