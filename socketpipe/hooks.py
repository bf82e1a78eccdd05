"""
Events the proxy reports to observers.

Each hook is a dataclass. Observers receive it through a method named after
the hook, called with the hook's fields in declaration order:
SessionClosedHook(session, reason) calls observer.session_closed(session, reason).
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from dataclasses import fields
from dataclasses import is_dataclass
from typing import Any
from typing import ClassVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from socketpipe.proxy import session
    from socketpipe.proxy import transfer

all_hooks: dict[str, type[Hook]] = {}


def _hook_name(class_name: str) -> str:
    # SessionOpenedHook -> session_opened
    return re.sub(r"(?<!^)(?=[A-Z])", "_", class_name.removesuffix("Hook")).lower()


class Hook:
    name: ClassVar[str]

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if "name" not in cls.__dict__:
            cls.name = _hook_name(cls.__name__)
        if not cls.name:
            # an empty name marks a base class that is never triggered
            return
        other = all_hooks.get(cls.name)
        if other is not None:
            raise TypeError(
                f"Hook name {cls.name!r} is used by both {other.__qualname__} and {cls.__qualname__}."
            )
        all_hooks[cls.name] = cls

    def __new__(cls, *args, **kwargs):
        if cls is Hook:
            raise TypeError("Hook may not be instantiated directly.")
        if not is_dataclass(cls):
            raise TypeError(f"{cls.__name__} is not a dataclass.")
        return super().__new__(cls)

    def args(self) -> list[Any]:
        return [getattr(self, f.name) for f in fields(self)]


@dataclass
class RunningHook(Hook):
    """
    All listeners are bound, the proxy starts waiting for connections.
    """


@dataclass
class SessionOpenedHook(Hook):
    """
    An inbound connection has been paired with a connection to the
    destination.
    """

    session: session.Session


@dataclass
class TransferHook(Hook):
    """
    A block of data was read from one side of a session. Triggered before
    the block is written to the other side.
    """

    session: session.Session
    direction: transfer.Direction
    data: bytes


@dataclass
class SessionClosedHook(Hook):
    """
    Both directions of a session are closed and it has left the pool.
    """

    session: session.Session
    reason: transfer.CloseReason


@dataclass
class DoneHook(Hook):
    """
    The proxy has stopped and its listeners are closed. No event follows.
    """
