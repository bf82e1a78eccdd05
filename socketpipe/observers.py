import contextlib
import logging
from types import TracebackType

from socketpipe import hooks

logger = logging.getLogger(__name__)


def observer_name(observer) -> str:
    """
    The .name attribute of an observer, or its lower case class name.
    """
    return getattr(observer, "name", type(observer).__name__.lower())


def cut_traceback(tb: TracebackType | None, func_name: str) -> TracebackType | None:
    """
    Drop the frames up to and including the first call of func_name, so that
    a logged observer error starts in the observer's own code.
    """
    current = tb
    while current is not None:
        if current.tb_frame.f_code.co_name == func_name:
            return current.tb_next or tb
        current = current.tb_next
    return tb


@contextlib.contextmanager
def safecall():
    """
    Log an exception raised in the block instead of propagating it.
    """
    try:
        yield
    except Exception as e:
        logger.error(
            f"Observer error: {e}",
            exc_info=(type(e), e, cut_traceback(e.__traceback__, "invoke")),
        )


class ObserverManager:
    """
    Dispatches proxy events to observers.

    An observer is any object. For every hook it wants to receive it defines
    a method named after the hook, e.g.

        class Counter:
            def __init__(self):
                self.bytes = 0

            def transfer(self, session, direction, data):
                self.bytes += len(data)

    Observers are called in the order they were added. Errors raised by an
    observer are logged and do not interrupt the proxy.
    """

    def __init__(self):
        self.chain: list = []

    def add(self, *observers) -> None:
        for o in observers:
            name = observer_name(o)
            if self.get(name) is not None:
                raise ValueError(f"An observer called '{name}' already exists.")
            self.chain.append(o)

    def remove(self, observer) -> None:
        if not any(o is observer for o in self.chain):
            raise ValueError(f"No such observer: {observer}")
        self.chain = [o for o in self.chain if o is not observer]

    def get(self, name: str):
        for o in self.chain:
            if observer_name(o) == name:
                return o
        return None

    def __len__(self) -> int:
        return len(self.chain)

    def __str__(self) -> str:
        return "\n".join(str(o) for o in self.chain)

    def invoke(self, observer, event: hooks.Hook) -> None:
        handler = getattr(observer, event.name, None)
        if handler is None:
            return
        with safecall():
            if not callable(handler):
                raise ValueError(f"Observer handler {event.name} ({observer}) not callable")
            handler(*event.args())

    def trigger(self, event: hooks.Hook) -> None:
        for o in self.chain:
            self.invoke(o, event)
