import platform
import selectors
import signal
import sys
import threading
import traceback

from socketpipe import version


def dump_system_info() -> str:
    return "\n".join(
        [
            f"Socketpipe: {version.get_dev_version()}",
            f"Python:     {platform.python_version()} ({platform.python_implementation()})",
            f"Platform:   {platform.platform()}",
            f"Selector:   {selectors.DefaultSelector.__name__}",
        ]
    )


def dump_stacks(signum=None, frame=None, file=None) -> None:
    """
    Print the stack of every thread, e.g. to see where a stuck event loop
    hangs. Installed as the SIGUSR2 handler.
    """
    out = file or sys.stderr
    names = {t.ident: t.name for t in threading.enumerate()}
    for ident, stack in sys._current_frames().items():
        print(f"\n# Thread: {names.get(ident, '')}({ident})", file=out)
        print("".join(traceback.format_stack(stack)), end="", file=out)


def register_info_dumpers() -> None:
    if hasattr(signal, "SIGUSR2"):
        signal.signal(signal.SIGUSR2, dump_stacks)
