from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from typing import IO
from typing import TYPE_CHECKING

from socketpipe.utils import human

if TYPE_CHECKING:
    from socketpipe import options

LogLevels = [
    "error",
    "warn",
    "info",
    "debug",
]


class PipeFormatter(logging.Formatter):
    def __init__(self, with_date: bool = False):
        super().__init__()
        self.with_date = with_date
        self.with_client = "[%s][%s] %s"
        self.without_client = "[%s] %s"

    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def formatTime(self, record, datefmt=None):
        if self.with_date:
            # Files outlive a single day, the terminal usually does not.
            datefmt = datefmt or "%Y-%m-%d %H:%M:%S"
        return super().formatTime(record, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if record.levelno >= logging.WARNING:
            message = f"{record.levelname}: {message}"
        if client := getattr(record, "client", None):
            client = human.format_address(client)
            return self.with_client % (time, client, message)
        else:
            return self.without_client % (time, message)


class PipeLogHandler(logging.Handler):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._initiated_in_test = os.environ.get("PYTEST_CURRENT_TEST")

    def filter(self, record: logging.LogRecord) -> bool:
        # handlers left over from another test are dropped in install(), not here:
        # filter() runs while logging iterates over the handler list
        return bool(
            super().filter(record)
            and (
                not self._initiated_in_test
                or self._initiated_in_test == os.environ.get("PYTEST_CURRENT_TEST")
            )
        )

    def install(self) -> None:
        if self._initiated_in_test:
            for h in list(logging.getLogger().handlers):
                if (
                    isinstance(h, PipeLogHandler)
                    and h._initiated_in_test != self._initiated_in_test
                ):
                    h.uninstall()

        logging.getLogger().addHandler(self)

    def uninstall(self) -> None:
        logging.getLogger().removeHandler(self)


class TermLogHandler(PipeLogHandler):
    def __init__(self, out: IO[str] | None = None):
        super().__init__()
        self.file: IO[str] = out or sys.stderr
        self.formatter = PipeFormatter()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print(self.format(record), file=self.file)
        except OSError:
            # stderr is gone, nobody would see further messages
            sys.exit(1)


class FileLogHandler(logging.handlers.RotatingFileHandler, PipeLogHandler):
    """
    Append to a log file. With max_bytes > 0 the file is rotated once it
    grows past that size, keeping backup_count aged generations
    (name.1 is the most recent one).
    """

    def __init__(self, filename: str, max_bytes: int = 0, backup_count: int = 0):
        super().__init__(
            os.path.expanduser(filename),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf8",
        )
        self._initiated_in_test = os.environ.get("PYTEST_CURRENT_TEST")
        self.formatter = PipeFormatter(with_date=True)

    def uninstall(self) -> None:
        super().uninstall()
        self.close()


def make_handler(opts: options.Options, out: IO[str] | None = None) -> PipeLogHandler:
    """
    Build the log handler described by the log_* options. Raises ValueError
    if log_max_size is not a valid size.
    """
    if opts.log_file:
        handler: PipeLogHandler = FileLogHandler(
            opts.log_file,
            max_bytes=human.parse_size(opts.log_max_size) or 0,
            backup_count=opts.log_backup_count,
        )
    else:
        handler = TermLogHandler(out)
    handler.setLevel(log_level(opts.log_verbosity))
    return handler


def log_level(verbosity: str) -> int:
    if verbosity == "warn":
        return logging.WARNING
    return logging.getLevelName(verbosity.upper())
