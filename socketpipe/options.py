from collections.abc import Sequence
from typing import Optional

from socketpipe import log
from socketpipe import optmanager

CONF_DIR = "~/.socketpipe"
SELECT_TIMEOUT = 100
HALF_CLOSE_TIMEOUT = 300


class Options(optmanager.OptManager):
    def __init__(self, **kwargs) -> None:
        super().__init__()
        self.add_option(
            "confdir",
            str,
            CONF_DIR,
            "Location of the default socketpipe configuration files.",
        )

        # Tunnel options
        self.add_option(
            "dest_host",
            Optional[str],
            None,
            "Host name or IP address all tunneled connections are forwarded to.",
        )
        self.add_option(
            "mappings",
            Sequence[str],
            [],
            """
            Port mappings of the form "SRC:DEST". SRC is a local TCP port, or the
            path of a Unix domain socket if it is not a number. DEST is the TCP
            port on the destination host.
            """,
        )
        self.add_option(
            "listen_host",
            str,
            "",
            "Address to bind TCP listeners to. By default all interfaces.",
        )
        self.add_option(
            "connect_timeout",
            Optional[int],
            None,
            """
            Seconds to wait for the destination to accept a connection. While
            connecting, no other connection is served.
            """,
        )
        self.add_option(
            "select_timeout",
            int,
            SELECT_TIMEOUT,
            "Maximum number of seconds to wait for socket readiness before re-checking the session pool.",
        )
        self.add_option(
            "half_close_timeout",
            int,
            HALF_CLOSE_TIMEOUT,
            """
            Seconds a session may stay half-closed (one direction finished, the
            other still open) before it is closed entirely. 0 disables the limit.
            """,
        )

        # Dump options
        self.add_option(
            "dump_request",
            bool,
            True,
            "Hex dump data sent from the source to the destination.",
        )
        self.add_option(
            "dump_response",
            bool,
            False,
            "Hex dump data sent from the destination back to the source.",
        )

        # Process options
        self.add_option(
            "daemon",
            bool,
            False,
            "Detach from the terminal and run in the background.",
        )
        self.add_option(
            "log_file",
            Optional[str],
            None,
            "Write the log to this file instead of stderr.",
        )
        self.add_option(
            "log_max_size",
            str,
            "0",
            """
            Rotate the log file once it is larger than this size, e.g. "10m".
            Rotation only happens if log_backup_count is set as well.
            """,
        )
        self.add_option(
            "log_backup_count",
            int,
            0,
            "Number of rotated log files to keep. 0 disables rotation.",
        )
        self.add_option(
            "log_verbosity",
            str,
            "info",
            "Log verbosity.",
            choices=log.LogLevels,
        )

        self.update(**kwargs)
