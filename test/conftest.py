from __future__ import annotations

import os
import shutil
import socket
import tempfile

import pytest

skip_no_unix_sockets = pytest.mark.skipif(
    not hasattr(socket, "AF_UNIX"), reason="Host has no Unix domain sockets"
)


def free_port() -> int:
    """
    A TCP port on 127.0.0.1 that was free a moment ago. Listen specs
    cannot ask for an ephemeral port, "0" is a Unix socket path.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture()
def port() -> int:
    return free_port()


@pytest.fixture()
def sock_path():
    # AF_UNIX paths are limited to about 100 bytes, tmp_path may be longer.
    d = tempfile.mkdtemp(prefix="sp-")
    yield os.path.join(d, "pipe.sock")
    shutil.rmtree(d, ignore_errors=True)
