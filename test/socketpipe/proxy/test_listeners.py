import logging
import os
import socket

import pytest

from socketpipe import exceptions
from socketpipe.proxy.listeners import ListenerRegistry
from socketpipe.proxy.mapping import PortMapping

from ...conftest import free_port
from ...conftest import skip_no_unix_sockets


def test_bind(port, caplog):
    caplog.set_level(logging.INFO)
    m = PortMapping(str(port), 80)
    with ListenerRegistry.bind([m], "example.com", "127.0.0.1") as reg:
        assert len(reg) == 1
        (endpoint,) = reg.endpoints()
        assert endpoint.mapping is m
        assert endpoint.address[1] == port
        assert reg.lookup(endpoint.fileno) is endpoint
        assert reg.lookup(-1) is None
        assert reg.sockets() == [endpoint.socket]
        # listeners never block in accept()
        assert endpoint.socket.getblocking() is False
    assert len(reg) == 0
    assert endpoint.closed
    assert f"Started ... src={port}, dest=80@example.com" in caplog.text
    assert f"Stopped ... src={port}, dest=80@example.com" in caplog.text


@skip_no_unix_sockets
def test_unix_socket_removed(sock_path):
    m = PortMapping(sock_path, 22)
    reg = ListenerRegistry.bind([m], "example.com")
    assert os.path.exists(sock_path)
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as c:
        c.connect(sock_path)
    reg.close()
    assert not os.path.exists(sock_path)
    # idempotent
    reg.close()


def test_bind_error_closes_bound(port):
    taken = socket.socket()
    taken.bind(("127.0.0.1", 0))
    taken.listen()
    busy = taken.getsockname()[1]
    try:
        ok = PortMapping(str(port), 80)
        bad = PortMapping(str(busy), 81)
        with pytest.raises(exceptions.BindError) as excinfo:
            ListenerRegistry.bind([ok, bad], "example.com", "127.0.0.1")
        assert excinfo.value.mapping is bad
        assert str(busy) in str(excinfo.value)
        # the first listener has been released again
        with socket.socket() as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind(("127.0.0.1", port))
            s.listen()
    finally:
        taken.close()


@skip_no_unix_sockets
def test_bind_error_removes_unix_socket(sock_path):
    taken = socket.socket()
    taken.bind(("127.0.0.1", 0))
    taken.listen()
    try:
        with pytest.raises(exceptions.BindError):
            ListenerRegistry.bind(
                [
                    PortMapping(sock_path, 22),
                    PortMapping(str(taken.getsockname()[1]), 80),
                ],
                "example.com",
                "127.0.0.1",
            )
        assert not os.path.exists(sock_path)
    finally:
        taken.close()


def test_several_mappings():
    ports = [free_port(), free_port()]
    while ports[0] == ports[1]:
        ports[1] = free_port()
    ms = [PortMapping(str(p), 80 + i) for i, p in enumerate(ports)]
    with ListenerRegistry.bind(ms, "example.com", "127.0.0.1") as reg:
        assert sorted(e.mapping.dest_port for e in reg.endpoints()) == [80, 81]
        assert len({e.fileno for e in reg.endpoints()}) == 2


@skip_no_unix_sockets
def test_tcp_mapping_leaves_files_alone(port, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    # a socket file that happens to carry the name of the TCP port
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as s:
        s.bind(str(port))
    assert os.path.exists(str(port))

    reg = ListenerRegistry.bind([PortMapping(str(port), 80)], "example.com", "127.0.0.1")
    reg.close()
    assert os.path.exists(str(port))
