from __future__ import annotations

import logging
import socket
from collections.abc import Iterable

from socketpipe import exceptions
from socketpipe.net import tcp
from socketpipe.proxy.mapping import PortMapping

logger = logging.getLogger(__name__)


class ListenEndpoint:
    """A bound, listening socket and the mapping it serves."""

    def __init__(self, sock: socket.socket, mapping: PortMapping):
        # accept() must not block if the peer went away between readiness and accept.
        sock.setblocking(False)
        self.socket = sock
        self.mapping = mapping
        self.fileno = sock.fileno()
        self.closed = False

    @property
    def address(self):
        return self.socket.getsockname()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.socket.close()
        if not self.mapping.is_tcp:
            tcp.unlink_socket(self.mapping.listen_path)

    def __repr__(self):
        return f"ListenEndpoint({self.mapping}, fd={self.fileno})"


class ListenerRegistry:
    """
    Owns the listening endpoints and maps a ready listening socket back
    to the mapping it serves.

    Use it as a context manager (or call close()) so that Unix socket
    files are removed however the proxy stops.
    """

    def __init__(self, dest_host: str):
        self.dest_host = dest_host
        self._endpoints: dict[int, ListenEndpoint] = {}

    @classmethod
    def bind(
        cls,
        mappings: Iterable[PortMapping],
        dest_host: str,
        listen_host: str = "",
    ) -> ListenerRegistry:
        """
        Bind a listener for every mapping.

        Raises:
            BindError, if any listener cannot be bound. Listeners bound
            before the failing one are closed again.
        """
        registry = cls(dest_host)
        try:
            for m in mappings:
                registry._bind_one(m, listen_host)
        except BaseException:
            registry.close()
            raise
        return registry

    def _bind_one(self, mapping: PortMapping, listen_host: str) -> ListenEndpoint:
        try:
            if mapping.is_tcp:
                sock = tcp.bind_tcp(listen_host, mapping.listen_port)
            else:
                sock = tcp.bind_unix(mapping.listen_path)
        except OSError as e:
            raise exceptions.BindError(
                f"Cannot listen on {mapping.listen_spec}: {e}", mapping
            ) from e
        endpoint = ListenEndpoint(sock, mapping)
        self._endpoints[endpoint.fileno] = endpoint
        logger.info(
            "Started ... src=%s, dest=%s@%s",
            mapping.listen_spec,
            mapping.dest_port,
            self.dest_host,
        )
        return endpoint

    def lookup(self, fd: int) -> ListenEndpoint | None:
        return self._endpoints.get(fd)

    def sockets(self) -> list[socket.socket]:
        return [e.socket for e in self._endpoints.values()]

    def endpoints(self) -> list[ListenEndpoint]:
        return list(self._endpoints.values())

    def __len__(self):
        return len(self._endpoints)

    def close(self) -> None:
        """
        Close every listener and remove Unix socket files. Safe to call
        more than once.
        """
        endpoints = list(self._endpoints.values())
        self._endpoints.clear()
        for e in endpoints:
            try:
                e.close()
            except OSError as err:
                logger.warning("Error closing %s: %s", e.mapping.listen_spec, err)
            logger.info(
                "Stopped ... src=%s, dest=%s@%s",
                e.mapping.listen_spec,
                e.mapping.dest_port,
                self.dest_host,
            )

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
