from __future__ import annotations

import itertools
import socket
import time
from collections.abc import Iterator

from socketpipe.net import tcp
from socketpipe.proxy.mapping import PortMapping


class Side:
    """
    One connected socket of a session. Read and write directions are
    tracked separately so that a session can be half-closed.
    """

    def __init__(self, sock: socket.socket, name: str):
        self.socket = sock
        self.name = name
        # Captured once: a closed socket reports fileno() == -1.
        self.fileno = sock.fileno()
        try:
            self.peername = sock.getpeername()
        except OSError:
            self.peername = None
        self.read_open = True
        self.write_open = True
        # data read from the peer that this socket did not accept yet
        self.pending = b""

    @property
    def closed(self) -> bool:
        return not self.read_open and not self.write_open

    def close_read(self) -> None:
        if self.read_open:
            self.read_open = False
            tcp.shutdown(self.socket, socket.SHUT_RD)

    def close_write(self) -> None:
        if self.write_open:
            self.write_open = False
            tcp.shutdown(self.socket, socket.SHUT_WR)

    def close(self) -> None:
        self.read_open = False
        self.write_open = False
        self.pending = b""
        self.socket.close()

    def __repr__(self):
        state = ("r" if self.read_open else "-") + ("w" if self.write_open else "-")
        if self.pending:
            state += f", {len(self.pending)} pending"
        return f"Side({self.name}, fd={self.fileno}, {state})"


class Session:
    """
    A relayed connection: server is the connection accepted from a
    listener, client the connection opened to the destination.
    """

    _counter = itertools.count(1)

    def __init__(
        self,
        server_sock: socket.socket,
        client_sock: socket.socket,
        mapping: PortMapping | None = None,
    ):
        self.id = next(Session._counter)
        self.server = Side(server_sock, "server")
        self.client = Side(client_sock, "client")
        self.mapping = mapping
        self.opened_at = time.monotonic()
        self.half_closed_at: float | None = None
        self.last_activity = self.opened_at
        self.bytes_request = 0
        self.bytes_response = 0

    def sides(self, from_server_side: bool) -> tuple[Side, Side]:
        """
        Returns:
            A (read side, write side) tuple for the given direction.
        """
        if from_server_side:
            return self.server, self.client
        return self.client, self.server

    def peer(self, side: Side) -> Side:
        return self.client if side is self.server else self.server

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    @property
    def closed(self) -> bool:
        return self.server.closed and self.client.closed

    def close(self) -> None:
        self.server.close()
        self.client.close()

    def __repr__(self):
        return f"Session(#{self.id}, {self.server!r}, {self.client!r})"


class SessionPool:
    """
    The live sessions. Sessions are indexed by the file descriptors of
    both their sockets, so that a ready socket maps back to its session
    in constant time.
    """

    def __init__(self):
        self._sessions: dict[int, Session] = {}
        self._by_fd: dict[int, tuple[Session, bool]] = {}

    def add(
        self,
        server_sock: socket.socket,
        client_sock: socket.socket,
        mapping: PortMapping | None = None,
    ) -> Session:
        """
        Wrap a pair of connected sockets into a new session.

        Raises:
            ValueError, if a socket already belongs to a session.
        """
        fds = (server_sock.fileno(), client_sock.fileno())
        if fds[0] == fds[1] or any(fd in self._by_fd for fd in fds):
            raise ValueError(f"Socket already in session pool: {fds}")
        session = Session(server_sock, client_sock, mapping)
        self._sessions[session.id] = session
        self._by_fd[session.server.fileno] = (session, True)
        self._by_fd[session.client.fileno] = (session, False)
        return session

    def remove(self, session: Session) -> None:
        if self._sessions.pop(session.id, None) is None:
            return
        for side in (session.server, session.client):
            owner = self._by_fd.get(side.fileno)
            if owner is not None and owner[0] is session:
                del self._by_fd[side.fileno]

    def find(self, fd: int) -> tuple[Session, bool] | None:
        """
        Returns:
            The session owning fd and True if fd is its server side,
            False if it is its client side. None if no session owns fd.
        """
        return self._by_fd.get(fd)

    def sockets(self) -> set[socket.socket]:
        return {
            side.socket
            for s in self._sessions.values()
            for side in (s.server, s.client)
        }

    def readable(self) -> list[Side]:
        """
        The sides to read from next. A side whose read direction is closed
        reports readiness forever and must not be waited on. A side whose
        peer still holds unsent data is not read either, until the peer
        has caught up.
        """
        return [
            side
            for s in self._sessions.values()
            for side in (s.server, s.client)
            if side.read_open and not s.peer(side).pending
        ]

    def writable(self) -> list[Side]:
        """
        The sides with data waiting for their socket to accept it.
        """
        return [
            side
            for s in self._sessions.values()
            for side in (s.server, s.client)
            if side.pending and side.write_open
        ]

    def expired(self, now: float, timeout: float) -> list[Session]:
        """
        Returns:
            Half-closed sessions that relayed nothing for timeout seconds.
        """
        return [
            s
            for s in self._sessions.values()
            if s.half_closed_at is not None and now - s.last_activity >= timeout
        ]

    def next_deadline(self, timeout: float) -> float | None:
        """
        Returns:
            The monotonic time at which the next half-closed session expires.
        """
        idle_since = [
            s.last_activity for s in self._sessions.values() if s.half_closed_at is not None
        ]
        if not idle_since:
            return None
        return min(idle_since) + timeout

    def __iter__(self) -> Iterator[Session]:
        # iterate over a snapshot: sessions may be removed while iterating.
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session) -> bool:
        return self._sessions.get(getattr(session, "id", None)) is session
