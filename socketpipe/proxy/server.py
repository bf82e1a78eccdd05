"""
The proxy event loop.

A single thread waits for readiness on all listening sockets, on every
session socket that is still open for reading, and on session sockets that
have data pending. A ready listener leads to a new session, a readable
session socket to one transfer, a writable one to a flush. There are no
worker threads, so the listener registry and the session pool need no
locking.

Session sockets are non-blocking, so a peer that stops reading only holds
up its own session. Accepting and connecting to the destination are
synchronous: while the destination is slow to accept, no other connection
is served.
"""

from __future__ import annotations

import logging
import selectors
import socket
import threading
import time

from socketpipe import exceptions
from socketpipe import hooks
from socketpipe import options as socketpipe_options
from socketpipe.net import tcp
from socketpipe.observers import ObserverManager
from socketpipe.proxy import mapping
from socketpipe.proxy.listeners import ListenEndpoint
from socketpipe.proxy.listeners import ListenerRegistry
from socketpipe.proxy.session import Session
from socketpipe.proxy.session import SessionPool
from socketpipe.proxy.transfer import CloseReason
from socketpipe.proxy.transfer import DumpConfig
from socketpipe.proxy.transfer import TransferEngine
from socketpipe.utils import human

logger = logging.getLogger(__name__)


def resolve_mappings(opts: socketpipe_options.Options) -> list[mapping.PortMapping]:
    """
    Raises:
        OptionsError, if there is no destination or no valid mapping.
    """
    if not opts.dest_host:
        raise exceptions.OptionsError("No destination host given.")
    if not opts.mappings:
        raise exceptions.OptionsError("No port mappings given.")
    return mapping.check_unique(mapping.parse_spec(m) for m in opts.mappings)


class ProxyServer:
    """
    Tunnels every configured mapping to the destination host.

    run() blocks until shutdown() is called, from a signal handler or
    another thread. A server instance runs only once.
    """

    def __init__(
        self,
        opts: socketpipe_options.Options,
        observers: ObserverManager | None = None,
    ):
        self.options = opts
        self.mappings = resolve_mappings(opts)
        self.observers = observers or ObserverManager()
        self.pool = SessionPool()
        self.engine = TransferEngine(
            self.pool,
            DumpConfig(opts.dump_request, opts.dump_response),
            self.observers,
        )
        self.listeners: ListenerRegistry | None = None
        self.selector: selectors.BaseSelector | None = None
        # fd -> (socket, events) currently registered with the selector
        self._watched: dict[int, tuple[socket.socket, int]] = {}
        self._should_exit = threading.Event()
        self.running = threading.Event()
        self._wakeup_r, self._wakeup_w = socket.socketpair()
        self._wakeup_r.setblocking(False)
        self._wakeup_w.setblocking(False)
        opts.changed.connect(self._configure)

    def _configure(self, updated):
        if "dump_request" in updated:
            self.engine.dump.dump_request = self.options.dump_request
        if "dump_response" in updated:
            self.engine.dump.dump_response = self.options.dump_response

    def bind(self) -> ListenerRegistry:
        """
        Bind all listeners. Called by run() if it has not been called before.

        Raises:
            BindError, if any listener cannot be bound.
        """
        if self.listeners is None:
            self.listeners = ListenerRegistry.bind(
                self.mappings,
                self.options.dest_host,
                self.options.listen_host,
            )
        return self.listeners

    def run(self) -> None:
        try:
            self.bind()
            self.selector = selectors.DefaultSelector()
            self.selector.register(self._wakeup_r, selectors.EVENT_READ, None)
            self.running.set()
            self.observers.trigger(hooks.RunningHook())
            while not self._should_exit.is_set():
                self.tick()
        finally:
            self._teardown()

    def shutdown(self) -> None:
        """
        Ask the event loop to stop. Safe to call from signal handlers and
        other threads.
        """
        self._should_exit.set()
        try:
            self._wakeup_w.send(b"\x00")
        except OSError:
            # The loop is gone already, or a wakeup byte is still pending.
            pass

    def tick(self) -> None:
        """
        Wait for readiness once and handle everything that became ready.
        """
        assert self.selector and self.listeners
        self._sync_selector()
        events = self.selector.select(self._wait_timeout())
        for key, mask in events:
            if key.data is None:
                self._drain_wakeup()
                continue
            fd = key.data
            endpoint = self.listeners.lookup(fd)
            if endpoint is not None and endpoint.socket is key.fileobj:
                self.accept(endpoint)
                continue
            found = self._owner(fd, key.fileobj)
            if found is None:
                continue
            session, is_server = found
            if mask & selectors.EVENT_WRITE:
                self.engine.flush(session, is_server)
            if mask & selectors.EVENT_READ and session in self.pool:
                self.engine.transfer(session, is_server)
        self._expire_half_closed()

    def _owner(self, fd: int, sock) -> tuple[Session, bool] | None:
        found = self.pool.find(fd)
        if found is None:
            # closed earlier in this iteration
            return None
        session, is_server = found
        side, _ = session.sides(is_server)
        if side.socket is not sock:
            # fd was reused by a session opened in this iteration
            return None
        return found

    def accept(self, endpoint: ListenEndpoint) -> Session | None:
        """
        Accept one connection and pair it with a new connection to the
        destination. If the destination cannot be reached, the accepted
        connection is closed and no session is created.
        """
        try:
            sock, address = endpoint.socket.accept()
        except BlockingIOError:
            return None
        except OSError as e:
            logger.warning("Accept failed on %s: %s", endpoint.mapping.listen_spec, e)
            return None
        logger.info(
            "Accepted ... src=%s from %s",
            endpoint.mapping.listen_spec,
            human.format_address(address),
        )

        dest = (self.options.dest_host, endpoint.mapping.dest_port)
        try:
            client = tcp.create_connection(dest, timeout=self.options.connect_timeout)
        except OSError as e:
            logger.error(
                "Create client socket failed ... dest=%s@%s: %s",
                dest[1],
                dest[0],
                e,
            )
            logger.warning("Closing server socket...")
            tcp.close_socket(sock)
            return None

        # the loop must never wait on a peer that does not read
        sock.setblocking(False)
        client.setblocking(False)
        session = self.pool.add(sock, client, endpoint.mapping)
        logger.info(
            "Connection established ... src=%s dest=%s@%s",
            endpoint.mapping.listen_spec,
            dest[1],
            dest[0],
            extra={"client": session.server.peername},
        )
        self.observers.trigger(hooks.SessionOpenedHook(session))
        return session

    def _sync_selector(self) -> None:
        assert self.selector and self.listeners
        wanted: dict[int, tuple[socket.socket, int]] = {
            e.fileno: (e.socket, selectors.EVENT_READ) for e in self.listeners.endpoints()
        }
        for side in self.pool.readable():
            wanted[side.fileno] = (side.socket, selectors.EVENT_READ)
        for side in self.pool.writable():
            sock, events = wanted.get(side.fileno, (side.socket, 0))
            wanted[side.fileno] = (sock, events | selectors.EVENT_WRITE)

        for fd, (sock, events) in list(self._watched.items()):
            want = wanted.get(fd)
            if want is None or want[0] is not sock:
                self.selector.unregister(sock)
                del self._watched[fd]
            elif want[1] != events:
                self.selector.modify(sock, want[1], fd)
                self._watched[fd] = want
        for fd, want in wanted.items():
            if fd not in self._watched:
                self.selector.register(want[0], want[1], fd)
                self._watched[fd] = want

    def _wait_timeout(self) -> float:
        timeout: float = self.options.select_timeout
        if self.options.half_close_timeout > 0:
            deadline = self.pool.next_deadline(self.options.half_close_timeout)
            if deadline is not None:
                timeout = max(0.0, min(timeout, deadline - time.monotonic()))
        return timeout

    def _expire_half_closed(self) -> None:
        if self.options.half_close_timeout <= 0:
            return
        for session in self.pool.expired(
            time.monotonic(), self.options.half_close_timeout
        ):
            self.engine.force_close(session, CloseReason.TIMEOUT)

    def _drain_wakeup(self) -> None:
        try:
            while self._wakeup_r.recv(4096):
                pass
        except BlockingIOError:
            pass

    def _teardown(self) -> None:
        try:
            for session in self.pool:
                self.engine.force_close(session, CloseReason.SHUTDOWN)
        finally:
            if self.listeners is not None:
                self.listeners.close()
            if self.selector is not None:
                self.selector.close()
            self._watched.clear()
            self._wakeup_r.close()
            self._wakeup_w.close()
            self.options.changed.disconnect(self._configure)
            self.running.clear()
            self.observers.trigger(hooks.DoneHook())
