from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass

from socketpipe import hooks
from socketpipe.observers import ObserverManager
from socketpipe.proxy.session import Session
from socketpipe.proxy.session import SessionPool
from socketpipe.proxy.session import Side
from socketpipe.utils import human
from socketpipe.utils import strutils

logger = logging.getLogger(__name__)

READ_BLOCK_SIZE = 10 * 1024


class Outcome(enum.Enum):
    CONTINUE = "continue"
    SESSION_CLOSING = "session_closing"


class CloseReason(enum.Enum):
    EOF = "eof"
    RESET = "reset"
    ERROR = "error"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


class Direction(enum.Enum):
    REQUEST = "request"
    """From the server side (the accepted connection) to the destination."""
    RESPONSE = "response"
    """From the destination back to the server side."""

    @property
    def arrow(self) -> str:
        if self is Direction.REQUEST:
            return "[src] -> [dest]"
        return "[src] <- [dest]"


@dataclass
class DumpConfig:
    dump_request: bool = True
    dump_response: bool = False

    def enabled(self, direction: Direction) -> bool:
        if direction is Direction.REQUEST:
            return self.dump_request
        return self.dump_response


class TransferEngine:
    """
    Relays one block of data per call and drives the half-close of a
    session once a side has nothing more to say.

    Read and write failures never raise: they are logged and turned into
    a CloseReason, which only affects the session at hand. Writes never
    block: what a socket does not take right away stays on its side until
    flush() is called for it.
    """

    def __init__(
        self,
        pool: SessionPool,
        dump: DumpConfig | None = None,
        observers: ObserverManager | None = None,
        block_size: int = READ_BLOCK_SIZE,
    ):
        self.pool = pool
        self.dump = dump or DumpConfig()
        self.observers = observers or ObserverManager()
        self.block_size = block_size

    def transfer(self, session: Session, from_server_side: bool) -> Outcome:
        """
        Read once from the ready side and write what was read to the other
        side. Whatever the other side does not take right away is kept as
        pending, and this side is not read again before it is flushed.
        """
        src, dst = session.sides(from_server_side)
        direction = Direction.REQUEST if from_server_side else Direction.RESPONSE
        if dst.pending and src.read_open:
            return Outcome.CONTINUE

        data = self._read(src)
        if data is None:
            return Outcome.CONTINUE
        if isinstance(data, CloseReason):
            return self.close_session(session, src, dst, data)
        session.touch()

        if direction is Direction.REQUEST:
            session.bytes_request += len(data)
        else:
            session.bytes_response += len(data)
        self.observers.trigger(hooks.TransferHook(session, direction, data))
        if self.dump.enabled(direction):
            self.dump_data(direction, data)

        reason = self._write(dst, data)
        if reason is not None:
            return self.close_session(session, src, dst, reason)
        return Outcome.CONTINUE

    def flush(self, session: Session, to_server_side: bool) -> Outcome:
        """
        Write the data still pending for one side of a session, once its
        socket is writable again.
        """
        dst, src = session.sides(to_server_side)
        if not dst.pending:
            return Outcome.CONTINUE
        data, dst.pending = dst.pending, b""
        reason = self._write(dst, data)
        if reason is not None:
            return self.close_session(session, src, dst, reason)
        if len(dst.pending) < len(data):
            session.touch()
        return Outcome.CONTINUE

    def _read(self, src: Side) -> bytes | CloseReason | None:
        if not src.read_open:
            return CloseReason.EOF
        try:
            data = src.socket.recv(self.block_size)
        except BlockingIOError:
            # spurious readiness
            return None
        except ConnectionResetError as e:
            logger.info("%s while reading.", e)
            return CloseReason.RESET
        except OSError as e:
            logger.warning(
                "Detected an exception while reading from %s. Stopping ... %s",
                src.name,
                e,
                exc_info=True,
            )
            return CloseReason.ERROR
        if not data:
            return CloseReason.EOF
        return data

    def _write(self, dst: Side, data: bytes) -> CloseReason | None:
        view = memoryview(data)
        written = 0
        while written < len(view):
            try:
                # send() may take only part of the buffer.
                written += dst.socket.send(view[written:])
            except BlockingIOError:
                dst.pending = bytes(view[written:])
                return None
            except (ConnectionResetError, BrokenPipeError) as e:
                logger.info("%s while writing.", e)
                return CloseReason.RESET
            except OSError as e:
                logger.warning(
                    "Detected an exception while writing to %s. Stopping ... %s",
                    dst.name,
                    e,
                    exc_info=True,
                )
                return CloseReason.ERROR
        return None

    def dump_data(self, direction: Direction, data: bytes) -> None:
        if not logger.isEnabledFor(logging.INFO):
            return
        logger.info("Transfer data ... %s", direction.arrow)
        logger.info("Transferred data;\n%s", "\n".join(strutils.hexdump(data)))

    def close_session(
        self, session: Session, src: Side, dst: Side, reason: CloseReason
    ) -> Outcome:
        """
        Half-close: src will not be read from anymore, and dst learns that
        no more data is coming. Once both directions are finished the
        session leaves the pool and its sockets are closed.
        """
        src.close_read()
        dst.close_write()
        dst.pending = b""
        if session.half_closed_at is None:
            session.half_closed_at = time.monotonic()
        session.touch()
        if session.closed:
            self._finish(session, reason)
        return Outcome.SESSION_CLOSING

    def force_close(self, session: Session, reason: CloseReason) -> None:
        """
        Close both directions of both sides at once.
        """
        if reason is CloseReason.TIMEOUT:
            logger.info(
                "Session #%d half-closed for too long, closing.",
                session.id,
                extra={"client": session.server.peername},
            )
        for side in (session.server, session.client):
            side.close_read()
            side.close_write()
        self._finish(session, reason)

    def _finish(self, session: Session, reason: CloseReason) -> None:
        if session not in self.pool:
            return
        self.pool.remove(session)
        session.close()
        logger.info(
            "Connection closed ... src=%s (%s sent, %s received, %s)",
            session.mapping.listen_spec if session.mapping else "?",
            human.pretty_size(session.bytes_request),
            human.pretty_size(session.bytes_response),
            reason.value,
            extra={"client": session.server.peername},
        )
        self.observers.trigger(hooks.SessionClosedHook(session, reason))
