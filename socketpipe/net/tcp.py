import os
import socket
import stat

# workaround for https://bugs.python.org/issue29515
# Python 3.6 for Windows is missing a constant
IPPROTO_IPV6 = getattr(socket, "IPPROTO_IPV6", 41)

LISTEN_BACKLOG = 128


def shutdown(sock: socket.socket, how: int) -> None:
    """
    Shut down one or both directions of a socket.

    A peer that already went away makes shutdown() fail with ENOTCONN;
    the direction is gone either way, so that is not an error here.
    """
    try:
        sock.shutdown(how)
    except OSError:
        pass


def close_socket(sock: socket.socket) -> None:
    """
    Does a hard close of a socket, without emitting a RST.
    """
    # We already indicate that we close our end.
    # may raise "Transport endpoint is not connected" on Linux
    shutdown(sock, socket.SHUT_WR)
    shutdown(sock, socket.SHUT_RD)
    sock.close()


def create_connection(address, timeout=None, source_address=None) -> socket.socket:
    """
    Connect to a (host, port) address, trying every address getaddrinfo
    returns in order. The returned socket is in blocking mode, regardless
    of the connect timeout.

    Raises:
        OSError, if no address could be connected to.
    """
    # Based on the official socket.create_connection implementation of Python 3.6.
    # https://github.com/python/cpython/blob/3cc5817cfaf5663645f4ee447eaed603d2ad290a/Lib/socket.py

    err = None
    for res in socket.getaddrinfo(address[0], address[1], 0, socket.SOCK_STREAM):
        af, socktype, proto, canonname, sa = res
        sock = None
        try:
            sock = socket.socket(af, socktype, proto)
            if timeout:
                sock.settimeout(timeout)
            if source_address:
                sock.bind(source_address)
            sock.connect(sa)
            sock.settimeout(None)
            return sock

        except OSError as _:
            err = _
            if sock is not None:
                sock.close()

    if err is not None:
        raise err
    else:
        raise OSError("getaddrinfo returns an empty list")  # pragma: no cover


def bind_tcp(host: str, port: int, backlog: int = LISTEN_BACKLOG) -> socket.socket:
    """
    Create a listening TCP socket.

    Raises:
        OSError, if the address cannot be bound.
    """
    if host == "localhost":
        raise OSError("Binding to 'localhost' is prohibited. Please use '::1' or '127.0.0.1' directly.")

    address = (host, port)
    sock = None

    try:
        # First try to bind an IPv6 socket, attempting to enable IPv4 support if the OS supports it.
        # This allows us to accept connections for ::1 and 127.0.0.1 on the same socket.
        # Only works if host == ""
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        sock.bind(address)
    except OSError:
        if sock:
            sock.close()
        sock = None

    if not sock:
        try:
            # Binding to an IPv6 + IPv4 socket failed, lets fall back to IPv4 only.
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(address)
        except OSError:
            if sock:
                sock.close()
            sock = None

    if not sock:
        # Binding to an IPv4 only socket failed, lets fall back to IPv6 only.
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(address)
        except OSError:
            sock.close()
            raise

    try:
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


def bind_unix(path: str, backlog: int = LISTEN_BACKLOG) -> socket.socket:
    """
    Create a listening Unix domain socket at path. An existing file at
    path is never replaced.

    Raises:
        OSError, if the path cannot be bound.
    """
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(path)
    except OSError:
        sock.close()
        raise
    try:
        sock.listen(backlog)
    except OSError:
        sock.close()
        unlink_socket(path)
        raise
    return sock


def unlink_socket(path: str) -> bool:
    """
    Remove the Unix domain socket file at path. Anything that is not a
    socket is left alone.

    Returns:
        True, if a socket file was removed.
    """
    try:
        if not stat.S_ISSOCK(os.lstat(path).st_mode):
            return False
        os.unlink(path)
    except FileNotFoundError:
        return False
    return True
