"""
Port mappings tie a local listen endpoint to a port on the destination host.

A listen spec that parses as a nonzero integer is a TCP port; anything else
is the path of a Unix domain socket:

    8080:80            TCP port 8080 -> destination port 80
    /tmp/pg.sock:5432  Unix socket /tmp/pg.sock -> destination port 5432
"""

from __future__ import annotations

from collections.abc import Iterable
from collections.abc import Sequence
from dataclasses import dataclass

from socketpipe import exceptions


def _parse_int(s: str) -> int | None:
    # int() would also take " 80 ", "8_080" and non-ASCII digits
    digits = s.removeprefix("-")
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(s)


@dataclass(frozen=True)
class PortMapping:
    listen_spec: str
    dest_port: int

    @property
    def is_tcp(self) -> bool:
        return bool(_parse_int(self.listen_spec))

    @property
    def listen_port(self) -> int:
        if not self.is_tcp:
            raise ValueError(f"{self.listen_spec} is a Unix domain socket path")
        return int(self.listen_spec)

    @property
    def listen_path(self) -> str:
        if self.is_tcp:
            raise ValueError(f"{self.listen_spec} is a TCP port")
        return self.listen_spec

    def __str__(self):
        return f"{self.listen_spec}:{self.dest_port}"


def _dest_port(spec: str) -> int:
    port = _parse_int(spec)
    if port is None or not 0 < port < 65536:
        raise exceptions.OptionsError(f"Invalid destination port: {spec!r}")
    return port


def _listen_spec(spec: str) -> str:
    if not spec:
        raise exceptions.OptionsError("Empty listen port.")
    port = _parse_int(spec)
    if port is not None and not 0 <= port < 65536:
        raise exceptions.OptionsError(f"Invalid listen port: {spec!r}")
    return spec


def parse_spec(spec: str) -> PortMapping:
    """
    Parse a "SRC:DEST" mapping. The split happens on the last colon, so
    Unix socket paths may contain colons themselves.

    Raises:
        OptionsError, if the mapping is malformed.
    """
    src, sep, dest = spec.rpartition(":")
    if not sep:
        raise exceptions.OptionsError(
            f"Invalid port mapping: {spec!r}. Expected SRC:DEST."
        )
    return PortMapping(_listen_spec(src), _dest_port(dest))


def parse_pairs(args: Sequence[str]) -> list[PortMapping]:
    """
    Parse a flat "srcport destport [srcport destport ...]" argument list.

    Raises:
        OptionsError, if a srcport has no matching destport or a port is invalid.
    """
    if len(args) % 2:
        raise exceptions.OptionsError("Port must be given as a pair of src and dest.")
    return [
        PortMapping(_listen_spec(src), _dest_port(dest))
        for src, dest in zip(args[::2], args[1::2])
    ]


def check_unique(mappings: Iterable[PortMapping]) -> list[PortMapping]:
    """
    Raises:
        OptionsError, if two mappings listen on the same endpoint.
    """
    seen: set[str] = set()
    result = []
    for m in mappings:
        if m.listen_spec in seen:
            raise exceptions.OptionsError(f"Duplicate listen port: {m.listen_spec}")
        seen.add(m.listen_spec)
        result.append(m)
    return result
