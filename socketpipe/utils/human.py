import functools
import ipaddress

from socketpipe.utils import strutils

_MULTIPLIERS = {
    "b": 1,
    "k": 1024,
    "m": 1024**2,
    "g": 1024**3,
    "t": 1024**4,
}


def pretty_size(size: int) -> str:
    """
    Byte count for log lines: "512b", "1.5k", "200m". Never longer than five
    characters.
    """
    if size < 1024:
        return f"{size}b"
    value = float(size)
    for unit in "kmgt":
        value /= 1024
        if value < 1024:
            break
    if value < 99.95:
        return f"{value:.1f}{unit}"
    return f"{value:.0f}{unit}"


@functools.lru_cache
def parse_size(s: str | None) -> int | None:
    """
    Parse a size such as "4096", "10k" or "5M" into bytes. None is passed
    through, anything unparseable raises ValueError.
    """
    if s is None:
        return None
    spec = s.strip().lower()
    number, unit = spec, "b"
    if spec[-1:] in _MULTIPLIERS:
        number, unit = spec[:-1], spec[-1]
    try:
        return int(number) * _MULTIPLIERS[unit]
    except ValueError:
        raise ValueError(f"Invalid size specification: {s!r}") from None


def format_address(address: tuple | str | bytes | None) -> str:
    """
    Format a socket address for the log: "127.0.0.1:80", "[::1]:80", "*:80"
    for wildcard binds and "unix:/path" for Unix domain sockets. IPv4-mapped
    IPv6 addresses are shown as plain IPv4.
    """
    if address is None:
        return "<no address>"
    if isinstance(address, (str, bytes)):
        # peers connecting to a Unix socket are usually unnamed
        path = strutils.always_str(address, "utf8", "replace")
        return f"unix:{path or '<unnamed>'}"
    host, port = address[0], address[1]
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return f"{host}:{port}"
    if ip.is_unspecified:
        return f"*:{port}"
    if ip.version == 6 and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    if ip.version == 6:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"
