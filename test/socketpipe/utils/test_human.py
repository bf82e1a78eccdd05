import pytest

from socketpipe.utils import human


def test_parse_size():
    assert human.parse_size("0") == 0
    assert human.parse_size("0b") == 0
    assert human.parse_size("1") == 1
    assert human.parse_size("1k") == 1024
    assert human.parse_size("10m") == 10 * 1024**2
    assert human.parse_size("1g") == 1024**3
    with pytest.raises(ValueError):
        human.parse_size("1f")
    with pytest.raises(ValueError):
        human.parse_size("ak")
    assert human.parse_size("5M") == 5 * 1024**2
    assert human.parse_size(" 64k ") == 64 * 1024
    with pytest.raises(ValueError, match="Invalid size specification"):
        human.parse_size("")
    assert human.parse_size(None) is None


def test_pretty_size():
    assert human.pretty_size(0) == "0b"
    assert human.pretty_size(100) == "100b"
    assert human.pretty_size(1024) == "1.0k"
    assert human.pretty_size(1024 + (1024 / 2.0)) == "1.5k"
    assert human.pretty_size(200 * 1024) == "200k"
    assert human.pretty_size(1024 * 1024) == "1.0m"
    assert len(human.pretty_size(1023 * 1024**4)) <= 5


def test_format_address():
    assert human.format_address(("::1", "54010", "0", "0")) == "[::1]:54010"
    assert (
        human.format_address(("::ffff:127.0.0.1", "54010", "0", "0"))
        == "127.0.0.1:54010"
    )
    assert human.format_address(("127.0.0.1", "54010")) == "127.0.0.1:54010"
    assert human.format_address(("example.com", "54010")) == "example.com:54010"
    assert human.format_address(("::", "8080")) == "*:8080"
    assert human.format_address(("0.0.0.0", "8080")) == "*:8080"
    assert human.format_address(None) == "<no address>"


def test_format_unix_address():
    assert human.format_address("/tmp/pipe.sock") == "unix:/tmp/pipe.sock"
    assert human.format_address(b"/tmp/pipe.sock") == "unix:/tmp/pipe.sock"
    assert human.format_address("") == "unix:<unnamed>"
    assert human.format_address(b"") == "unix:<unnamed>"
