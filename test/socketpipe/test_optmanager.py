import argparse
import io
import typing

import pytest

from socketpipe import exceptions
from socketpipe import options
from socketpipe import optmanager


class TO(optmanager.OptManager):
    def __init__(self):
        super().__init__()
        self.add_option("one", typing.Optional[int], None, "help")
        self.add_option("two", typing.Optional[int], 2, "help")
        self.add_option("bool", bool, False, "help")
        self.add_option("required_int", int, 2, "help")


class TD(optmanager.OptManager):
    def __init__(self):
        super().__init__()
        self.add_option("one", str, "done", "help")
        self.add_option("two", str, "dtwo", "help")


class TTypes(optmanager.OptManager):
    def __init__(self):
        super().__init__()
        self.add_option("str", str, "str", "help")
        self.add_option("choices", str, "foo", "help", ["foo", "bar", "baz"])
        self.add_option("optstr", typing.Optional[str], "optstr", "help")
        self.add_option("bool", bool, False, "help")
        self.add_option("bool_on", bool, True, "help")
        self.add_option("int", int, 0, "help")
        self.add_option("optint", typing.Optional[int], 0, "help")
        self.add_option("seqstr", typing.Sequence[str], [], "help")
        self.add_option("unknown", float, 0.0, "help")


def test_defaults():
    o = TD()
    assert o.default("one") == "done"
    assert not o.has_changed("one")
    o.update(one="xone", two="xtwo")
    assert o.has_changed("one")
    assert o.one == "xone"
    o.reset()
    for k in o.keys():
        assert not o.has_changed(k)


def test_options():
    o = TO()
    assert o.keys() == {"bool", "one", "two", "required_int"}

    assert o.one is None
    assert o.two == 2
    o.one = 1
    assert o.one == 1

    with pytest.raises(AttributeError, match="No such option"):
        _ = o.nonexistent
    with pytest.raises(exceptions.OptionsError, match="Unknown options"):
        o.nonexistent = "value"
    with pytest.raises(exceptions.OptionsError, match="Unknown options"):
        o.update(nonexistent="value")

    rec = []

    def sub(updated):
        rec.append(updated)

    o.changed.connect(sub)

    o.one = 90
    assert rec == [{"one"}]
    o.update(one=3, two=4)
    assert rec[-1] == {"one", "two"}


def test_rollback():
    o = TO()

    rec = []

    def sub(updated):
        rec.append((set(updated), o.one))

    def err(updated):
        if o.one == 10:
            raise exceptions.OptionsError("ten is not allowed")

    o.changed.connect(sub)
    o.changed.connect(err)

    with pytest.raises(exceptions.OptionsError):
        o.one = 10
    assert o.one is None
    assert rec == [({"one"}, 10), ({"one"}, None)]

    with pytest.raises(TypeError):
        o.one = "foo"
    assert o.one is None


def test_simple():
    assert repr(TO()) == "TO(bool=False, one=None, required_int=2, two=2)"
    assert "one" in TO()
    assert "one" not in TD()
    assert not TO() == 42


def test_option():
    o = optmanager._Option("test", int, 1, "help", None)
    assert o.current() == 1
    with pytest.raises(TypeError):
        o.set("foo")
    with pytest.raises(TypeError):
        optmanager._Option("test", str, 1, "help", None)

    o.set(5)
    assert o.has_changed()
    o.set(1)
    assert not o.has_changed()
    o.reset()
    assert o.current() == 1


def test_option_help_is_one_line():
    o = optmanager._Option("test", str, "", """
        Spread over
        two lines.
        """)
    assert o.help == "Spread over two lines."


def test_option_values_are_copies():
    o = TTypes()
    o.seqstr = ["a"]
    o.seqstr.append("b")
    assert o.seqstr == ["a"]


def test_choices():
    o = TTypes()
    o.choices = "bar"
    with pytest.raises(exceptions.OptionsError, match="must be one of foo, bar, baz"):
        o.choices = "qux"
    assert o.choices == "bar"


def test_declared_twice():
    o = TD()
    with pytest.raises(ValueError, match="declared twice"):
        o.add_option("one", str, "", "help")


def test_set():
    opts = TTypes()

    opts.set("str=foo")
    assert opts.str == "foo"
    with pytest.raises(exceptions.OptionsError):
        opts.set("str")

    opts.set("optstr=foo")
    assert opts.optstr == "foo"
    opts.set("optstr")
    assert opts.optstr is None

    opts.set("bool=false")
    assert opts.bool is False
    opts.set("bool")
    assert opts.bool is True
    with pytest.raises(exceptions.OptionsError):
        opts.set("bool=wobble")
    opts.set("bool=toggle")
    assert opts.bool is False

    opts.set("int=1")
    assert opts.int == 1
    with pytest.raises(exceptions.OptionsError):
        opts.set("int=wobble")
    with pytest.raises(exceptions.OptionsError):
        opts.set("int")
    opts.set("optint")
    assert opts.optint is None

    opts.set("seqstr=foo", "seqstr=bar")
    assert opts.seqstr == ["foo", "bar"]
    opts.set("seqstr")
    assert opts.seqstr == []

    with pytest.raises(exceptions.OptionsError, match="multiple values"):
        opts.set("str=a", "str=b")
    with pytest.raises(exceptions.OptionsError, match="Unknown option"):
        opts.set("nonexistent=wobble")


def test_make_parser():
    parser = argparse.ArgumentParser()
    opts = TTypes()
    opts.make_parser(parser, "str", short="a")
    opts.make_parser(parser, "bool", short="b")
    opts.make_parser(parser, "int", short="c")
    opts.make_parser(parser, "seqstr", short="d")
    opts.make_parser(parser, "bool_on", short="e")
    opts.make_parser(parser, "choices")

    with pytest.raises(ValueError):
        opts.make_parser(parser, "unknown")

    # Nonexistent options ignore
    opts.make_parser(parser, "nonexistentxxx")

    args = parser.parse_args(["-a", "x", "-b", "-c", "3", "-d", "p", "-d", "q", "-e"])
    assert args.str == "x"
    assert args.bool is True
    assert args.int == 3
    assert args.seqstr == ["p", "q"]
    assert args.bool_on is False
    assert args.choices is None

    args = parser.parse_args([])
    assert args.bool is None


class TDump(optmanager.OptManager):
    def __init__(self):
        super().__init__()
        self.add_option("str", str, "str", "help")
        self.add_option("choices", str, "foo", "help", ["foo", "bar", "baz"])
        self.add_option("seqstr", typing.Sequence[str], [], "help")


def test_dump_defaults():
    o = TDump()
    o.str = "changed"
    buf = io.StringIO()
    optmanager.dump_defaults(o, buf)
    out = buf.getvalue()
    assert "str: str" in out
    assert "Valid values are 'foo', 'bar', 'baz'." in out
    assert "Type sequence of str." in out


def test_dump_defaults_options():
    buf = io.StringIO()
    optmanager.dump_defaults(options.Options(), buf)
    assert "half_close_timeout: 300" in buf.getvalue()


def test_load():
    o = TD()
    optmanager.load(o, "one: xone")
    assert o.one == "xone"
    optmanager.load(o, "")
    optmanager.load(o, "# a comment")
    assert o.one == "xone"

    with pytest.raises(exceptions.OptionsError, match="Config error"):
        optmanager.load(o, "invalid: foo\ninvalid")
    with pytest.raises(exceptions.OptionsError, match="Config error"):
        optmanager.load(o, "invalid")
    with pytest.raises(exceptions.OptionsError, match="Unknown options"):
        optmanager.load(o, "nonexistent: foo")
    with pytest.raises(exceptions.OptionsError):
        optmanager.load(o, "one: 42")


def test_load_paths(tmp_path):
    o = TD()
    first = tmp_path / "first.yaml"
    second = tmp_path / "second.yaml"
    first.write_text("one: first\ntwo: first\n")
    second.write_text("two: second\n")

    optmanager.load_paths(o, first, second, tmp_path / "missing.yaml")
    assert o.one == "first"
    assert o.two == "second"

    second.write_text("'''")
    with pytest.raises(exceptions.OptionsError, match="Error reading"):
        optmanager.load_paths(o, second)

    second.write_bytes(b"\xff\xff\xff")
    with pytest.raises(exceptions.OptionsError, match="Error reading"):
        optmanager.load_paths(o, second)
