"""
Typed, observable option sets.

An OptManager holds a fixed set of options declared with add_option(). Values
are type checked on assignment and every change is announced through the
.changed signal with the names of the updated options. If a receiver rejects
a change by raising OptionsError, the previous values are restored, the
receivers are told about the restore, and the error propagates.

Options can be set from keyword arguments (update), from "name=value" strings
(set, used by --set), from YAML config files (load, load_paths) and from
argparse results (see make_parser).
"""
from __future__ import annotations

import contextlib
import copy
import textwrap
from collections.abc import Iterable
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from typing import TextIO

import ruamel.yaml

from socketpipe import exceptions
from socketpipe.utils import signals
from socketpipe.utils import typecheck

_UNSET = object()


class _Option:
    __slots__ = ("name", "typespec", "default", "help", "choices", "value")

    def __init__(
        self,
        name: str,
        typespec: Any,
        default: Any,
        help: str,
        choices: Sequence[str] | None = None,
    ) -> None:
        typecheck.check_option_type(name, default, typespec)
        self.name = name
        self.typespec = typespec
        self.default = default
        self.help = " ".join(textwrap.dedent(help).split())
        self.choices = choices
        self.value = _UNSET

    def current(self) -> Any:
        # hand out copies, mutating a returned list must not change the option
        if self.value is _UNSET:
            return copy.deepcopy(self.default)
        return copy.deepcopy(self.value)

    def set(self, value: Any) -> None:
        typecheck.check_option_type(self.name, value, self.typespec)
        if self.choices is not None and value not in self.choices:
            raise exceptions.OptionsError(
                "%s must be one of %s, not %r."
                % (self.name, ", ".join(self.choices), value)
            )
        self.value = copy.deepcopy(value)

    def reset(self) -> None:
        self.value = _UNSET

    def has_changed(self) -> bool:
        return self.value is not _UNSET and self.value != self.default


class OptManager:
    """
    Base class for option sets. Subclasses declare their options in __init__.

    Reading an attribute returns a copy of the option's current value,
    assigning one is the same as calling update() with it.
    """

    def __init__(self) -> None:
        # bypass __setattr__, which routes everything to update()
        self.__dict__["_options"] = {}
        self.__dict__["changed"] = signals.SyncSignal()

    def add_option(
        self,
        name: str,
        typespec: Any,
        default: Any,
        help: str,
        choices: Sequence[str] | None = None,
    ) -> None:
        if name in self._options:
            raise ValueError(f"Option {name} is declared twice.")
        self._options[name] = _Option(name, typespec, default, help, choices)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._options[name].current()
        except KeyError:
            raise AttributeError(f"No such option: {name}") from None

    def __setattr__(self, name: str, value: Any) -> None:
        self.update(**{name: value})

    def __contains__(self, name: object) -> bool:
        return name in self._options

    def __repr__(self) -> str:
        values = ", ".join(f"{name}={self._options[name].current()!r}" for name in sorted(self._options))
        return f"{type(self).__name__}({values})"

    def keys(self) -> set[str]:
        return set(self._options)

    def default(self, name: str) -> Any:
        return copy.deepcopy(self._options[name].default)

    def has_changed(self, name: str) -> bool:
        """
        True if the option holds a value other than its default.
        """
        return self._options[name].has_changed()

    @contextlib.contextmanager
    def _rollback(self, names: Iterable[str]):
        saved = {name: self._options[name].value for name in names}
        try:
            yield
        except (exceptions.OptionsError, TypeError):
            for name, value in saved.items():
                self._options[name].value = value
            self.changed.send(updated=set(saved))
            raise

    def update(self, **kwargs: Any) -> None:
        """
        Set several options at once. Receivers of .changed see a single
        notification naming all of them.

        Raises OptionsError for unknown options or rejected values and
        TypeError for values of the wrong type. Either way, no option is
        changed.
        """
        unknown = sorted(name for name in kwargs if name not in self._options)
        if unknown:
            raise exceptions.OptionsError("Unknown options: %s" % ", ".join(unknown))
        if not kwargs:
            return
        updated = set(kwargs)
        with self._rollback(updated):
            for name, value in kwargs.items():
                self._options[name].set(value)
            self.changed.send(updated=updated)

    def reset(self) -> None:
        """
        Restore all options to their defaults.
        """
        for o in self._options.values():
            o.reset()
        self.changed.send(updated=self.keys())

    def set(self, *specs: str) -> None:
        """
        Apply "name=value" strings as given to --set. A name without
        a value sets a bool to true, an optional option to None and a
        sequence to the empty list. Sequence options collect all values
        given for them.
        """
        grouped: dict[str, list[str]] = {}
        for spec in specs:
            name, sep, value = spec.partition("=")
            values = grouped.setdefault(name, [])
            if sep:
                values.append(value)

        unknown = [name for name in grouped if name not in self._options]
        if unknown:
            raise exceptions.OptionsError(f"Unknown option(s): {', '.join(unknown)}")

        self.update(
            **{
                name: self._convert(self._options[name], values)
                for name, values in grouped.items()
            }
        )

    def _convert(self, o: _Option, values: list[str]) -> Any:
        if typecheck.is_sequence(o.typespec):
            return values
        if len(values) > 1:
            raise exceptions.OptionsError(f"Received multiple values for {o.name}: {values}")
        value = values[0] if values else None

        if o.typespec is bool:
            if value is None or value == "true":
                return True
            if value == "false":
                return False
            if value == "toggle":
                return not o.current()
            raise exceptions.OptionsError(
                f'{o.name} must be "true", "false" or "toggle", not {value!r}.'
            )

        if not value:
            if typecheck.is_optional(o.typespec):
                return None
            if value is None:
                raise exceptions.OptionsError(f"Option is required: {o.name}")

        base = typecheck.base_type(o.typespec)
        if base is int:
            try:
                return int(value)
            except ValueError:
                raise exceptions.OptionsError(f"Not an integer: {value}") from None
        if base is str:
            return value
        raise NotImplementedError(f"Unsupported option type: {o.typespec}")

    def make_parser(self, parser, name: str, metavar: str | None = None, short: str | None = None) -> None:
        """
        Add a command line flag for an option to an argparse parser or
        argument group. Unknown option names are ignored.

        The parsed value is None if the flag is not given, so that it does
        not override values from config files. Bool options get a --no-
        variant, and their short flag selects the non-default value.
        """
        o = self._options.get(name)
        if o is None:
            return
        flag = "--" + name.replace("_", "-")

        if o.typespec is bool:
            on = [flag]
            off = ["--no-" + name.replace("_", "-")]
            if short:
                (off if o.default else on).append("-" + short)
            group = parser.add_mutually_exclusive_group()
            group.add_argument(*off, action="store_false", dest=name)
            group.add_argument(*on, action="store_true", dest=name, help=o.help)
            parser.set_defaults(**{name: None})
            return

        flags = [flag] + (["-" + short] if short else [])
        if typecheck.is_sequence(o.typespec):
            parser.add_argument(
                *flags,
                action="append",
                dest=name,
                metavar=metavar,
                help=o.help + " May be passed multiple times.",
            )
            return

        base = typecheck.base_type(o.typespec)
        if base not in (int, str):
            raise ValueError(f"Unsupported option type: {o.typespec}")
        parser.add_argument(
            *flags,
            type=base,
            dest=name,
            metavar=metavar,
            choices=o.choices,
            help=o.help,
        )


def dump_defaults(opts: OptManager, out: TextIO) -> None:
    """
    Write a YAML document with the default value of every option, each
    preceded by a comment with its help text and type.
    """
    data = ruamel.yaml.comments.CommentedMap()
    for name in sorted(opts.keys()):
        o = opts._options[name]
        data[name] = o.default
        if o.choices:
            kind = "Valid values are %s." % ", ".join(repr(c) for c in o.choices)
        else:
            kind = "Type %s." % typecheck.typespec_to_str(o.typespec)
        comment = "\n".join(textwrap.wrap(f"{o.help} {kind}"))
        data.yaml_set_comment_before_after_key(name, before="\n" + comment)
    ruamel.yaml.YAML().dump(data, out)


def parse(text: str) -> dict[str, Any]:
    """
    Parse the text of a config file into a dict of option values.
    """
    if not text or not text.strip():
        return {}
    yaml = ruamel.yaml.YAML(typ="safe", pure=True)
    try:
        data = yaml.load(text)
    except ruamel.yaml.error.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is None:
            raise exceptions.OptionsError("Could not parse options.") from e
        raise exceptions.OptionsError(
            "Config error at line %s:\n%s\n%s"
            % (mark.line + 1, mark.get_snippet(), getattr(e, "problem", ""))
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise exceptions.OptionsError("Config error - no keys found.")
    return data


def load(opts: OptManager, text: str) -> None:
    """
    Apply a config file's text on top of the current option values.
    """
    data = parse(text)
    try:
        opts.update(**data)
    except TypeError as e:
        raise exceptions.OptionsError(str(e)) from e


def load_paths(opts: OptManager, *paths: Path | str) -> None:
    """
    Load config files in order, later files win. Missing files are skipped.
    """
    for p in paths:
        path = Path(p).expanduser()
        if not path.is_file():
            continue
        try:
            load(opts, path.read_text(encoding="utf8"))
        except (UnicodeDecodeError, exceptions.OptionsError) as e:
            raise exceptions.OptionsError(f"Error reading {path}: {e}") from e
