"""
Runtime checks for option types.

Options are str, int or bool, Optional variants of these, or Sequence[str].
Both typing.Optional[int] and int | None spellings are accepted.
"""
import typing
from collections import abc
from types import UnionType


def _union_args(typespec: typing.Any) -> tuple | None:
    origin = typing.get_origin(typespec)
    if origin is typing.Union or origin is UnionType:
        return typing.get_args(typespec)
    return None


def is_optional(typespec: typing.Any) -> bool:
    args = _union_args(typespec)
    return args is not None and type(None) in args


def is_sequence(typespec: typing.Any) -> bool:
    # typing.Sequence[str] and collections.abc.Sequence[str] do not compare equal
    return typing.get_origin(typespec) is abc.Sequence


def base_type(typespec: typing.Any) -> typing.Any:
    """
    Strip Optional: base_type(Optional[int]) is int. Anything else is
    returned unchanged.
    """
    args = _union_args(typespec)
    if args is None:
        return typespec
    rest = [t for t in args if t is not type(None)]
    return rest[0] if len(rest) == 1 else typespec


def check_option_type(name: str, value: typing.Any, typespec: typing.Any) -> None:
    """
    Raise TypeError if value does not match typespec.
    """
    args = _union_args(typespec)
    if args is not None:
        for t in args:
            try:
                check_option_type(name, value, t)
            except TypeError:
                continue
            return
    elif is_sequence(typespec):
        if isinstance(value, (list, tuple)):
            (item,) = typing.get_args(typespec)
            for v in value:
                check_option_type(name, v, item)
            return
    elif typespec is typing.Any:
        return
    # bool is an int subclass, but "select_timeout: true" is a config mistake.
    elif isinstance(value, typespec) and not (typespec is int and isinstance(value, bool)):
        return
    raise TypeError(f"Expected {typespec} for {name}, but got {type(value)}.")


def typespec_to_str(typespec: typing.Any) -> str:
    if is_sequence(typespec):
        return "sequence of " + typespec_to_str(typing.get_args(typespec)[0])
    base = base_type(typespec)
    if base not in (str, int, bool):
        raise NotImplementedError(f"Unsupported option type: {typespec}")
    if is_optional(typespec):
        return "optional " + base.__name__
    return base.__name__
