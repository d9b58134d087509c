# sqlargs.py
"""
Typed SQL arguments.

An argument spec looks like ``[name=]value[:type]``:

    10              -> positional text '10'
    count=10        -> named text '10'
    10:integer      -> positional integer 10
    count=0x10:integer
    null            -> positional NULL

If the name is empty the argument binds by its ordinal position in the call.
"""
import math
from dataclasses import dataclass
from typing import ClassVar

from sqlerrors import ArgumentValueError, UnknownArgumentType

SUPPORTED_TYPES = ("null", "integer", "real", "text", "blob")

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_INT_PREFIXES = {"0x": 16, "0o": 8, "0b": 2}
_INFINITY_LITERALS = {"inf", "infinity"}


@dataclass(frozen=True)
class TypedValue:
    type_name: ClassVar[str] = ""

    def to_driver(self):
        raise NotImplementedError


@dataclass(frozen=True)
class Null(TypedValue):
    type_name: ClassVar[str] = "null"

    def to_driver(self):
        return None


@dataclass(frozen=True)
class Integer(TypedValue):
    type_name: ClassVar[str] = "integer"
    value: int

    def to_driver(self):
        return self.value


@dataclass(frozen=True)
class Real(TypedValue):
    type_name: ClassVar[str] = "real"
    value: float

    def to_driver(self):
        return self.value


@dataclass(frozen=True)
class Text(TypedValue):
    type_name: ClassVar[str] = "text"
    value: str

    def to_driver(self):
        return self.value


@dataclass(frozen=True)
class Blob(TypedValue):
    type_name: ClassVar[str] = "blob"
    value: bytes

    def to_driver(self):
        return self.value


@dataclass(frozen=True)
class BoundArgument:
    name: str
    value: TypedValue

    @property
    def positional(self):
        return self.name == ""


def _check_literal(text, kind):
    # int()/float() also take whitespace and non-ASCII digits
    if not text or not text.isascii() or any(c.isspace() for c in text):
        raise ValueError(f"invalid {kind} literal {text!r}")


def parse_integer(text):
    """
    Parse a signed 64-bit integer literal with base prefixes:
    decimal, 0x (hex), 0o or a bare leading 0 (octal), 0b (binary).
    Raises ValueError on malformed or out-of-range literals.
    """
    _check_literal(text, "integer")
    sign, digits = 1, text
    if digits[0] in "+-":
        sign = -1 if digits[0] == "-" else 1
        digits = digits[1:]
    if not digits or digits[0] in "+-_":
        raise ValueError(f"invalid integer literal {text!r}")

    base = _INT_PREFIXES.get(digits[:2].lower())
    if base is None:
        base = 8 if len(digits) > 1 and digits[0] == "0" else 10
    number = sign * int(digits, base)

    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"integer literal {text!r} out of 64-bit range")
    return number


def parse_real(text):
    """
    Parse a 64-bit float: decimal/exponent forms, inf/infinity/nan, and hex
    floats with a binary exponent (0x1.8p3). Underscores are only allowed in
    hex floats. Finite literals that overflow are rejected.
    """
    _check_literal(text, "real")
    body = text[1:] if text[0] in "+-" else text
    if body[:2].lower() == "0x":
        if "p" not in body.lower():
            raise ValueError(f"hex real literal {text!r} needs a p exponent")
        try:
            return float.fromhex(text.replace("_", ""))
        except OverflowError as e:
            raise ValueError(f"real literal {text!r} out of range") from e
    if "_" in text:
        raise ValueError(f"invalid real literal {text!r}")

    number = float(text)
    if math.isinf(number) and body.lower() not in _INFINITY_LITERALS:
        raise ValueError(f"real literal {text!r} out of range")
    return number


def parse_value(value, arg_type):
    if arg_type == "null":
        return Null()
    if arg_type == "blob":
        # undecodable command-line bytes arrive as surrogate escapes
        return Blob(value.encode("utf8", "surrogateescape"))
    try:
        if arg_type == "text":
            value.encode("utf8")
            return Text(value)
        if arg_type == "integer":
            return Integer(parse_integer(value))
        if arg_type == "real":
            return Real(parse_real(value))
    except UnicodeEncodeError as e:
        raise ArgumentValueError(f"parsing SQL argument: text is not valid UTF-8 ({e.reason})") from e
    except ValueError as e:
        raise ArgumentValueError(f"parsing SQL argument: {e}") from e
    raise UnknownArgumentType(arg_type)


def parse_argument(raw):
    """Turn one -arg spec into a BoundArgument."""
    name, sep, rest = raw.partition("=")
    if not sep:
        name, rest = "", raw

    value, sep, arg_type = rest.partition(":")
    if not sep:
        arg_type = "null" if value == "null" else "text"

    if arg_type not in SUPPORTED_TYPES:
        raise UnknownArgumentType(arg_type)
    return BoundArgument(name, parse_value(value, arg_type))
