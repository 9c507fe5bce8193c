"""Runtime values of the virtual machine and their JSON mapping."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Union


class VmError(Exception):
    """A fault raised while loading or running a program."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Unit:
    """The unit value; every instance is equal to every other."""

    def __repr__(self) -> str:
        return "Unit()"


UNIT = Unit()


@dataclass(eq=False)
class Adt:
    """A tagged constructor value with positional fields."""

    tag: str
    fields: list = field(default_factory=list)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Adt):
            return NotImplemented
        return values_equal(self, other)

    __hash__ = None  # type: ignore[assignment]


@dataclass(eq=False)
class Closure:
    """A function reference together with its captured values."""

    fn_id: int
    captures: list = field(default_factory=list)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Closure):
            return NotImplemented
        return values_equal(self, other)

    __hash__ = None  # type: ignore[assignment]


Value = Union[int, float, bool, str, list, dict, Adt, Closure, Unit]


def _lists_equal(left: list, right: list) -> bool:
    return len(left) == len(right) and all(
        values_equal(a, b) for a, b in zip(left, right)
    )


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality that never mixes value kinds (1 is not 1.0 or True)."""
    if type(left) is not type(right):
        return False
    if isinstance(left, list):
        return _lists_equal(left, right)
    if isinstance(left, dict):
        return left.keys() == right.keys() and all(
            values_equal(value, right[key]) for key, value in left.items()
        )
    if isinstance(left, Adt):
        return left.tag == right.tag and _lists_equal(left.fields, right.fields)
    if isinstance(left, Closure):
        return left.fn_id == right.fn_id and _lists_equal(left.captures, right.captures)
    return left == right


def with_code(code: str, message: str) -> str:
    """Prefix a message with a stable diagnostic code."""
    return f"{code}: {message}"


def ok_value(value: Any) -> Adt:
    """Wrap a value in the success constructor."""
    return Adt("Ok", [value])


def err_value(message: str) -> Adt:
    """Wrap an error message in the failure constructor."""
    return Adt("Er", [message])


def json_to_value(data: Any) -> Adt:
    """Convert decoded JSON data into the machine's Json constructors."""
    if data is None:
        return Adt("Null", [])
    if isinstance(data, bool):
        return Adt("Bool", [data])
    if isinstance(data, (int, float)):
        try:
            number = float(data)
        except OverflowError:
            number = 0.0
        return Adt("Num", [number])
    if isinstance(data, str):
        return Adt("Str", [data])
    if isinstance(data, list):
        return Adt("Arr", [[json_to_value(item) for item in data]])
    if isinstance(data, dict):
        return Adt(
            "Obj", [{key: json_to_value(data[key]) for key in sorted(data)}]
        )
    raise TypeError(f"not JSON data: {type(data).__name__}")


class _NoJson(ValueError):
    pass


def _parse_number(text: str) -> Union[int, float]:
    def reject(constant: str) -> float:
        raise _NoJson(constant)

    try:
        parsed = json.loads(text, parse_constant=reject)
    except (ValueError, RecursionError) as exc:
        raise _NoJson(text) from exc
    if isinstance(parsed, bool) or not isinstance(parsed, (int, float)):
        raise _NoJson(text)
    if isinstance(parsed, float) and not math.isfinite(parsed):
        raise _NoJson(text)
    return parsed


def _single(value: Adt, tag: str) -> bool:
    return value.tag == tag and len(value.fields) == 1


def _to_json(value: Any) -> Any:
    if type(value) is not Adt:
        raise _NoJson("not a Json constructor")
    if value.tag == "Null" and not value.fields:
        return None
    if not any(_single(value, tag) for tag in ("Bool", "Num", "Str", "Arr", "Obj")):
        raise _NoJson("not a Json constructor")
    payload = value.fields[0]
    kind = type(payload)
    if value.tag == "Bool" and kind is bool:
        return payload
    if value.tag == "Num":
        if kind is float and math.isfinite(payload):
            return payload
        if kind is str:
            return _parse_number(payload)
        if kind is int:
            return payload
    if value.tag == "Str" and kind is str:
        return payload
    if value.tag == "Arr" and kind is list:
        return [_to_json(item) for item in payload]
    if value.tag == "Obj" and kind is dict:
        return {key: _to_json(payload[key]) for key in sorted(payload)}
    raise _NoJson("malformed Json constructor")


def value_to_json(value: Any) -> Any:
    """Convert Json constructors back into plain JSON data.

    Raises ValueError when the value has no JSON form.
    """
    try:
        return _to_json(value)
    except _NoJson as exc:
        raise ValueError(f"value has no JSON form: {exc}") from None