"""Built-in operations that compiled programs invoke by numeric id."""

from __future__ import annotations

import json
import math
from decimal import Decimal
from enum import IntEnum
from typing import Any, Callable, Sequence

from muvm.host import HostError, VmHost
from muvm.values import (
    UNIT,
    Adt,
    Closure,
    Unit,
    VmError,
    err_value,
    json_to_value,
    ok_value,
    value_to_json,
    values_equal,
    with_code,
)

I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1


class Builtin(IntEnum):
    """Numeric ids of the built-in operations."""

    PRINT = 1
    PRINTLN = 2
    READLN = 3
    READ = 4
    WRITE = 5
    PARSE = 6
    STRINGIFY = 7
    RUN = 8
    GET = 9
    ADD = 20
    SUB = 21
    MUL = 22
    DIV = 23
    REM = 24
    EQ = 25
    NE = 26
    LT = 27
    LE = 28
    GT = 29
    GE = 30
    AND = 31
    OR = 32
    NOT = 33
    NEG = 34
    STR_CAT = 35
    LEN = 36


def _is_int(value: Any) -> bool:
    return type(value) is int


def _is_bool(value: Any) -> bool:
    return type(value) is bool


def _is_str(value: Any) -> bool:
    return type(value) is str


def _arithmetic_error(message: str) -> VmError:
    return VmError(with_code("E4003", message))


def _checked(result: int) -> int:
    if result < I64_MIN or result > I64_MAX:
        raise _arithmetic_error("integer overflow")
    return result


def _expect_count(args: Sequence[Any], count: int, name: str) -> None:
    if len(args) != count:
        words = {0: "zero arguments", 1: "one argument", 2: "two arguments"}
        raise VmError(f"{name} expects {words[count]}")


def _int2(args: Sequence[Any], op: str) -> tuple[int, int]:
    if len(args) != 2:
        raise VmError(f"{op} expects two arguments")
    a, b = args
    if not (_is_int(a) and _is_int(b)):
        raise VmError(f"{op} expects integer arguments")
    return a, b


def _bool2(args: Sequence[Any], op: str) -> tuple[bool, bool]:
    if len(args) != 2:
        raise VmError(f"{op} expects two arguments")
    a, b = args
    if not (_is_bool(a) and _is_bool(b)):
        raise VmError(f"{op} expects bool arguments")
    return a, b


def _single_string(args: Sequence[Any], name: str, what: str) -> str:
    _expect_count(args, 1, name)
    if not _is_str(args[0]):
        raise VmError(f"{name} expects {what}")
    return args[0]


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def _nonzero_divisor(b: int) -> None:
    if b == 0:
        raise VmError(with_code("E4003", "division by zero"))


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value == 0.0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    return text


def _fallback_string(value: Any) -> str:
    if _is_str(value):
        return value
    if isinstance(value, Adt):
        return f"{value.tag}({len(value.fields)})"
    if isinstance(value, Closure):
        return "<closure>"
    if _is_bool(value):
        return "true" if value else "false"
    if _is_int(value):
        return str(value)
    if type(value) is float:
        return _format_float(value)
    if isinstance(value, list):
        return f"<array:{len(value)}>"
    if isinstance(value, dict):
        return f"<map:{len(value)}>"
    if isinstance(value, Unit):
        return "()"
    raise VmError(f"stringify cannot render {type(value).__name__}")


def _print(host: VmHost, args: Sequence[Any]) -> Any:
    host.io_print(_single_string(args, "print", "a string"))
    return UNIT


def _println(host: VmHost, args: Sequence[Any]) -> Any:
    host.io_println(_single_string(args, "println", "a string"))
    return UNIT


def _readln(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 0, "readln")
    return host.io_readln()


def _read(host: VmHost, args: Sequence[Any]) -> Any:
    path = _single_string(args, "read", "a string path")
    try:
        return ok_value(host.fs_read_to_string(path))
    except HostError as exc:
        return err_value(str(exc))


def _write(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 2, "write")
    path, data = args
    if not _is_str(path):
        raise VmError("write expects a string path")
    if not _is_str(data):
        raise VmError("write expects a string payload")
    try:
        host.fs_write_string(path, data)
    except HostError as exc:
        return err_value(str(exc))
    return ok_value(UNIT)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid number {name}")


def _parse(host: VmHost, args: Sequence[Any]) -> Any:
    text = _single_string(args, "parse", "a string")
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        return err_value(f"json parse failed: {exc}")
    return ok_value(json_to_value(data))


def _stringify(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 1, "stringify")
    value = args[0]
    try:
        data = value_to_json(value)
    except (ValueError, RecursionError):
        return _fallback_string(value)
    try:
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    except (ValueError, TypeError) as exc:
        raise VmError(f"json stringify failed: {exc}") from exc


def _run(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 2, "run")
    cmd, arg_values = args
    if not _is_str(cmd):
        raise VmError("run expects a string command")
    if not isinstance(arg_values, list) or not all(_is_str(a) for a in arg_values):
        raise VmError("run expects second argument as string array")
    try:
        return ok_value(int(host.proc_run(cmd, list(arg_values))))
    except HostError as exc:
        return err_value(str(exc))


def _get(host: VmHost, args: Sequence[Any]) -> Any:
    url = _single_string(args, "get", "a string url")
    try:
        return ok_value(host.http_get(url))
    except HostError as exc:
        return err_value(str(exc))


def _add(host: VmHost, args: Sequence[Any]) -> Any:
    a, b = _int2(args, "+")
    return _checked(a + b)


def _sub(host: VmHost, args: Sequence[Any]) -> Any:
    a, b = _int2(args, "-")
    return _checked(a - b)


def _mul(host: VmHost, args: Sequence[Any]) -> Any:
    a, b = _int2(args, "*")
    return _checked(a * b)


def _div(host: VmHost, args: Sequence[Any]) -> Any:
    a, b = _int2(args, "/")
    _nonzero_divisor(b)
    return _checked(_trunc_div(a, b))


def _rem(host: VmHost, args: Sequence[Any]) -> Any:
    a, b = _int2(args, "%")
    _nonzero_divisor(b)
    if a == I64_MIN and b == -1:
        raise _arithmetic_error("integer overflow")
    return a - b * _trunc_div(a, b)


def _eq(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 2, "==")
    return values_equal(args[0], args[1])


def _ne(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 2, "!=")
    return not values_equal(args[0], args[1])


def _compare(op: str, test: Callable[[int, int], bool]) -> Callable[[VmHost, Sequence[Any]], Any]:
    def handler(host: VmHost, args: Sequence[Any]) -> Any:
        a, b = _int2(args, op)
        return test(a, b)

    return handler


def _and(host: VmHost, args: Sequence[Any]) -> Any:
    a, b = _bool2(args, "and")
    return a and b


def _or(host: VmHost, args: Sequence[Any]) -> Any:
    a, b = _bool2(args, "or")
    return a or b


def _not(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 1, "not")
    if not _is_bool(args[0]):
        raise VmError("not expects bool arguments")
    return not args[0]


def _neg(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 1, "neg")
    if not _is_int(args[0]):
        raise VmError("neg expects integer arguments")
    return _checked(-args[0])


def _str_cat(host: VmHost, args: Sequence[Any]) -> Any:
    _expect_count(args, 2, "str_cat")
    a, b = args
    if not (_is_str(a) and _is_str(b)):
        raise VmError("str_cat expects string arguments")
    return a + b


def _len(host: VmHost, args: Sequence[Any]) -> Any:
    return len(_single_string(args, "len", "string arguments"))


_HANDLERS: dict[Builtin, Callable[[VmHost, Sequence[Any]], Any]] = {
    Builtin.PRINT: _print,
    Builtin.PRINTLN: _println,
    Builtin.READLN: _readln,
    Builtin.READ: _read,
    Builtin.WRITE: _write,
    Builtin.PARSE: _parse,
    Builtin.STRINGIFY: _stringify,
    Builtin.RUN: _run,
    Builtin.GET: _get,
    Builtin.ADD: _add,
    Builtin.SUB: _sub,
    Builtin.MUL: _mul,
    Builtin.DIV: _div,
    Builtin.REM: _rem,
    Builtin.EQ: _eq,
    Builtin.NE: _ne,
    Builtin.LT: _compare("<", lambda a, b: a < b),
    Builtin.LE: _compare("<=", lambda a, b: a <= b),
    Builtin.GT: _compare(">", lambda a, b: a > b),
    Builtin.GE: _compare(">=", lambda a, b: a >= b),
    Builtin.AND: _and,
    Builtin.OR: _or,
    Builtin.NOT: _not,
    Builtin.NEG: _neg,
    Builtin.STR_CAT: _str_cat,
    Builtin.LEN: _len,
}


def call_builtin(host: VmHost, builtin_id: int, args: Sequence[Any]) -> Any:
    """Run the built-in with the given id on the arguments and return its result."""
    try:
        builtin = Builtin(builtin_id)
    except ValueError:
        raise VmError(f"unknown builtin id {builtin_id}") from None
    return _HANDLERS[builtin](host, list(args))