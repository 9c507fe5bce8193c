from typing import Sequence

import pytest

from muvm.builtins import Builtin, call_builtin
from muvm.host import FuzzHost, HostError, VmHost
from muvm.values import UNIT, Adt, Closure, VmError

I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1


class RecordingHost(VmHost):
    def __init__(self, fail: bool = False) -> None:
        self.output: list[str] = []
        self.files: dict[str, str] = {}
        self.runs: list[tuple[str, list[str]]] = []
        self.fail = fail

    def io_print(self, text: str) -> None:
        self.output.append(text)

    def io_println(self, text: str) -> None:
        self.output.append(text + "\n")

    def io_readln(self) -> str:
        return "line"

    def fs_read_to_string(self, path: str) -> str:
        if self.fail or path not in self.files:
            raise HostError("disabled")
        return self.files[path]

    def fs_write_string(self, path: str, data: str) -> None:
        if self.fail:
            raise HostError("disabled")
        self.files[path] = data

    def proc_run(self, cmd: str, args: Sequence[str]) -> int:
        self.runs.append((cmd, list(args)))
        return 0

    def http_get(self, url: str) -> str:
        if self.fail:
            raise HostError("disabled")
        return "body"


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


def test_proc_run_builtin_rejects_non_array_args():
    with pytest.raises(VmError, match="run expects second argument as string array"):
        call_builtin(FuzzHost(), 8, ["echo", "x"])


def test_proc_run_builtin_accepts_string_array_args(host):
    value = call_builtin(host, 8, ["echo", ["ok"]])
    assert value == Adt("Ok", [0])
    assert host.runs == [("echo", ["ok"])]


def test_proc_run_rejects_non_string_items(host):
    with pytest.raises(VmError, match="string array"):
        call_builtin(host, Builtin.RUN, ["echo", [1]])


def test_proc_run_failure_becomes_er():
    value = call_builtin(FuzzHost(), Builtin.RUN, ["echo", []])
    assert value == Adt("Er", ["fuzz host: proc run disabled"])


def test_print_and_println(host):
    assert call_builtin(host, Builtin.PRINT, ["a"]) == UNIT
    assert call_builtin(host, Builtin.PRINTLN, ["b"]) == UNIT
    assert host.output == ["a", "b\n"]


def test_print_rejects_non_string(host):
    with pytest.raises(VmError, match="print expects a string"):
        call_builtin(host, Builtin.PRINT, [1])


def test_println_arity(host):
    with pytest.raises(VmError, match="println expects one argument"):
        call_builtin(host, Builtin.PRINTLN, [])


def test_readln(host):
    assert call_builtin(host, Builtin.READLN, []) == "line"
    with pytest.raises(VmError, match="readln expects zero arguments"):
        call_builtin(host, Builtin.READLN, ["x"])


def test_readln_fuzz_host_is_fatal():
    with pytest.raises(VmError, match="readln disabled"):
        call_builtin(FuzzHost(), Builtin.READLN, [])


def test_write_then_read(host):
    assert call_builtin(host, Builtin.WRITE, ["f.txt", "hello"]) == Adt("Ok", [UNIT])
    assert call_builtin(host, Builtin.READ, ["f.txt"]) == Adt("Ok", ["hello"])


def test_read_and_write_failures_become_er():
    failing = RecordingHost(fail=True)
    assert call_builtin(failing, Builtin.READ, ["x"]) == Adt("Er", ["disabled"])
    assert call_builtin(failing, Builtin.WRITE, ["x", "y"]) == Adt("Er", ["disabled"])


def test_write_argument_errors(host):
    with pytest.raises(VmError, match="write expects a string path"):
        call_builtin(host, Builtin.WRITE, [1, "x"])
    with pytest.raises(VmError, match="write expects a string payload"):
        call_builtin(host, Builtin.WRITE, ["p", 1])
    with pytest.raises(VmError, match="write expects two arguments"):
        call_builtin(host, Builtin.WRITE, ["p"])


def test_get(host):
    assert call_builtin(host, Builtin.GET, ["http://example.com"]) == Adt("Ok", ["body"])
    assert call_builtin(FuzzHost(), Builtin.GET, ["http://example.com"]) == Adt(
        "Er", ["fuzz host: http get disabled"]
    )


def test_parse_object(host):
    value = call_builtin(host, Builtin.PARSE, ['{"a":1}'])
    assert value == Adt("Ok", [Adt("Obj", [{"a": Adt("Num", [1.0])}])])


def test_parse_number_is_float(host):
    value = call_builtin(host, Builtin.PARSE, ["1.25"])
    payload = value.fields[0].fields[0]
    assert type(payload) is float
    assert payload == 1.25


def test_parse_failure_is_er(host):
    value = call_builtin(host, Builtin.PARSE, ["{bad"])
    assert value.tag == "Er"
    assert value.fields[0].startswith("json parse failed:")


def test_parse_rejects_nan(host):
    assert call_builtin(host, Builtin.PARSE, ["NaN"]).tag == "Er"


def test_parse_results_compare_structurally(host):
    a = call_builtin(host, Builtin.PARSE, ['{"a":1}'])
    b = call_builtin(host, Builtin.PARSE, ['{"a":1}'])
    assert call_builtin(host, Builtin.EQ, [a, b]) is True


def test_stringify_roundtrip(host):
    parsed = call_builtin(host, Builtin.PARSE, ['{"mu":1}'])
    json_value = parsed.fields[0]
    assert call_builtin(host, Builtin.STRINGIFY, [json_value]) == '{"mu":1.0}'


def test_stringify_num_float(host):
    assert call_builtin(host, Builtin.STRINGIFY, [Adt("Num", [2.5])]) == "2.5"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("text", "text"),
        (Adt("Some", [1, 2]), "Some(2)"),
        (Closure(3, []), "<closure>"),
        (42, "42"),
        (True, "true"),
        (False, "false"),
        (2.5, "2.5"),
        (1.0, "1"),
        ([1, 2, 3], "<array:3>"),
        ({"a": 1}, "<map:1>"),
        (UNIT, "()"),
        (float("nan"), "NaN"),
        (float("inf"), "inf"),
    ],
)
def test_stringify_fallbacks(host, value, expected):
    assert call_builtin(host, Builtin.STRINGIFY, [value]) == expected


@pytest.mark.parametrize(
    "builtin, a, b, expected",
    [
        (Builtin.ADD, 1, 2, 3),
        (Builtin.SUB, 1, 3, -2),
        (Builtin.MUL, 6, 7, 42),
        (Builtin.DIV, 7, 2, 3),
        (Builtin.DIV, -7, 2, -3),
        (Builtin.REM, 7, 3, 1),
        (Builtin.REM, -7, 3, -1),
        (Builtin.REM, 7, -3, 1),
        (Builtin.LT, 1, 2, True),
        (Builtin.LE, 2, 2, True),
        (Builtin.GT, 1, 2, False),
        (Builtin.GE, 3, 2, True),
    ],
)
def test_integer_ops(host, builtin, a, b, expected):
    assert call_builtin(host, builtin, [a, b]) == expected


@pytest.mark.parametrize(
    "builtin, a, b",
    [
        (Builtin.ADD, I64_MAX, 1),
        (Builtin.SUB, I64_MIN, 1),
        (Builtin.MUL, I64_MAX, 2),
        (Builtin.DIV, I64_MIN, -1),
        (Builtin.REM, I64_MIN, -1),
    ],
)
def test_integer_overflow(host, builtin, a, b):
    with pytest.raises(VmError, match="E4003: integer overflow"):
        call_builtin(host, builtin, [a, b])


@pytest.mark.parametrize("builtin", [Builtin.DIV, Builtin.REM])
def test_division_by_zero(host, builtin):
    with pytest.raises(VmError, match="E4003: division by zero"):
        call_builtin(host, builtin, [1, 0])


def test_integer_ops_reject_bools(host):
    with pytest.raises(VmError, match=r"\+ expects integer arguments"):
        call_builtin(host, Builtin.ADD, [True, 2])


def test_integer_ops_arity(host):
    with pytest.raises(VmError, match="< expects two arguments"):
        call_builtin(host, Builtin.LT, [1])


def test_equality_distinguishes_kinds(host):
    assert call_builtin(host, Builtin.EQ, ["mu", "mu"]) is True
    assert call_builtin(host, Builtin.EQ, [1, True]) is False
    assert call_builtin(host, Builtin.NE, [1, 2]) is True
    with pytest.raises(VmError, match="== expects two arguments"):
        call_builtin(host, Builtin.EQ, [1])


def test_boolean_ops(host):
    assert call_builtin(host, Builtin.AND, [True, False]) is False
    assert call_builtin(host, Builtin.OR, [True, False]) is True
    assert call_builtin(host, Builtin.NOT, [False]) is True
    with pytest.raises(VmError, match="and expects bool arguments"):
        call_builtin(host, Builtin.AND, [1, True])
    with pytest.raises(VmError, match="not expects bool arguments"):
        call_builtin(host, Builtin.NOT, [0])


def test_neg(host):
    assert call_builtin(host, Builtin.NEG, [1]) == -1
    with pytest.raises(VmError, match="E4003: integer overflow"):
        call_builtin(host, Builtin.NEG, [I64_MIN])
    with pytest.raises(VmError, match="neg expects integer arguments"):
        call_builtin(host, Builtin.NEG, [True])


def test_string_helpers(host):
    assert call_builtin(host, Builtin.STR_CAT, ["a", "b"]) == "ab"
    assert call_builtin(host, Builtin.LEN, ["abc"]) == 3
    assert call_builtin(host, Builtin.LEN, ["héé"]) == 3
    with pytest.raises(VmError, match="len expects string arguments"):
        call_builtin(host, Builtin.LEN, [1])
    with pytest.raises(VmError, match="str_cat expects string arguments"):
        call_builtin(host, Builtin.STR_CAT, ["a", 1])


def test_unknown_builtin(host):
    with pytest.raises(VmError, match="unknown builtin id 99"):
        call_builtin(host, 99, [])