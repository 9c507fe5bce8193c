import math

import pytest

from muvm.values import (
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


def test_json_num_payload_uses_float_value():
    value = json_to_value(1.25)
    assert value.tag == "Num"
    assert len(value.fields) == 1
    assert type(value.fields[0]) is float
    assert abs(value.fields[0] - 1.25) < 1e-15


def test_json_num_float_roundtrips_to_json_number():
    assert value_to_json(Adt("Num", [2.5])) == 2.5


def test_integer_json_number_becomes_float():
    value = json_to_value(1)
    assert values_equal(value, Adt("Num", [1.0]))
    assert not values_equal(value, Adt("Num", [1]))


def test_json_object_roundtrip():
    data = {"mu": 1.0, "list": [None, True, "x"], "inner": {"b": False}}
    assert value_to_json(json_to_value(data)) == data


def test_json_object_keys_are_sorted():
    value = json_to_value({"b": 1, "a": 2})
    assert value.tag == "Obj"
    assert list(value.fields[0]) == ["a", "b"]
    assert list(value_to_json(value)) == ["a", "b"]


def test_json_constructors_for_each_kind():
    assert values_equal(json_to_value(None), Adt("Null", []))
    assert values_equal(json_to_value(True), Adt("Bool", [True]))
    assert values_equal(json_to_value("s"), Adt("Str", ["s"]))
    assert values_equal(
        json_to_value([None]), Adt("Arr", [[Adt("Null", [])]])
    )


def test_num_from_int_and_string_payloads():
    assert value_to_json(Adt("Num", [7])) == 7
    assert value_to_json(Adt("Num", ["12"])) == 12
    assert value_to_json(Adt("Num", ["1.5"])) == 1.5


@pytest.mark.parametrize(
    "value",
    [
        Adt("Num", [math.nan]),
        Adt("Num", [math.inf]),
        Adt("Num", ["abc"]),
        Adt("Num", ["NaN"]),
        Adt("Num", [True]),
        Adt("Bool", [1]),
        Adt("Str", [3]),
        Adt("Null", [1]),
        Adt("Other", ["x"]),
        Adt("Arr", [[Adt("Other", [])]]),
        Adt("Obj", [{"k": "not adt"}]),
        "plain string",
        5,
        Unit(),
    ],
)
def test_value_without_json_form_raises(value):
    with pytest.raises(ValueError):
        value_to_json(value)


def test_values_equal_distinguishes_kinds():
    assert not values_equal(1, 1.0)
    assert not values_equal(1, True)
    assert not values_equal("1", 1)
    assert values_equal(Unit(), Unit())
    assert values_equal([1, "a"], [1, "a"])
    assert not values_equal([1], [1, 2])


def test_values_equal_nested_structures():
    left = Adt("Obj", [{"a": Adt("Num", [1.0])}])
    right = Adt("Obj", [{"a": Adt("Num", [1.0])}])
    assert values_equal(left, right)
    assert left == right
    assert not values_equal(left, Adt("Obj", [{"a": Adt("Num", [2.0])}]))
    assert not values_equal(left, Adt("Arr", [{"a": Adt("Num", [1.0])}]))


def test_adt_equality_is_strict():
    assert Adt("Some", [1]) != Adt("Some", [True])
    assert Adt("Some", [1]) == Adt("Some", [1])


def test_closure_equality():
    assert Closure(3, [1]) == Closure(3, [1])
    assert Closure(3, [1]) != Closure(4, [1])
    assert Closure(3, [1]) != Closure(3, [1.0])


def test_with_code_format():
    assert with_code("E4003", "division by zero") == "E4003: division by zero"


def test_ok_and_err_values():
    assert values_equal(ok_value(5), Adt("Ok", [5]))
    assert values_equal(err_value("disabled"), Adt("Er", ["disabled"]))


def test_vm_error_message():
    err = VmError("execution fuel exhausted")
    assert str(err) == "execution fuel exhausted"
    assert err.message == "execution fuel exhausted"