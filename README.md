# muvm

muvm is a small stack-based bytecode virtual machine. A program is a list of functions, each with a fixed arity and its own code. The machine runs a program under a fuel limit and sends every side effect (console, files, processes, HTTP) through a host object that you choose.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `muvm.values`

This module holds the runtime values and the helpers that work on them.

- `Unit`, `Adt(tag, fields)` and `Closure(fn_id, captures)`. The other values are plain Python `int`, `float`, `bool`, `str`, `list` and `dict`.
- `values_equal(left, right)` compares two values structurally. It never treats different kinds as equal, so `1`, `1.0` and `True` are all different.
- `with_code(code, message)` builds a message of the form `"E4003: ..."`.
- `ok_value(value)` and `err_value(message)` build the `Ok(...)` and `Er(...)` result values.
- `json_to_value(data)` and `value_to_json(value)` convert in both directions between decoded JSON data and the `Null` / `Bool` / `Num` / `Str` / `Arr` / `Obj` constructors.
  - `json_to_value` stores every JSON number as a float.
  - `value_to_json` raises `ValueError` when a value has no JSON form.
- `VmError` is the exception raised for any runtime fault.

### `muvm.host`

`VmHost` is the abstract interface for side effects. Its methods are:

- `io_print`
- `io_println`
- `io_readln`
- `fs_read_to_string`
- `fs_write_string`
- `proc_run`
- `http_get`

Two hosts are provided:

- `RealHost` uses the console, the file system and child processes. It makes HTTP requests with `urllib`, and only `http`/`https` URLs are accepted.
- `FuzzHost` discards output and refuses every other effect.

When a file, process or HTTP effect fails, the host raises `HostError`. The program then receives the failure as an `Er(message)` value. A failed `io_readln` raises `VmError` instead.

### `muvm.builtins`

`Builtin` lists the numeric ids of the built-in operations. `call_builtin(host, builtin_id, args)` runs one of them. They cover:

- **Console:** `print`, `println`, `readln`.
- **Files:** `read`, `write`.
- **JSON:** `parse` and `stringify`. `stringify` falls back to a short text form for values that are not JSON constructors.
- **Processes and HTTP:** `run` (a process), `get` (HTTP).
- **Integer arithmetic:** checked 64-bit `+ - * / %`. Division truncates. Division by zero or overflow raises `E4003`.
- **Comparisons:** `== != < <= > >=`.
- **Logic:** `and or not`.
- **Other:** `neg`, `str_cat`, and `len` (counted in characters).

### `muvm.machine`

- `OpCode` lists the instruction bytes.
- `Function(arity, captures, code)` is one compiled function.
- `Program(strings, functions, entry_fn)` is a whole program.
- `run_program(program, args=(), fuel=DEFAULT_FUEL, host=None)` runs the entry function to completion.
  - If no host is given, it uses `RealHost`.
  - `DEFAULT_FUEL` is 10,000,000 instructions.
  - The `args` parameter is accepted but not used by the machine.

## Running a program

```python
from muvm.machine import Function, OpCode, Program, run_program
from muvm.host import FuzzHost
from muvm.values import VmError

code = (
    bytes([OpCode.PUSH_INT])
    + (0).to_bytes(8, "little", signed=True)
    + bytes([OpCode.RETURN])
)
program = Program(strings=[], functions=[Function(arity=0, captures=0, code=code)], entry_fn=0)

try:
    run_program(program, [], 10_000_000, FuzzHost())
except VmError as exc:
    print(exc)
```

The entry function must take no arguments and must return an integer exit status. The status is truncated to 32 bits. A non-zero status raises `VmError` with code `E4006`.

Runtime faults carry these stable codes:

| code  | meaning                      |
|-------|------------------------------|
| E4001 | assertion failed             |
| E4002 | contract failed              |
| E4003 | division by zero or overflow |
| E4004 | ADT field index out of range |
| E4006 | non-zero exit status         |
| E4007 | execution fuel exhausted     |

A `TRAP` instruction raises `VmError` carrying its message from the string pool.

## What this package does not do

- **No compiling or loading:** muvm only executes programs that are already built as `Program` objects. It has no source-language parser, type checker, formatter or compiler, and it cannot read or write bytecode files. You must assemble `Function.code` yourself.
- **No command-line tool:** the package does not provide one.