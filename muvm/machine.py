"""The stack machine that executes decoded programs."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Optional, Sequence

from muvm.builtins import call_builtin
from muvm.host import RealHost, VmHost
from muvm.values import UNIT, Adt, Closure, VmError, with_code

DEFAULT_FUEL = 10_000_000

_U8 = struct.Struct("<B")
_U32 = struct.Struct("<I")
_I64 = struct.Struct("<q")


class OpCode(IntEnum):
    """Instruction bytes understood by the machine."""

    PUSH_INT = 1
    PUSH_BOOL = 2
    PUSH_STRING = 3
    PUSH_UNIT = 4
    LOAD_LOCAL = 5
    STORE_LOCAL = 6
    POP = 7
    JUMP = 8
    JUMP_IF_FALSE = 9
    CALL_BUILTIN = 10
    RETURN = 11
    CALL_FN = 12
    MK_CLOSURE = 13
    CALL_CLOSURE = 14
    TRAP = 15
    MK_ADT = 16
    JUMP_IF_TAG = 17
    ASSERT_CONST = 18
    CONTRACT_CONST = 19
    ASSERT_DYN = 20
    GET_ADT_FIELD = 21


@dataclass
class Function:
    """A compiled function: its parameter and capture counts and its code."""

    arity: int
    captures: int
    code: bytes


@dataclass
class Program:
    """A decoded program: string pool, functions and the entry function."""

    strings: list = field(default_factory=list)
    functions: list = field(default_factory=list)
    entry_fn: int = 0


@dataclass
class _Frame:
    fn_id: int
    ip: int = 0
    locals: list = field(default_factory=list)


def _as_bool(value: Any) -> bool:
    if type(value) is not bool:
        raise VmError("assert expects bool condition")
    return value


def _as_i32(value: int) -> int:
    return ((value + (1 << 31)) & 0xFFFFFFFF) - (1 << 31)


class _Machine:
    def __init__(self, program: Program, host: VmHost) -> None:
        self.strings = program.strings
        self.functions = program.functions
        self.host = host
        self.stack: list = []
        self.frames: list[_Frame] = []
        self.handlers: dict[OpCode, Callable[[_Frame, bytes], Optional[bool]]] = {
            OpCode.PUSH_INT: self._push_int,
            OpCode.PUSH_BOOL: self._push_bool,
            OpCode.PUSH_STRING: self._push_string,
            OpCode.PUSH_UNIT: self._push_unit,
            OpCode.LOAD_LOCAL: self._load_local,
            OpCode.STORE_LOCAL: self._store_local,
            OpCode.POP: self._pop_op,
            OpCode.JUMP: self._jump,
            OpCode.JUMP_IF_FALSE: self._jump_if_false,
            OpCode.CALL_BUILTIN: self._call_builtin,
            OpCode.RETURN: self._return,
            OpCode.CALL_FN: self._call_fn,
            OpCode.MK_CLOSURE: self._mk_closure,
            OpCode.CALL_CLOSURE: self._call_closure,
            OpCode.TRAP: self._trap,
            OpCode.MK_ADT: self._mk_adt,
            OpCode.JUMP_IF_TAG: self._jump_if_tag,
            OpCode.ASSERT_CONST: self._assert_const,
            OpCode.CONTRACT_CONST: self._contract_const,
            OpCode.ASSERT_DYN: self._assert_dyn,
            OpCode.GET_ADT_FIELD: self._get_adt_field,
        }

    # -- operand and stack helpers -------------------------------------

    @staticmethod
    def _read(frame: _Frame, code: bytes, layout: struct.Struct) -> int:
        if frame.ip + layout.size > len(code):
            raise VmError("truncated bytecode")
        (value,) = layout.unpack_from(code, frame.ip)
        frame.ip += layout.size
        return value

    def _pop(self, what: str) -> Any:
        if not self.stack:
            raise VmError(f"stack underflow in {what}")
        return self.stack.pop()

    def _take(self, count: int, what: str) -> list:
        if len(self.stack) < count:
            raise VmError(f"stack underflow in {what}")
        if count == 0:
            return []
        taken = self.stack[-count:]
        del self.stack[-count:]
        return taken

    def _string(self, index: int, message: str) -> str:
        if index >= len(self.strings):
            raise VmError(message)
        return self.strings[index]

    @staticmethod
    def _jump_to(frame: _Frame, code: bytes, target: int) -> None:
        if target > len(code):
            raise VmError("jump target out of bounds")
        frame.ip = target

    # -- main loop -------------------------------------------------------

    def run(self, entry_fn: int, fuel: int) -> None:
        if entry_fn < 0 or entry_fn >= len(self.functions):
            raise VmError("entry function index out of bounds")
        if self.functions[entry_fn].arity != 0:
            raise VmError("main function must have arity 0")
        self.frames.append(_Frame(entry_fn))

        while self.frames:
            if fuel == 0:
                raise VmError(with_code("E4007", "execution fuel exhausted"))
            fuel -= 1
            frame = self.frames[-1]
            code = self.functions[frame.fn_id].code
            if frame.ip >= len(code):
                raise VmError("program terminated without RET")
            op = code[frame.ip]
            frame.ip += 1
            try:
                opcode = OpCode(op)
            except ValueError:
                raise VmError(f"unknown opcode {op}") from None
            if self.handlers[opcode](frame, code):
                return
        raise VmError("program terminated without RET")

    # -- instructions ----------------------------------------------------

    def _push_int(self, frame: _Frame, code: bytes) -> None:
        self.stack.append(self._read(frame, code, _I64))

    def _push_bool(self, frame: _Frame, code: bytes) -> None:
        self.stack.append(self._read(frame, code, _U8) != 0)

    def _push_string(self, frame: _Frame, code: bytes) -> None:
        index = self._read(frame, code, _U32)
        self.stack.append(self._string(index, "string index out of bounds"))

    def _push_unit(self, frame: _Frame, code: bytes) -> None:
        self.stack.append(UNIT)

    def _load_local(self, frame: _Frame, code: bytes) -> None:
        index = self._read(frame, code, _U32)
        if index >= len(frame.locals):
            raise VmError("local index out of bounds")
        self.stack.append(frame.locals[index])

    def _store_local(self, frame: _Frame, code: bytes) -> None:
        index = self._read(frame, code, _U32)
        value = self._pop("STORE_LOCAL")
        if len(frame.locals) <= index:
            frame.locals.extend([UNIT] * (index + 1 - len(frame.locals)))
        frame.locals[index] = value

    def _pop_op(self, frame: _Frame, code: bytes) -> None:
        self._pop("POP")

    def _jump(self, frame: _Frame, code: bytes) -> None:
        self._jump_to(frame, code, self._read(frame, code, _U32))

    def _jump_if_false(self, frame: _Frame, code: bytes) -> None:
        target = self._read(frame, code, _U32)
        cond = self._pop("JMP_IF_FALSE")
        if type(cond) is not bool:
            raise VmError("JMP_IF_FALSE expects a bool on the stack")
        if not cond:
            self._jump_to(frame, code, target)

    def _call_builtin(self, frame: _Frame, code: bytes) -> None:
        builtin_id = self._read(frame, code, _U8)
        argc = self._read(frame, code, _U8)
        args = self._take(argc, "CALL_BUILTIN")
        self.stack.append(call_builtin(self.host, builtin_id, args))

    def _return(self, frame: _Frame, code: bytes) -> bool:
        result = self._pop("RET")
        self.frames.pop()
        if self.frames:
            self.stack.append(result)
            return False
        if type(result) is not int:
            raise VmError("main must return an integer exit code")
        status = _as_i32(result)
        if status != 0:
            raise VmError(with_code("E4006", f"program exited with status {status}"))
        return True

    def _call_fn(self, frame: _Frame, code: bytes) -> None:
        fn_id = self._read(frame, code, _U32)
        argc = self._read(frame, code, _U8)
        if fn_id >= len(self.functions):
            raise VmError("function id out of bounds")
        target = self.functions[fn_id]
        if target.arity != argc:
            raise VmError(
                f"function arity mismatch: expected {target.arity}, got {argc}"
            )
        if len(self.stack) < argc:
            raise VmError("stack underflow in CALL_FN")
        if target.captures != 0:
            raise VmError("CALL_FN cannot target closure-compiled function")
        self.frames.append(_Frame(fn_id, 0, self._take(argc, "CALL_FN")))

    def _mk_closure(self, frame: _Frame, code: bytes) -> None:
        fn_id = self._read(frame, code, _U32)
        ncap = self._read(frame, code, _U8)
        captures = self._take(ncap, "MK_CLOSURE")
        self.stack.append(Closure(fn_id, captures))

    def _call_closure(self, frame: _Frame, code: bytes) -> None:
        argc = self._read(frame, code, _U8)
        if len(self.stack) < argc + 1:
            raise VmError("stack underflow in CALL_CLOSURE")
        args = self._take(argc, "CALL_CLOSURE")
        closure = self._pop("CALL_CLOSURE")
        if not isinstance(closure, Closure):
            raise VmError("CALL_CLOSURE expects a closure value")
        if closure.fn_id >= len(self.functions):
            raise VmError("closure function id out of bounds")
        target = self.functions[closure.fn_id]
        if target.arity != argc:
            raise VmError(
                f"closure arity mismatch: expected {target.arity}, got {argc}"
            )
        if target.captures != len(closure.captures):
            raise VmError("closure capture count mismatch")
        self.frames.append(_Frame(closure.fn_id, 0, [*closure.captures, *args]))

    def _trap(self, frame: _Frame, code: bytes) -> None:
        index = self._read(frame, code, _U32)
        raise VmError(self._string(index, "trap message index out of bounds"))

    def _mk_adt(self, frame: _Frame, code: bytes) -> None:
        tag_index = self._read(frame, code, _U32)
        argc = self._read(frame, code, _U8)
        if len(self.stack) < argc:
            raise VmError("stack underflow in MK_ADT")
        tag = self._string(tag_index, "adt tag index out of bounds")
        self.stack.append(Adt(tag, self._take(argc, "MK_ADT")))

    def _jump_if_tag(self, frame: _Frame, code: bytes) -> None:
        tag_index = self._read(frame, code, _U32)
        target = self._read(frame, code, _U32)
        tag = self._string(tag_index, "adt tag index out of bounds")
        value = self._pop("JMP_IF_TAG")
        if isinstance(value, Adt) and value.tag == tag:
            self._jump_to(frame, code, target)

    def _checked_condition(
        self, frame: _Frame, code: bytes, what: str, index_error: str, err_code: str, kind: str
    ) -> None:
        index = self._read(frame, code, _U32)
        message = self._string(index, index_error)
        cond = _as_bool(self._pop(what))
        if not cond:
            raise VmError(with_code(err_code, f"{kind} failure: {message}"))
        self.stack.append(UNIT)

    def _assert_const(self, frame: _Frame, code: bytes) -> None:
        self._checked_condition(
            frame, code, "ASSERT_CONST", "assert message index out of bounds", "E4001", "assert"
        )

    def _contract_const(self, frame: _Frame, code: bytes) -> None:
        self._checked_condition(
            frame, code, "CONTRACT_CONST", "contract message index out of bounds", "E4002", "contract"
        )

    def _assert_dyn(self, frame: _Frame, code: bytes) -> None:
        message = self._pop("ASSERT_DYN")
        cond = _as_bool(self._pop("ASSERT_DYN"))
        if not cond:
            text = message if type(message) is str else "assert failure"
            raise VmError(with_code("E4001", f"assert failure: {text}"))
        self.stack.append(UNIT)

    def _get_adt_field(self, frame: _Frame, code: bytes) -> None:
        index = self._read(frame, code, _U8)
        value = self._pop("GET_ADT_FIELD")
        if not isinstance(value, Adt):
            raise VmError("GET_ADT_FIELD expects an ADT value")
        if index >= len(value.fields):
            raise VmError(with_code("E4004", "adt field index out of bounds"))
        self.stack.append(value.fields[index])


def run_program(
    program: Program,
    args: Sequence[str] = (),
    fuel: int = DEFAULT_FUEL,
    host: Optional[VmHost] = None,
) -> None:
    """Run a program's entry function to completion.

    Raises VmError on any fault, on exhausted fuel, or when main returns a
    nonzero exit status.
    """
    machine = _Machine(program, host if host is not None else RealHost())
    machine.run(program.entry_fn, fuel)