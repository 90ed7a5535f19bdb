"""
Test suite for the synvm execution engine.

Run with: uv run pytest tests/test_vm.py
"""

import io
import sys

from synvm.errors import (
    InputChannelClosed, InputError, InvalidOpcode, InvalidWrite,
    MemoryOutOfBounds, ModuloByZero, NoInstruction, StackUnderflow, VMError,
)
from synvm.isa import (
    HALT, SET, PUSH, POP, EQ, GT, JMP, JT, JF, ADD, MULT, MOD, AND, OR,
    NOT, RMEM, WMEM, CALL, RET, OUT, IN, NOOP,
    Literal, Register, encode_program,
)
from synvm.memory import Memory
from synvm.vm import VM

R0, R1, R2 = Register(0), Register(1), Register(2)


def make_vm(words=(), stdin=b""):
    stdout = io.BytesIO()
    vm = VM(Memory.from_words(words), stdin=io.BytesIO(stdin), stdout=stdout)
    return vm, stdout


def run_program(instructions, stdin=b""):
    vm, stdout = make_vm(encode_program(instructions), stdin)
    vm.run()
    return vm, stdout.getvalue()


def test_initial_state():
    vm, _ = make_vm()
    assert vm.registers == [0] * 8
    assert vm.stack == []
    assert vm.ip == 0
    assert not vm.halted


def test_arithmetic():
    print("Arithmetic Tests")
    print("=" * 50)

    vm, _ = make_vm()
    vm.registers[1] = 32767
    vm.execute(ADD(R0, R1, Literal(10)))
    assert vm.registers[0] == 9
    print("✓ ADD wraps modulo 2^15")

    vm.registers[1] = 30000
    vm.execute(MULT(R0, R1, Literal(30000)))
    assert vm.registers[0] == 900000000 % 32768
    print("✓ MULT wraps modulo 2^15 without overflow")

    vm.execute(MOD(R0, Literal(17), Literal(5)))
    assert vm.registers[0] == 2
    vm.execute(AND(R0, Literal(0b1100), Literal(0b1010)))
    assert vm.registers[0] == 0b1000
    vm.execute(OR(R0, Literal(0b1100), Literal(0b1010)))
    assert vm.registers[0] == 0b1110
    print("✓ MOD, AND, OR")

    vm.execute(NOT(R0, Literal(0)))
    assert vm.registers[0] == 0x7FFF
    vm.execute(NOT(R0, Literal(0x7FFF)))
    assert vm.registers[0] == 0
    vm.execute(NOT(R0, Literal(0x5555)))
    assert vm.registers[0] == 0x2AAA
    print("✓ NOT masks to 15 bits")

    try:
        vm.execute(MOD(R0, Literal(1), Literal(0)))
        assert False, "Should have raised"
    except ModuloByZero:
        pass
    print("✓ MOD by zero is fatal")


def test_comparisons():
    vm, _ = make_vm()
    for b, c in [(0, 0), (1, 0), (0, 1), (32767, 32767), (32767, 0)]:
        vm.execute(EQ(R0, Literal(b), Literal(c)))
        assert vm.registers[0] == (1 if b == c else 0)
        vm.execute(GT(R0, Literal(b), Literal(c)))
        assert vm.registers[0] == (1 if b > c else 0)
    assert vm.registers[0] in (0, 1)


def test_set_and_memory():
    vm, _ = make_vm()
    vm.execute(SET(R2, Literal(1234)))
    vm.execute(SET(R1, R2))
    assert vm.registers[1] == 1234

    vm.execute(WMEM(Literal(500), R1))
    assert vm.mem[500] == 1234
    vm.execute(RMEM(R0, Literal(500)))
    assert vm.registers[0] == 1234

    try:
        vm.execute(SET(Literal(3), Literal(4)))
        assert False, "Should have raised"
    except InvalidWrite:
        pass


def test_stack():
    print("\nStack Tests")
    print("=" * 50)

    vm, _ = make_vm()
    vm.execute(PUSH(Literal(5)))
    vm.execute(PUSH(Literal(6)))
    vm.execute(POP(R0))
    vm.execute(POP(R1))
    assert vm.registers[:2] == [6, 5]
    assert vm.stack == []
    print("✓ PUSH and POP are LIFO")

    try:
        vm.execute(POP(R0))
        assert False, "Should have raised StackUnderflow"
    except StackUnderflow:
        pass
    print("✓ POP on empty stack is fatal")

    vm, _ = make_vm()
    vm.execute(RET())
    assert vm.halted
    print("✓ RET on empty stack halts")


def test_jumps():
    vm, _ = make_vm()
    vm.execute(JMP(Literal(100)))
    assert vm.ip == 100
    vm.execute(JT(Literal(0), Literal(200)))
    assert vm.ip == 100
    vm.execute(JT(Literal(1), Literal(200)))
    assert vm.ip == 200
    vm.execute(JF(Literal(1), Literal(300)))
    assert vm.ip == 200
    vm.execute(JF(Literal(0), Literal(300)))
    assert vm.ip == 300


def test_call_ret_round_trip():
    # 0: CALL 5     (2 words)
    # 2: OUT 'r'    (2 words)
    # 4: HALT
    # 5: OUT 'c'
    # 7: RET
    words = encode_program([
        CALL(Literal(5)), OUT(Literal(ord('r'))), HALT(),
        OUT(Literal(ord('c'))), RET(),
    ])
    vm, stdout = make_vm(words)
    vm.step()
    assert vm.ip == 5
    assert vm.stack == [2]
    vm.step()
    vm.step()
    assert vm.ip == 2
    assert vm.stack == []
    vm.run()
    assert stdout.getvalue() == b"cr"


def test_io():
    print("\nI/O Tests")
    print("=" * 50)

    vm, out = run_program([OUT(Literal(0x141)), HALT()])
    assert out == b"A"
    print("✓ OUT emits the low byte")

    vm, out = run_program([IN(R0), IN(R1), OUT(R1), OUT(R0), HALT()], stdin=b"hi")
    assert vm.registers[:2] == [ord('h'), ord('i')]
    assert out == b"ih"
    print("✓ IN reads one byte at a time")

    vm, _ = run_program([IN(R0), HALT()], stdin=b"\xff")
    assert vm.registers[0] == 255
    print("✓ IN zero-extends")

    vm, _ = make_vm(encode_program([IN(R0)]))
    try:
        vm.run()
        assert False, "Should have raised"
    except InputChannelClosed:
        pass
    print("✓ Closed input is fatal")

    class BrokenInput:
        def read(self, n):
            raise OSError("device gone")

    vm = VM(Memory.from_words(encode_program([IN(R0)])), stdin=BrokenInput(), stdout=io.BytesIO())
    try:
        vm.run()
        assert False, "Should have raised"
    except InputError as e:
        assert "device gone" in str(e)
    print("✓ Input error is fatal")


def test_scenarios():
    print("\nScenario Tests")
    print("=" * 50)

    vm, stdout = make_vm([9, 32768, 32769, 4, 19, 32768])
    vm.step()
    assert vm.registers[0] == 4
    assert vm.ip == 4
    vm.step()
    assert stdout.getvalue() == b"\x04"
    print("✓ ADD(R0, R1, 4) then OUT(R0)")

    vm, stdout = make_vm([0])
    assert vm.run() == 1
    assert vm.halted
    assert stdout.getvalue() == b""
    assert vm.registers == [0] * 8
    print("✓ Single HALT")

    vm, stdout = make_vm([19, 65, 21, 0])
    assert vm.run() == 3
    assert stdout.getvalue() == b"\x41"
    print("✓ OUT 'A', NOOP, HALT")


def test_halted_is_terminal():
    vm, stdout = make_vm([0, 19, 65])
    vm.run()
    ip = vm.ip
    vm.step()
    vm.step()
    assert vm.ip == ip
    assert stdout.getvalue() == b""
    assert vm.run() == 0


def test_step_budget():
    # JMP 0 forever
    vm, _ = make_vm([6, 0])
    assert vm.run(max_steps=50) == 50
    assert not vm.halted
    assert vm.ip == 0


def test_trace():
    seen = []
    vm = VM(
        Memory.from_words([9, 32768, 32769, 4, 21, 0]),
        stdin=io.BytesIO(),
        stdout=io.BytesIO(),
        trace=lambda addr, instr: seen.append((addr, instr)),
    )
    vm.run()
    assert seen == [
        (0, ADD(R0, R1, Literal(4))),
        (4, NOOP()),
        (5, HALT()),
    ]


def test_default_channels_resolved_on_use(monkeypatch):
    monkeypatch.setattr(sys, "stdin", None)
    monkeypatch.setattr(sys, "stdout", None)
    vm = VM(Memory.from_words(encode_program([NOOP(), IN(R0)])))
    vm.step()
    assert vm.ip == 1
    try:
        vm.step()
        assert False, "Should have raised"
    except InputChannelClosed as e:
        assert e.ip == 1

    class Stdio:
        buffer = io.BytesIO()

    monkeypatch.setattr(sys, "stdout", Stdio)
    vm = VM(Memory.from_words(encode_program([OUT(Literal(ord("k"))), HALT()])))
    vm.run()
    assert Stdio.buffer.getvalue() == b"k"


def test_faults_carry_ip():
    print("\nFault Tests")
    print("=" * 50)

    vm, _ = make_vm([21, 21, 99])
    try:
        vm.run()
        assert False, "Should have raised"
    except InvalidOpcode as e:
        assert e.ip == 2
        assert str(e) == "Invalid instruction 0x0063 at ip 0x0002"
    assert vm.halted
    print("✓ Invalid opcode reports ip")

    vm, _ = make_vm(encode_program([NOOP(), POP(R0)]))
    try:
        vm.run()
        assert False, "Should have raised"
    except StackUnderflow as e:
        assert e.ip == 1
    print("✓ Stack underflow reports ip")

    # RMEM R0 <- [6]; WMEM R0, 1 with R0 = 0x8000
    vm, _ = make_vm(encode_program([RMEM(R0, Literal(6)), WMEM(R0, Literal(1))]) + [0x8000])
    try:
        vm.run()
        assert False, "Should have raised"
    except MemoryOutOfBounds as e:
        assert e.access == "write"
        assert e.address == 0x8000
        assert e.ip == 3
    print("✓ Out-of-bounds write reports ip")

    vm, _ = make_vm()
    vm.ip = 0x7FFF
    vm.mem[0x7FFF] = 21
    vm.step()
    assert vm.ip == 0x8000
    try:
        vm.step()
        assert False, "Should have raised"
    except NoInstruction as e:
        assert isinstance(e, VMError)
        assert "No instruction to execute" in str(e)
    print("✓ Running off the end of memory")


if __name__ == "__main__":
    import pytest

    print("synvm VM Test Suite")
    print("=" * 60)
    print()

    test_initial_state()
    test_arithmetic()
    test_comparisons()
    test_set_and_memory()
    test_stack()
    test_jumps()
    test_call_ret_round_trip()
    test_io()
    test_scenarios()
    test_halted_is_terminal()
    test_step_budget()
    test_trace()
    with pytest.MonkeyPatch.context() as mp:
        test_default_channels_resolved_on_use(mp)
    test_faults_carry_ip()

    print("\n" + "=" * 60)
    print("All tests passed!")
