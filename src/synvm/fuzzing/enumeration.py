"""
Enumeration-based test generation for synvm.

Systematically enumerates small programs over boundary operand values,
each paired with the outcome a correct VM must produce. Unlike random
fuzzing, this gives guaranteed coverage of the bounded space.
"""

import itertools
from typing import Callable, Dict, Iterator, List, Tuple, Type

from synvm.errors import (
    InvalidOpcode, InvalidOperand, InvalidWrite, MemoryOutOfBounds,
    ModuloByZero, NoInstruction, StackUnderflow, VMError,
)
from synvm.isa import (
    ADD, AND, EQ, GT, HALT, JMP, MOD, MULT, NOT, OR, OUT, POP, RMEM, SET, WMEM,
    OP_ADD, OP_NOOP, Literal, Register, encode_program,
)
from synvm.memory import MEMORY_SIZE, VALUE_MASK


# ============================================================
# Configuration
# ============================================================

# Interesting constants for boundary value analysis
BOUNDARY_CONSTANTS = [
    0,           # Zero
    1,           # One
    2,           # Small value
    0xFF,        # Byte max
    0x4000,      # High bit of the 15-bit range
    0x7FFE,      # One below max
    0x7FFF,      # 15-bit max
]

# Minimal interesting constants for smaller test suites
MINIMAL_CONSTANTS = [0, 1, 0x7FFF]

# Reference results for the three-operand arithmetic and logic ops
BINARY_OPS: Dict[Type, Callable[[int, int], int]] = {
    ADD:  lambda b, c: (b + c) % MEMORY_SIZE,
    MULT: lambda b, c: (b * c) % MEMORY_SIZE,
    MOD:  lambda b, c: b % c,
    AND:  lambda b, c: b & c,
    OR:   lambda b, c: b | c,
    EQ:   lambda b, c: int(b == c),
    GT:   lambda b, c: int(b > c),
}


# ============================================================
# Arithmetic Enumeration
# ============================================================

def enumerate_binary_op_tests(constants: List[int] = BOUNDARY_CONSTANTS) -> Iterator[Tuple[List[int], int]]:
    """
    Enumerate every binary op over every pair of constants.

    Each program loads both constants into registers, applies the op into
    R0, and halts. MOD by zero is left to enumerate_fault_tests.

    Yields:
        (program words, expected value of R0)
    """
    r0, r1, r2 = Register(0), Register(1), Register(2)
    for op, reference in BINARY_OPS.items():
        for b, c in itertools.product(constants, repeat=2):
            if op is MOD and c == 0:
                continue
            program = encode_program([
                SET(r1, Literal(b)),
                SET(r2, Literal(c)),
                op(r0, r1, r2),
                HALT(),
            ])
            yield program, reference(b, c)


def enumerate_not_tests(constants: List[int] = BOUNDARY_CONSTANTS) -> Iterator[Tuple[List[int], int]]:
    """Enumerate NOT over each constant. Yields (program words, expected R0)."""
    for b in constants:
        program = encode_program([NOT(Register(0), Literal(b)), HALT()])
        yield program, ~b & VALUE_MASK


def enumerate_output_tests() -> Iterator[Tuple[List[int], bytes]]:
    """OUT keeps only the low byte. Yields (program words, expected output)."""
    for value in [0, 0x41, 0xFF, 0x100, 0x141, 0x7FFF]:
        yield encode_program([OUT(Literal(value)), HALT()]), bytes([value & 0xFF])


# ============================================================
# Fault Enumeration
# ============================================================

def enumerate_fault_tests() -> Iterator[Tuple[List[int], Type[VMError]]]:
    """
    Enumerate programs that must stop with a specific fault.

    Yields:
        (program words, expected VMError subclass)
    """
    yield encode_program([POP(Register(0))]), StackUnderflow
    yield encode_program([SET(Literal(1), Literal(2))]), InvalidWrite
    yield encode_program([ADD(Literal(0), Literal(1), Literal(2))]), InvalidWrite
    yield encode_program([MOD(Register(0), Literal(1), Literal(0))]), ModuloByZero

    for opcode in [OP_NOOP + 1, 0x100, 0x7FFF, 0x8000, 0xFFFF]:
        yield [opcode], InvalidOpcode

    for raw in [MEMORY_SIZE + 8, 0x9000, 0xFFFF]:
        yield [OP_ADD, raw, 0, 0], InvalidOperand
        yield [OP_ADD, MEMORY_SIZE, 0, raw], InvalidOperand

    # Addresses above 0x7FFF can only come from raw memory words.
    yield encode_program([RMEM(Register(0), Literal(7)), WMEM(Register(0), Literal(1)), HALT()]) + [0x8000], MemoryOutOfBounds
    yield encode_program([RMEM(Register(0), Literal(5)), JMP(Register(0))]) + [0x8000], NoInstruction


# ============================================================
# Comprehensive Test Suites
# ============================================================

def generate_comprehensive_suite(constants: List[int] = BOUNDARY_CONSTANTS) -> Iterator[List[int]]:
    """
    Generate every enumerated program, deduplicated.

    Yields:
        Program words for the comprehensive suite
    """
    seen = set()
    programs = itertools.chain(
        (p for p, _ in enumerate_binary_op_tests(constants)),
        (p for p, _ in enumerate_not_tests(constants)),
        (p for p, _ in enumerate_output_tests()),
        (p for p, _ in enumerate_fault_tests()),
    )
    for program in programs:
        key = tuple(program)
        if key not in seen:
            seen.add(key)
            yield program
