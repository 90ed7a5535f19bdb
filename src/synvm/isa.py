"""Instruction set: operands, the 22 instructions, and their word encoding."""

from dataclasses import dataclass, fields
from typing import ClassVar, Dict, Iterator, List, Tuple, Type, Union

from .errors import InvalidOpcode, InvalidOperand, InvalidWrite
from .memory import LAST_ADDRESS, MEMORY_SIZE, NUM_REGISTERS, Cursor, Memory

# =============================================================================
# Constants
# =============================================================================

OP_HALT = 0
OP_SET  = 1
OP_PUSH = 2
OP_POP  = 3
OP_EQ   = 4
OP_GT   = 5
OP_JMP  = 6
OP_JT   = 7
OP_JF   = 8
OP_ADD  = 9
OP_MULT = 10
OP_MOD  = 11
OP_AND  = 12
OP_OR   = 13
OP_NOT  = 14
OP_RMEM = 15
OP_WMEM = 16
OP_CALL = 17
OP_RET  = 18
OP_OUT  = 19
OP_IN   = 20
OP_NOOP = 21

REGISTER_BASE = MEMORY_SIZE

# =============================================================================
# Operand ADT
# =============================================================================

@dataclass(frozen=True)
class Literal:
    """Immediate value in 0..32767."""
    value: int

    def __post_init__(self):
        if not (0 <= self.value <= LAST_ADDRESS):
            raise ValueError(f"Literal value must be 0-0x7FFF, got {self.value}")

    def get(self, vm) -> int:
        return self.value

    def set(self, vm, value: int) -> None:
        raise InvalidWrite(self)

    def encode(self) -> int:
        return self.value

    def __str__(self) -> str:
        return f"{self.value:#x}"


@dataclass(frozen=True)
class Register:
    """Reference to one of the eight registers."""
    index: int

    def __post_init__(self):
        if not (0 <= self.index < NUM_REGISTERS):
            raise ValueError(f"Register index must be 0-{NUM_REGISTERS - 1}, got {self.index}")

    def get(self, vm) -> int:
        return vm.registers[self.index]

    def set(self, vm, value: int) -> None:
        vm.registers[self.index] = value

    def encode(self) -> int:
        return REGISTER_BASE + self.index

    def __str__(self) -> str:
        return f"R{self.index:x}"


Operand = Union[Literal, Register]


def classify(raw: int) -> Operand:
    """Turn a raw word into a literal or register operand."""
    if raw < REGISTER_BASE:
        return Literal(raw)
    if raw - REGISTER_BASE < NUM_REGISTERS:
        return Register(raw - REGISTER_BASE)
    raise InvalidOperand(raw)


def decode_operand(cursor: Cursor) -> Operand:
    return classify(cursor.advance())


def decode_operands(cursor: Cursor, n: int) -> Tuple[Operand, ...]:
    return tuple(decode_operand(cursor) for _ in range(n))

# =============================================================================
# Instruction ADT
# =============================================================================

class _Listing:
    """Renders an instruction as ``NAME(op, op, ...)``."""

    def __str__(self) -> str:
        args = ", ".join(str(getattr(self, f.name)) for f in fields(self))
        return f"{type(self).__name__}({args})" if args else type(self).__name__


@dataclass(frozen=True)
class HALT(_Listing):
    """Stop execution."""
    opcode: ClassVar[int] = OP_HALT

@dataclass(frozen=True)
class SET(_Listing):
    """a := b"""
    opcode: ClassVar[int] = OP_SET
    a: Operand
    b: Operand

@dataclass(frozen=True)
class PUSH(_Listing):
    """Push a onto the stack."""
    opcode: ClassVar[int] = OP_PUSH
    a: Operand

@dataclass(frozen=True)
class POP(_Listing):
    """Pop the stack into a."""
    opcode: ClassVar[int] = OP_POP
    a: Operand

@dataclass(frozen=True)
class EQ(_Listing):
    """a := 1 if b == c else 0"""
    opcode: ClassVar[int] = OP_EQ
    a: Operand
    b: Operand
    c: Operand

@dataclass(frozen=True)
class GT(_Listing):
    """a := 1 if b > c else 0"""
    opcode: ClassVar[int] = OP_GT
    a: Operand
    b: Operand
    c: Operand

@dataclass(frozen=True)
class JMP(_Listing):
    """Jump to a."""
    opcode: ClassVar[int] = OP_JMP
    a: Operand

@dataclass(frozen=True)
class JT(_Listing):
    """Jump to b if a is nonzero."""
    opcode: ClassVar[int] = OP_JT
    a: Operand
    b: Operand

@dataclass(frozen=True)
class JF(_Listing):
    """Jump to b if a is zero."""
    opcode: ClassVar[int] = OP_JF
    a: Operand
    b: Operand

@dataclass(frozen=True)
class ADD(_Listing):
    """a := (b + c) mod 2^15"""
    opcode: ClassVar[int] = OP_ADD
    a: Operand
    b: Operand
    c: Operand

@dataclass(frozen=True)
class MULT(_Listing):
    """a := (b * c) mod 2^15"""
    opcode: ClassVar[int] = OP_MULT
    a: Operand
    b: Operand
    c: Operand

@dataclass(frozen=True)
class MOD(_Listing):
    """a := b mod c"""
    opcode: ClassVar[int] = OP_MOD
    a: Operand
    b: Operand
    c: Operand

@dataclass(frozen=True)
class AND(_Listing):
    """a := b & c"""
    opcode: ClassVar[int] = OP_AND
    a: Operand
    b: Operand
    c: Operand

@dataclass(frozen=True)
class OR(_Listing):
    """a := b | c"""
    opcode: ClassVar[int] = OP_OR
    a: Operand
    b: Operand
    c: Operand

@dataclass(frozen=True)
class NOT(_Listing):
    """a := 15-bit complement of b"""
    opcode: ClassVar[int] = OP_NOT
    a: Operand
    b: Operand

@dataclass(frozen=True)
class RMEM(_Listing):
    """a := memory[b]"""
    opcode: ClassVar[int] = OP_RMEM
    a: Operand
    b: Operand

@dataclass(frozen=True)
class WMEM(_Listing):
    """memory[a] := b"""
    opcode: ClassVar[int] = OP_WMEM
    a: Operand
    b: Operand

@dataclass(frozen=True)
class CALL(_Listing):
    """Push the address of the next instruction, then jump to a."""
    opcode: ClassVar[int] = OP_CALL
    a: Operand

@dataclass(frozen=True)
class RET(_Listing):
    """Pop the return address and jump to it; halt on an empty stack."""
    opcode: ClassVar[int] = OP_RET

@dataclass(frozen=True)
class OUT(_Listing):
    """Write the low byte of a to the output channel."""
    opcode: ClassVar[int] = OP_OUT
    a: Operand

@dataclass(frozen=True)
class IN(_Listing):
    """Read one byte from the input channel into a."""
    opcode: ClassVar[int] = OP_IN
    a: Operand

@dataclass(frozen=True)
class NOOP(_Listing):
    """Do nothing."""
    opcode: ClassVar[int] = OP_NOOP


Instruction = Union[
    HALT, SET, PUSH, POP, EQ, GT, JMP, JT, JF, ADD, MULT,
    MOD, AND, OR, NOT, RMEM, WMEM, CALL, RET, OUT, IN, NOOP,
]

OPCODES: Dict[int, Type] = {
    cls.opcode: cls
    for cls in (HALT, SET, PUSH, POP, EQ, GT, JMP, JT, JF, ADD, MULT,
                MOD, AND, OR, NOT, RMEM, WMEM, CALL, RET, OUT, IN, NOOP)
}


def arity(cls: Type) -> int:
    """Number of operand words following the opcode word."""
    return len(fields(cls))

# =============================================================================
# Decoding (words -> Instructions)
# =============================================================================

def decode_instruction(cursor: Cursor) -> Instruction:
    """
    Decode one instruction, leaving the cursor just past its last operand.

    Raises:
        InvalidOpcode: If the leading word is not an opcode; no operands are read
        InvalidOperand: If an operand word is out of range
        MemoryOutOfBounds: If decoding runs past the last address
    """
    opcode = cursor.advance()
    cls = OPCODES.get(opcode)
    if cls is None:
        raise InvalidOpcode(opcode)
    return cls(*decode_operands(cursor, arity(cls)))


def disassemble(mem: Memory, start: int = 0, count: int = 1) -> Iterator[Tuple[int, Instruction]]:
    """Yield ``(address, instruction)`` for ``count`` consecutive instructions."""
    cursor = mem.cursor(start)
    for _ in range(count):
        addr = cursor.addr
        yield addr, decode_instruction(cursor)

# =============================================================================
# Serialization (Instructions -> words)
# =============================================================================

def encode_instruction(instr: Instruction) -> List[int]:
    """
    Encode a single instruction as words.

    Format: [opcode] followed by one raw word per operand.
    """
    if type(instr) not in OPCODES.values():
        raise ValueError(f"Unknown instruction: {instr}")
    return [instr.opcode] + [getattr(instr, f.name).encode() for f in fields(instr)]


def encode_program(instructions: List[Instruction]) -> List[int]:
    """Encode a list of instructions into one word sequence."""
    return [word for instr in instructions for word in encode_instruction(instr)]


def words_to_bytes(words: List[int]) -> bytes:
    """Lay words out little-endian, the program image format."""
    return b''.join(word.to_bytes(2, 'little') for word in words)
