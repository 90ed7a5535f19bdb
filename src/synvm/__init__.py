"""synvm: a 15-bit register machine with a fixed 22-opcode instruction set."""

from .errors import (
    VMError, MemoryOutOfBounds, NoInstruction, InvalidOperand, InvalidOpcode,
    StackUnderflow, InvalidWrite, ModuloByZero, InputChannelClosed,
    InputError, LoadError,
)

from .memory import (
    MEMORY_SIZE, LAST_ADDRESS, NUM_REGISTERS, VALUE_MASK,
    Memory, Cursor,
)

from .isa import (
    # Operands
    Literal, Register, Operand,
    classify, decode_operand, decode_operands,
    # Instructions
    HALT, SET, PUSH, POP, EQ, GT, JMP, JT, JF, ADD, MULT, MOD, AND, OR,
    NOT, RMEM, WMEM, CALL, RET, OUT, IN, NOOP, Instruction, OPCODES,
    # Serialization
    decode_instruction, disassemble,
    encode_instruction, encode_program, words_to_bytes,
)

from .vm import VM

__version__ = "0.1.0"
