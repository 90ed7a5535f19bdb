"""The register machine: state, fetch-decode-execute loop, and opcode semantics."""

import logging
import sys
from typing import BinaryIO, Callable, List, Optional

from .errors import (
    InputChannelClosed, InputError, MemoryOutOfBounds, ModuloByZero,
    NoInstruction, StackUnderflow, VMError,
)
from .isa import (
    HALT, SET, PUSH, POP, EQ, GT, JMP, JT, JF, ADD, MULT, MOD, AND, OR,
    NOT, RMEM, WMEM, CALL, RET, OUT, IN, NOOP,
    Instruction, decode_instruction,
)
from .memory import MEMORY_SIZE, NUM_REGISTERS, VALUE_MASK, Memory

logger = logging.getLogger(__name__)

Tracer = Callable[[int, Instruction], None]


class VM:
    """
    Eight registers, an unbounded stack and an instruction pointer over Memory.

    Args:
        mem: Loaded program memory; owned by the VM from here on
        stdin: Binary channel IN reads from (default: process stdin)
        stdout: Binary channel OUT writes to (default: process stdout)
        trace: Called with (address, instruction) before each instruction executes
    """

    def __init__(
        self,
        mem: Memory,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        trace: Optional[Tracer] = None,
    ):
        self.mem = mem
        self.registers: List[int] = [0] * NUM_REGISTERS
        self.stack: List[int] = []
        self.ip = 0
        self.halted = False
        self._stdin = stdin
        self._stdout = stdout
        self.trace = trace

    @property
    def stdin(self) -> Optional[BinaryIO]:
        # Process streams are looked up on first use; a detached process has none.
        if self._stdin is None and sys.stdin is not None:
            self._stdin = sys.stdin.buffer
        return self._stdin

    @property
    def stdout(self) -> BinaryIO:
        if self._stdout is None:
            self._stdout = sys.stdout.buffer
        return self._stdout

    def fetch_decode(self) -> Instruction:
        """Decode the instruction at ip and move ip past it."""
        # A fresh cursor per fetch; ip stays a plain address between steps.
        cursor = self.mem.cursor(self.ip)
        try:
            instruction = decode_instruction(cursor)
        except MemoryOutOfBounds as e:
            if e.access != "read":
                raise
            raise NoInstruction(e.address, e.limit) from e
        self.ip = cursor.addr
        return instruction

    def step(self) -> None:
        if self.halted:
            return
        addr = self.ip
        try:
            instruction = self.fetch_decode()
            if self.trace is not None:
                self.trace(addr, instruction)
            self.execute(instruction)
        except VMError as e:
            if e.ip is None:
                e.ip = addr
            self.halted = True
            raise

    def run(self, max_steps: Optional[int] = None) -> int:
        """
        Step until halted, or until ``max_steps`` steps have run.

        Returns:
            Number of steps executed
        """
        steps = 0
        while not self.halted and (max_steps is None or steps < max_steps):
            self.step()
            steps += 1
        logger.debug("Stopped after %d steps at ip %#06x (halted=%s)", steps, self.ip, self.halted)
        return steps

    def execute(self, instruction: Instruction) -> None:
        match instruction:
            case HALT():
                self.halted = True

            case SET(a, b):
                a.set(self, b.get(self))

            case PUSH(a):
                self.stack.append(a.get(self))

            case POP(a):
                if not self.stack:
                    raise StackUnderflow()
                a.set(self, self.stack.pop())

            case EQ(a, b, c):
                a.set(self, 1 if b.get(self) == c.get(self) else 0)

            case GT(a, b, c):
                a.set(self, 1 if b.get(self) > c.get(self) else 0)

            case JMP(a):
                self.ip = a.get(self)

            case JT(a, b):
                if a.get(self) != 0:
                    self.ip = b.get(self)

            case JF(a, b):
                if a.get(self) == 0:
                    self.ip = b.get(self)

            case ADD(a, b, c):
                a.set(self, (b.get(self) + c.get(self)) % MEMORY_SIZE)

            case MULT(a, b, c):
                a.set(self, (b.get(self) * c.get(self)) % MEMORY_SIZE)

            case MOD(a, b, c):
                divisor = c.get(self)
                if divisor == 0:
                    raise ModuloByZero()
                a.set(self, b.get(self) % divisor)

            case AND(a, b, c):
                a.set(self, b.get(self) & c.get(self))

            case OR(a, b, c):
                a.set(self, b.get(self) | c.get(self))

            case NOT(a, b):
                a.set(self, ~b.get(self) & VALUE_MASK)

            case RMEM(a, b):
                a.set(self, self.mem.read(b.get(self)))

            case WMEM(a, b):
                self.mem.write(a.get(self), b.get(self))

            case CALL(a):
                # ip already points past this instruction.
                self.stack.append(self.ip)
                self.ip = a.get(self)

            case RET():
                if self.stack:
                    self.ip = self.stack.pop()
                else:
                    self.halted = True

            case OUT(a):
                self.stdout.write(bytes([a.get(self) & 0xFF]))
                flush = getattr(self.stdout, 'flush', None)
                if flush is not None:
                    flush()

            case IN(a):
                stdin = self.stdin
                if stdin is None:
                    raise InputChannelClosed()
                try:
                    data = stdin.read(1)
                except OSError as e:
                    raise InputError(str(e)) from e
                if not data:
                    raise InputChannelClosed()
                a.set(self, data[0])

            case NOOP():
                pass

            case _:
                raise TypeError(f"Unknown instruction type: {instruction!r}")
