"""Fatal fault types raised by the synvm core.

Every fault aborts execution. The VM stamps the instruction pointer onto a
fault as it leaves ``step()``, so the diagnostic names where it happened.
"""

from typing import Optional


class VMError(Exception):
    """Base exception for all synvm faults."""

    def __init__(self, message: str, ip: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.ip = ip

    def __str__(self) -> str:
        if self.ip is None:
            return self.message
        return f"{self.message} at ip {self.ip:#06x}"


class MemoryOutOfBounds(VMError):
    """Raised when a read or write targets an address past the last cell."""

    def __init__(self, access: str, address: int, limit: int):
        super().__init__(
            f"{access.capitalize()} memory access out of bounds! ({address:#06x} > {limit:#06x})"
        )
        self.access = access
        self.address = address
        self.limit = limit


class NoInstruction(MemoryOutOfBounds):
    """Raised when instruction fetch runs off the end of the address space."""

    def __init__(self, address: int, limit: int):
        super().__init__("read", address, limit)
        self.message = f"No instruction to execute ({address:#06x} > {limit:#06x})"


class InvalidOperand(VMError):
    """Raised when a raw word is neither a literal nor a register."""

    def __init__(self, value: int):
        super().__init__(f"Invalid operand {value:#06x}")
        self.value = value


class InvalidOpcode(VMError):
    """Raised when the leading word of an instruction is not a known opcode."""

    def __init__(self, opcode: int):
        super().__init__(f"Invalid instruction {opcode:#06x}")
        self.opcode = opcode


class StackUnderflow(VMError):
    """Raised when POP finds the stack empty."""

    def __init__(self):
        super().__init__("Stack underflow")


class InvalidWrite(VMError):
    """Raised when an instruction tries to store into a literal operand."""

    def __init__(self, operand):
        super().__init__(f"Invalid write to literal operand {operand}")
        self.operand = operand


class ModuloByZero(VMError):
    """Raised when MOD is asked to divide by zero."""

    def __init__(self):
        super().__init__("Modulo by zero")


class InputChannelClosed(VMError):
    """Raised when IN reaches the end of the input channel."""

    def __init__(self):
        super().__init__("Input channel closed")


class InputError(VMError):
    """Raised when reading the input channel fails."""

    def __init__(self, reason: str):
        super().__init__(f"Error reading input: {reason}")


class LoadError(VMError):
    """Raised when a program image cannot be read."""

    def __init__(self, reason: str):
        super().__init__(f"Error loading memory: {reason}")
