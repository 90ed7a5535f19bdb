"""Bounded 15-bit address space and the cursor used to decode from it."""

from array import array
import logging
from pathlib import Path
from typing import BinaryIO, Iterable, Union

from .errors import LoadError, MemoryOutOfBounds

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

MEMORY_SIZE = 1 << 15
LAST_ADDRESS = MEMORY_SIZE - 1
NUM_REGISTERS = 8
VALUE_MASK = 0x7FFF
WORD_MASK = 0xFFFF


# =============================================================================
# Memory
# =============================================================================

class Memory:
    """Exactly MEMORY_SIZE 16-bit cells, zero-initialised."""

    def __init__(self):
        self._cells = array('H', bytes(2 * MEMORY_SIZE))

    def read(self, addr: int) -> int:
        if not 0 <= addr <= LAST_ADDRESS:
            raise MemoryOutOfBounds("read", addr, LAST_ADDRESS)
        return self._cells[addr]

    def write(self, addr: int, value: int) -> None:
        if not 0 <= addr <= LAST_ADDRESS:
            raise MemoryOutOfBounds("write", addr, LAST_ADDRESS)
        if not 0 <= value <= WORD_MASK:
            raise ValueError(f"Memory word must be 0-0xFFFF, got {value}")
        self._cells[addr] = value

    __getitem__ = read
    __setitem__ = write

    def __len__(self) -> int:
        return MEMORY_SIZE

    def cursor(self, addr: int) -> 'Cursor':
        return Cursor(self, addr)

    @classmethod
    def from_words(cls, words: Iterable[int]) -> 'Memory':
        """Build memory holding ``words`` from address 0 upwards."""
        mem = cls()
        for addr, word in enumerate(words):
            mem.write(addr, word)
        return mem

    @classmethod
    def load(cls, source: Union[bytes, bytearray, memoryview, BinaryIO]) -> 'Memory':
        """
        Load a program image of little-endian 16-bit words.

        Args:
            source: Raw image bytes, or a binary file-like object to read them from

        Returns:
            Memory with the image placed at address 0

        Raises:
            LoadError: If reading the source fails
            MemoryOutOfBounds: If the image is larger than the address space

        A trailing byte without a partner is dropped.
        """
        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
        else:
            try:
                data = source.read()
            except OSError as e:
                raise LoadError(str(e)) from e

        mem = cls()
        for addr in range(len(data) // 2):
            mem.write(addr, data[2 * addr + 1] << 8 | data[2 * addr])

        if len(data) % 2:
            logger.debug("Dropping unpaired trailing byte %#04x", data[-1])
        logger.debug("Loaded %d words", len(data) // 2)
        return mem

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> 'Memory':
        logger.info("Loading image %s", path)
        try:
            with open(path, 'rb') as f:
                return cls.load(f)
        except OSError as e:
            raise LoadError(f"{path}: {e.strerror or e}") from e


# =============================================================================
# Cursor
# =============================================================================

class Cursor:
    """
    Sequential view into Memory used while decoding one instruction.

    Iterating a cursor never ends on its own; stepping past the last
    address makes the next read fail with MemoryOutOfBounds.
    """

    def __init__(self, mem: Memory, addr: int):
        self.mem = mem
        self.addr = addr

    def peek(self) -> int:
        return self.mem.read(self.addr)

    def advance(self) -> int:
        value = self.peek()
        self.addr += 1
        return value

    def jump(self, addr: int) -> None:
        self.addr = addr

    def __iadd__(self, offset: int) -> 'Cursor':
        self.addr += offset
        return self

    def __iter__(self) -> 'Cursor':
        return self

    def __next__(self) -> int:
        return self.advance()

    def __repr__(self) -> str:
        return f"Cursor(addr={self.addr:#06x})"
