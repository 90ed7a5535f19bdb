"""
Robustness fuzzer for synvm.

Generates random programs, runs each in a sandboxed VM with in-memory
input and output and a step budget, and classifies how it ended:
- Halted: HALT or RET on an empty stack
- Faulted: a VMError, the expected way for a bad program to stop
- Timeout: the step budget ran out
- Crash: any other exception escaped the VM, which is a bug

The fuzzer is the embedding boundary where fatal faults are observed
without ending the host process.
"""

from dataclasses import dataclass, field
from enum import Enum
import io
import logging
import random
from typing import Callable, List, Optional

from synvm.errors import VMError
from synvm.isa import (
    OPCODES, OP_NOOP, REGISTER_BASE, Literal, Register, Operand, Instruction,
    arity, encode_program, disassemble,
)
from synvm.memory import LAST_ADDRESS, Memory, NUM_REGISTERS
from synvm.vm import VM

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration Constants
# =============================================================================

# Structure-aware generation probabilities
PROB_VALID_INSTRUCTION = 0.94
PROB_INVALID_OPCODE = 0.03
PROB_INVALID_OPERAND = 0.03

PROB_REGISTER_OPERAND = 0.5

# Mixed strategy probabilities
PROB_RANDOM_STRATEGY = 0.3
PROB_STRUCTURED_STRATEGY = 0.7


@dataclass
class GeneratorConfig:
    """Configuration for program generators and the sandbox."""
    max_length: int = 20              # For random generator
    max_instructions: int = 10        # For structured generator
    max_steps: int = 1000             # Step budget per program
    input_data: bytes = b"fuzz\n"     # Fed to IN


DEFAULT_CONFIG = GeneratorConfig()


# =============================================================================
# Instruction Selection
# =============================================================================

class InstructionChoice(Enum):
    """Enum for instruction kinds in structure-aware generation."""
    VALID = "valid"
    INVALID_OPCODE = "invalid_opcode"
    INVALID_OPERAND = "invalid_operand"


def choose_instruction() -> InstructionChoice:
    """Choose instruction kind based on configured probabilities."""
    weights = [
        (InstructionChoice.VALID, int(PROB_VALID_INSTRUCTION * 100)),
        (InstructionChoice.INVALID_OPCODE, int(PROB_INVALID_OPCODE * 100)),
        (InstructionChoice.INVALID_OPERAND, int(PROB_INVALID_OPERAND * 100)),
    ]
    choices, probs = zip(*weights)
    return random.choices(choices, weights=probs)[0]


def random_operand(program_length: int) -> Operand:
    """Pick a register, or a literal that is often a jump target inside the program."""
    if random.random() < PROB_REGISTER_OPERAND:
        return Register(random.randrange(NUM_REGISTERS))
    if random.random() < 0.5:
        return Literal(random.randrange(max(program_length, 1)))
    return Literal(random.randint(0, LAST_ADDRESS))


def random_instruction(program_length: int) -> Instruction:
    cls = random.choice(list(OPCODES.values()))
    return cls(*(random_operand(program_length) for _ in range(arity(cls))))


# =============================================================================
# Program Generators
# =============================================================================

def generate_random_words(max_length: int = DEFAULT_CONFIG.max_length) -> List[int]:
    """Generate completely random words - no structure consideration."""
    length = random.randint(1, max_length)
    return [random.randint(0, 0xFFFF) for _ in range(length)]


def generate_structure_aware_program(max_instructions: int = DEFAULT_CONFIG.max_instructions) -> List[int]:
    """
    Generate a structure-aware program with optional corruption.

    Produces well-formed instructions with random operands, but with some
    probability emits an unknown opcode or an out-of-range operand word
    to exercise fault handling.

    Args:
        max_instructions: Maximum number of instructions to generate

    Returns:
        Program words that may or may not decode cleanly
    """
    words: List[int] = []
    num_instructions = random.randint(1, max_instructions)
    # Rough size so jump targets tend to land inside the program.
    length_hint = num_instructions * 3

    for _ in range(num_instructions):
        choice = choose_instruction()

        if choice == InstructionChoice.VALID:
            words.extend(encode_program([random_instruction(length_hint)]))

        elif choice == InstructionChoice.INVALID_OPCODE:
            words.append(random.randint(OP_NOOP + 1, 0xFFFF))
            break  # Stop after invalid opcode

        elif choice == InstructionChoice.INVALID_OPERAND:
            cls = random.choice([cls for cls in OPCODES.values() if arity(cls) > 0])
            operands = [op.encode() for op in
                        (random_operand(length_hint) for _ in range(arity(cls)))]
            operands[random.randrange(len(operands))] = random.randint(
                REGISTER_BASE + NUM_REGISTERS, 0xFFFF)
            words.extend([cls.opcode] + operands)
            break  # Stop after invalid operand

    return words


def generate_mixed_strategy_program(
    max_instructions: int = DEFAULT_CONFIG.max_instructions,
    max_length: int = DEFAULT_CONFIG.max_length,
) -> List[int]:
    """Randomly pick between unstructured and structure-aware generation."""
    if random.random() < PROB_RANDOM_STRATEGY:
        return generate_random_words(max_length=max_length)
    return generate_structure_aware_program(max_instructions=max_instructions)


# Generator registry for dispatch; each entry sizes its programs from the config
GENERATORS: dict[str, Callable[[GeneratorConfig], List[int]]] = {
    "random": lambda config: generate_random_words(max_length=config.max_length),
    "structured": lambda config: generate_structure_aware_program(
        max_instructions=config.max_instructions),
    "mixed": lambda config: generate_mixed_strategy_program(
        max_instructions=config.max_instructions, max_length=config.max_length),
}


# =============================================================================
# Execution Results
# =============================================================================

@dataclass(frozen=True)
class ExecutionResult:
    """Base class for execution results - used as a union type."""


@dataclass(frozen=True)
class Halted(ExecutionResult):
    output: bytes
    registers: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class Faulted(ExecutionResult):
    reason: str


@dataclass(frozen=True)
class Timeout(ExecutionResult):
    steps: int


@dataclass(frozen=True)
class Crash(ExecutionResult):
    reason: str


def execute_sandboxed(words: List[int], config: GeneratorConfig = DEFAULT_CONFIG) -> ExecutionResult:
    """Run a program with in-memory channels and a step budget and classify the outcome."""
    stdout = io.BytesIO()
    try:
        vm = VM(Memory.from_words(words), stdin=io.BytesIO(config.input_data), stdout=stdout)
        steps = vm.run(max_steps=config.max_steps)
    except VMError as e:
        return Faulted(str(e))
    except Exception as e:
        return Crash(f"VM raised exception: {e!r}")
    if not vm.halted:
        return Timeout(steps)
    return Halted(stdout.getvalue(), list(vm.registers))


# =============================================================================
# Statistics Tracking
# =============================================================================

@dataclass
class FuzzingStatistics:
    """Tracks fuzzing run statistics."""
    total_tests: int = 0
    halted: int = 0
    faults: int = 0
    timeouts: int = 0
    crashes: int = 0

    @property
    def crash_rate(self) -> float:
        return (self.crashes / self.total_tests * 100) if self.total_tests > 0 else 0.0

    def record_test(self, result: ExecutionResult) -> None:
        """Record the result of a single test."""
        self.total_tests += 1

        if isinstance(result, Halted):
            self.halted += 1
        elif isinstance(result, Faulted):
            self.faults += 1
        elif isinstance(result, Timeout):
            self.timeouts += 1
        elif isinstance(result, Crash):
            self.crashes += 1

    def print_summary(self) -> None:
        """Print formatted summary of results."""
        print("\n" + "=" * 60)
        print("Fuzzer Summary")
        print("-" * 40)
        print(f"Total tests run:           {self.total_tests}")
        print(f"Halted cleanly:            {self.halted}")
        print(f"Faulted:                   {self.faults}")
        print(f"Step budget exhausted:     {self.timeouts}")
        print(f"Crashes:                   {self.crashes}")

        if self.crashes > 0:
            print(f"Crash rate:             {self.crash_rate:.1f}%")
        else:
            print("\nNo crashes detected!")


# =============================================================================
# Bug Reporting
# =============================================================================

def report_crash(test_num: int, words: List[int], result: ExecutionResult) -> None:
    """Print detailed crash report."""
    print(f"\nTest {test_num}: Crash")
    print(f"  Words: {' '.join(f'{w:04x}' for w in words)}")
    try:
        for addr, instr in disassemble(Memory.from_words(words), 0, len(words)):
            if addr >= len(words):
                break
            print(f"    {addr:#06x} {instr}")
    except VMError:
        pass
    print(f"  Result: {result}")


def print_header(num_tests: int, generator: str) -> None:
    """Print fuzzer run header."""
    print(f"synvm Fuzzer - Running {num_tests} tests")
    print(f"Generator: {generator}")
    print("=" * 60)


# =============================================================================
# Fuzzer Main Logic
# =============================================================================

def run_fuzzer(
    num_tests: int = 1000,
    seed: Optional[int] = None,
    generator: str = "mixed",
    config: GeneratorConfig = DEFAULT_CONFIG,
) -> FuzzingStatistics:
    """
    Run the fuzzer for a specified number of tests.

    Args:
        num_tests: Number of random programs to generate
        seed: Random seed for reproducibility
        generator: Generator type: "random", "structured", or "mixed"
        config: Sandbox settings (step budget, input bytes)

    Returns:
        FuzzingStatistics object with results
    """
    if seed is not None:
        random.seed(seed)

    if generator not in GENERATORS:
        raise ValueError(f"Unknown generator: {generator}. Available: {', '.join(GENERATORS)}")
    generator_func = GENERATORS[generator]

    stats = FuzzingStatistics()
    print_header(num_tests, generator)

    for i in range(num_tests):
        words = generator_func(config)
        result = execute_sandboxed(words, config)
        stats.record_test(result)
        logger.debug("Test %d: %s", i + 1, result)

        if isinstance(result, Crash):
            report_crash(i + 1, words, result)

    stats.print_summary()
    return stats
