"""Command-line entry point: run an image, list it, or fuzz the VM."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .errors import InvalidOpcode, InvalidOperand, VMError
from .isa import Instruction, decode_instruction
from .memory import LAST_ADDRESS, Memory
from .vm import VM

logger = logging.getLogger(__name__)
trace_logger = logging.getLogger("synvm.trace")

DEFAULT_IMAGE = os.path.join("challenge", "challenge.bin")
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def log_instruction(addr: int, instruction: Instruction) -> None:
    trace_logger.debug("%#06x %s", addr, instruction)


def resolve_log_level(level: Optional[str]) -> str:
    """Pick the level from the flag, then $SYNVM_LOG, then WARNING."""
    name = (level or os.environ.get("SYNVM_LOG") or "WARNING").upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ValueError(f"unknown log level: {name}")
    return name


def configure_logging(level: Optional[str]) -> None:
    logging.basicConfig(
        level=resolve_log_level(level),
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def cmd_run(args: argparse.Namespace) -> int:
    mem = Memory.load_file(args.image)
    vm = VM(mem, trace=log_instruction if args.trace else None)
    steps = vm.run()
    logger.info("Halted after %d steps", steps)
    return 0


def cmd_disasm(args: argparse.Namespace) -> int:
    mem = Memory.load_file(args.image)
    cursor = mem.cursor(args.start)
    for _ in range(args.count):
        addr = cursor.addr
        if addr > LAST_ADDRESS:
            break
        try:
            instruction = decode_instruction(cursor)
        except (InvalidOpcode, InvalidOperand):
            # Data words are listed raw and skipped one at a time.
            cursor.jump(addr + 1)
            print(f"{addr:#06x}  .word {mem.read(addr):#06x}")
            continue
        print(f"{addr:#06x}  {instruction}")
    return 0


def cmd_fuzz(args: argparse.Namespace) -> int:
    from .fuzzing.fuzzer import GeneratorConfig, run_fuzzer

    config = GeneratorConfig(max_steps=args.max_steps)
    stats = run_fuzzer(
        num_tests=args.num_tests,
        seed=args.seed,
        generator=args.generator,
        config=config,
    )
    return 1 if stats.crashes else 0


def address(text: str) -> int:
    value = int(text, 0)
    if not 0 <= value <= LAST_ADDRESS:
        raise argparse.ArgumentTypeError(f"address must be 0-{LAST_ADDRESS:#06x}, got {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="synvm", description="15-bit register VM")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=LOG_LEVELS,
        help="Logging level (default: $SYNVM_LOG or WARNING)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a program image against stdin/stdout")
    run.add_argument(
        "image",
        nargs="?",
        default=os.environ.get("SYNVM_IMAGE", DEFAULT_IMAGE),
        help="Program image (default: $SYNVM_IMAGE or %(default)s)"
    )
    run.add_argument(
        "--trace",
        action="store_true",
        help="Log every instruction on the synvm.trace logger (needs --log-level DEBUG)"
    )
    run.set_defaults(func=cmd_run)

    disasm = sub.add_parser("disasm", help="Print an instruction listing")
    disasm.add_argument("image", help="Program image")
    disasm.add_argument("--start", type=address, default=0, help="First address (default: 0)")
    disasm.add_argument("--count", type=int, default=32, help="Instructions to list (default: 32)")
    disasm.set_defaults(func=cmd_disasm)

    fuzz = sub.add_parser("fuzz", help="Fuzz the VM with random programs")
    fuzz.add_argument(
        "-n", "--num-tests",
        type=int,
        default=1000,
        help="Number of random programs to run (default: 1000)"
    )
    fuzz.add_argument(
        "-s", "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility"
    )
    fuzz.add_argument(
        "-g", "--generator",
        type=str,
        default="mixed",
        choices=["random", "structured", "mixed"],
        help="Generator type (default: %(default)s)"
    )
    fuzz.add_argument(
        "--max-steps",
        type=int,
        default=1000,
        help="Step budget per program (default: %(default)s)"
    )
    fuzz.set_defaults(func=cmd_fuzz)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(args.log_level)
    except ValueError as e:
        parser.error(str(e))
    try:
        return args.func(args)
    except VMError as e:
        logger.debug("Fatal fault", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
