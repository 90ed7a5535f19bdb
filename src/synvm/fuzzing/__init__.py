"""Fuzzing framework for synvm."""

from .fuzzer import (
    ExecutionResult, Halted, Faulted, Timeout, Crash,
    GeneratorConfig, FuzzingStatistics,
    execute_sandboxed,
    run_fuzzer,
)

from .enumeration import (
    BOUNDARY_CONSTANTS, MINIMAL_CONSTANTS,
    enumerate_binary_op_tests,
    enumerate_not_tests,
    enumerate_output_tests,
    enumerate_fault_tests,
    generate_comprehensive_suite,
)
