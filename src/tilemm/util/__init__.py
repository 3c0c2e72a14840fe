"""Simulation support: external memory models, golden models and the run harness."""

from .dram import AvalonMemoryModel, MemoryRegion, MemTransaction, SimulatedDRAM
from .reference import (
    accumulator_dtype,
    element_dtype,
    pack_elements,
    reference_matmul,
    to_signed,
    unpack_beat,
)
from .runner import MatmulResult, cycle_budget, simulate_matmul

__all__ = [
    # External memory
    "SimulatedDRAM",
    "MemoryRegion",
    "AvalonMemoryModel",
    "MemTransaction",
    # Golden models
    "reference_matmul",
    "element_dtype",
    "accumulator_dtype",
    "pack_elements",
    "unpack_beat",
    "to_signed",
    # Run harness
    "simulate_matmul",
    "cycle_budget",
    "MatmulResult",
]
