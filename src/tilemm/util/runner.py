"""
Simulation runner for the complete accelerator.

simulate_matmul() places A and B in a SimulatedDRAM, runs AcceleratorTop
cycle-accurately with amaranth.sim against an AvalonMemoryModel, and reads
C back when the scheduler reports done (or error).

    >>> a = np.eye(16, dtype=np.int8)
    >>> result = simulate_matmul(a, a)          # doctest: +SKIP
    >>> result.ok, result.c.shape                # doctest: +SKIP
    (True, (16, 16))
"""

from dataclasses import dataclass, field

import numpy as np
from amaranth.sim import Simulator

from ..config import DEFAULT_CONFIG, AcceleratorConfig
from ..controller.scheduler import SchedulerError
from ..top import AcceleratorTop
from .dram import AvalonMemoryModel, MemTransaction, SimulatedDRAM
from .reference import accumulator_dtype, element_dtype


@dataclass
class MatmulResult:
    """Outcome of one simulated run."""

    c: np.ndarray
    cycles: int
    error: SchedulerError
    base_a: int
    base_b: int
    base_c: int
    dram: SimulatedDRAM
    transactions: list[MemTransaction] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error == SchedulerError.NONE

    @property
    def read_beats(self) -> int:
        return sum(t.burstcount for t in self.transactions if t.kind == "read")

    @property
    def write_beats(self) -> int:
        return sum(1 for t in self.transactions if t.kind == "write")


def _align(addr: int, alignment: int) -> int:
    return (addr + alignment - 1) // alignment * alignment


def cycle_budget(config: AcceleratorConfig, n: int) -> int:
    """Generous upper bound on the cycles a run of size n should take."""
    t = config.dim
    tiles = max(1, n // t)
    per_k = 4 * t * t + 8 * t + 64  # two tile loads, feed, settle
    per_tile = t * t + 8 * t * t + 64  # drain plus row-by-row writes
    return tiles**3 * per_k + tiles**2 * per_tile + 1000


def simulate_matmul(
    a: np.ndarray,
    b: np.ndarray,
    config: AcceleratorConfig = DEFAULT_CONFIG,
    *,
    base_a: int | None = None,
    base_b: int | None = None,
    base_c: int | None = None,
    lda: int = 0,
    ldb: int = 0,
    ldc: int = 0,
    latency: int = 2,
    stall_prob: float = 0.0,
    seed: int = 0,
    max_cycles: int | None = None,
    vcd_path: str | None = None,
) -> MatmulResult:
    """
    Run C = A × B on the simulated accelerator.

    Args:
        a, b: N×N input matrices (converted to the configured element dtype)
        config: Accelerator configuration
        base_a, base_b, base_c: Byte addresses (laid out back to back by default)
        lda, ldb, ldc: Leading dimensions in elements (0 = N)
        latency: Memory read latency in cycles
        stall_prob: Probability of waitrequest per cycle
        seed: Seed of the waitrequest generator
        max_cycles: Cycle budget (defaults to cycle_budget())
        vcd_path: Write a VCD trace here if given

    Returns:
        MatmulResult with C read back from simulated memory

    Raises:
        ValueError: if A and B are not square matrices of the same size
        TimeoutError: if neither done nor error is seen within the budget
    """
    if a.ndim != 2 or a.shape[0] != a.shape[1] or a.shape != b.shape:
        raise ValueError(f"expected two N×N matrices, got {a.shape} and {b.shape}")

    n = a.shape[0]
    edt = element_dtype(config)
    cdt = accumulator_dtype(config)
    eb = config.elem_bytes
    cb = config.acc_bytes
    beat = config.beat_bytes

    row_a = lda or n
    row_b = ldb or n
    row_c = ldc or n

    base_a = _align(0x1000, beat) if base_a is None else base_a
    base_b = _align(base_a + n * row_a * eb, beat) if base_b is None else base_b
    base_c = _align(base_b + n * row_b * eb, beat) if base_c is None else base_c
    top = base_c + n * row_c * cb
    size = _align(max(top, base_a, base_b) + beat, 4096)

    dram = SimulatedDRAM(size_bytes=size, buswidth=config.beat_bits)
    dram.store_matrix("A", base_a, a.astype(edt), ld=row_a)
    dram.store_matrix("B", base_b, b.astype(edt), ld=row_b)

    dut = AcceleratorTop(config)
    model = AvalonMemoryModel(dut, dram, latency=latency, stall_prob=stall_prob, seed=seed)
    budget = cycle_budget(config, n) if max_cycles is None else max_cycles
    status = {}

    async def testbench(ctx):
        ctx.set(dut.base_a, base_a)
        ctx.set(dut.base_b, base_b)
        ctx.set(dut.base_c, base_c)
        ctx.set(dut.n, n)
        ctx.set(dut.lda, lda)
        ctx.set(dut.ldb, ldb)
        ctx.set(dut.ldc, ldc)
        ctx.set(dut.start, 1)
        await model.step(ctx)
        ctx.set(dut.start, 0)

        for cycle in range(1, budget + 1):
            if ctx.get(dut.done) or ctx.get(dut.error):
                status["cycles"] = cycle
                status["error"] = SchedulerError(ctx.get(dut.error_code))
                return
            await model.step(ctx)

        raise TimeoutError(f"accelerator did not finish within {budget} cycles")

    sim = Simulator(dut)
    sim.add_clock(1e-6)
    sim.add_testbench(testbench)
    if vcd_path:
        with sim.write_vcd(vcd_path):
            sim.run()
    else:
        sim.run()

    c = dram.load_matrix(base_c, (n, n), cdt, ld=row_c)
    return MatmulResult(
        c=c,
        cycles=status["cycles"],
        error=status["error"],
        base_a=base_a,
        base_b=base_b,
        base_c=base_c,
        dram=dram,
        transactions=model.transactions,
    )
