"""
Simulated external memory for tilemm testbenches and examples.

This module provides:
- SimulatedDRAM: byte-addressed little-endian storage with matrix helpers
- AvalonMemoryModel: a cycle-stepped Avalon-MM slave that serves an
  amaranth.sim testbench from a SimulatedDRAM

The model is driven from a single async testbench, once per clock cycle:

    async def testbench(ctx):
        ...
        while not ctx.get(dut.done):
            await model.step(ctx)      # drive → sample → tick

Tests that need to observe the DUT inside a cycle call the three phases
themselves: model.drive(ctx), inspect/set signals, model.sample(ctx),
await ctx.tick().
"""

from collections import deque
from dataclasses import dataclass, field

import numpy as np


@dataclass
class MemoryRegion:
    """Describes a named region in DRAM."""

    name: str
    base_addr: int
    size_bytes: int
    element_bits: int = 8
    shape: tuple[int, ...] = ()


@dataclass
class SimulatedDRAM:
    """
    Byte-addressed external memory.

    Matrices are stored row-major and little-endian. A leading dimension
    larger than the row length leaves a gap between rows, as a strided
    sub-matrix would.

    Example:
        >>> dram = SimulatedDRAM(size_bytes=64 * 1024)
        >>> A = np.arange(16, dtype=np.int8).reshape(4, 4)
        >>> _ = dram.store_matrix("A", 0x100, A)
        >>> np.array_equal(dram.load_matrix(0x100, (4, 4), np.int8), A)
        True
    """

    size_bytes: int = 1024 * 1024
    buswidth: int = 128
    data: bytearray = field(default_factory=bytearray)
    regions: dict = field(default_factory=dict)

    def __post_init__(self):
        if len(self.data) == 0:
            self.data = bytearray(self.size_bytes)
        self.bytes_per_beat = self.buswidth // 8

    def _check_range(self, addr: int, size: int, what: str):
        if addr < 0 or addr + size > self.size_bytes:
            raise ValueError(
                f"{what} at 0x{addr:X} ({size} bytes) exceeds DRAM capacity {self.size_bytes}"
            )

    def store_matrix(
        self,
        name: str,
        base_addr: int,
        matrix: np.ndarray,
        ld: int | None = None,
    ) -> MemoryRegion:
        """
        Store a 2-D numpy matrix.

        Args:
            name: Identifier for the memory map
            base_addr: Byte address of element (0, 0)
            matrix: Array to store; its dtype sets the element size
            ld: Leading dimension in elements (defaults to the column count)

        Returns:
            MemoryRegion descriptor
        """
        rows, cols = matrix.shape
        ld = cols if ld is None else ld
        if ld < cols:
            raise ValueError(f"leading dimension {ld} is smaller than the row length {cols}")

        itemsize = matrix.dtype.itemsize
        pitch = ld * itemsize
        size = (rows - 1) * pitch + cols * itemsize if rows else 0
        self._check_range(base_addr, size, f"region '{name}'")

        little = matrix.astype(matrix.dtype.newbyteorder("<"), copy=False)
        for r in range(rows):
            start = base_addr + r * pitch
            row_bytes = little[r].tobytes()
            self.data[start : start + len(row_bytes)] = row_bytes

        region = MemoryRegion(
            name=name,
            base_addr=base_addr,
            size_bytes=size,
            element_bits=itemsize * 8,
            shape=matrix.shape,
        )
        self.regions[name] = region
        return region

    def load_matrix(
        self,
        base_addr: int,
        shape: tuple[int, int],
        dtype,
        ld: int | None = None,
    ) -> np.ndarray:
        """Load a 2-D matrix stored with store_matrix() layout."""
        rows, cols = shape
        ld = cols if ld is None else ld
        dt = np.dtype(dtype).newbyteorder("<")
        pitch = ld * dt.itemsize
        size = (rows - 1) * pitch + cols * dt.itemsize if rows else 0
        self._check_range(base_addr, size, "matrix")

        out = np.empty(shape, dtype=np.dtype(dtype))
        for r in range(rows):
            start = base_addr + r * pitch
            out[r] = np.frombuffer(self.data, dtype=dt, count=cols, offset=start)
        return out

    def read_beat(self, addr: int) -> int:
        """Read one bus beat starting at addr (bytes past the end read as 0)."""
        end = min(addr + self.bytes_per_beat, self.size_bytes)
        return int.from_bytes(self.data[addr:end], "little")

    def write_beat(self, addr: int, data: int, strb: int | None = None):
        """Write one bus beat with optional byte enables."""
        if strb is None:
            strb = (1 << self.bytes_per_beat) - 1
        for b in range(self.bytes_per_beat):
            if (strb >> b) & 1 and addr + b < self.size_bytes:
                self.data[addr + b] = (data >> (b * 8)) & 0xFF

    def dump_region(self, name: str, num_bytes: int = 64) -> str:
        """Hex dump of the start of a named region."""
        if name not in self.regions:
            return f"Region '{name}' not found"

        region = self.regions[name]
        addr = region.base_addr
        lines = [f"Region '{name}' at 0x{addr:08X} ({region.size_bytes} bytes):"]

        for offset in range(0, min(num_bytes, region.size_bytes), 16):
            chunk = self.data[addr + offset : addr + offset + min(16, region.size_bytes - offset)]
            lines.append(f"  0x{addr + offset:08X}: {chunk.hex(' ').upper()}")

        if region.size_bytes > num_bytes:
            lines.append(f"  ... ({region.size_bytes - num_bytes} more bytes)")

        return "\n".join(lines)

    def print_memory_map(self):
        """Print the current memory allocation map."""
        print("\nMemory Map:")
        print("-" * 60)
        for name, region in sorted(self.regions.items(), key=lambda x: x[1].base_addr):
            end_addr = region.base_addr + region.size_bytes - 1
            print(
                f"  {name:20s}: 0x{region.base_addr:08X} - 0x{end_addr:08X} "
                f"({region.size_bytes:6d} bytes) shape={region.shape}"
            )
        print("-" * 60)


# =============================================================================
# Avalon-MM Slave Model
# =============================================================================


@dataclass
class MemTransaction:
    """One request accepted by the memory model."""

    cycle: int
    kind: str  # "read" or "write"
    address: int
    burstcount: int = 1
    data: int = 0
    byteenable: int = 0


class AvalonMemoryModel:
    """
    Cycle-stepped Avalon-MM slave for amaranth.sim testbenches.

    Reads are answered in order, one beat per cycle, starting `latency`
    cycles after the request is accepted. Writes are committed in the cycle
    they are accepted. With stall_prob > 0, waitrequest is raised at random
    (numpy Generator seeded with `seed`).

    Only one read burst may be outstanding; a second read accepted while
    beats are still pending raises RuntimeError.

    Args:
        dut: Component exposing the mem_* master ports (the read side or
            the write side may be absent, for write-only or read-only masters)
        dram: Backing SimulatedDRAM
        latency: Cycles from request acceptance to the first beat (>= 1)
        stall_prob: Probability of waitrequest in any cycle
        seed: Seed of the stall generator
    """

    def __init__(
        self,
        dut,
        dram: SimulatedDRAM,
        *,
        latency: int = 2,
        stall_prob: float = 0.0,
        seed: int = 0,
    ):
        if latency < 1:
            raise ValueError("read latency must be at least one cycle")
        if not 0.0 <= stall_prob < 1.0:
            raise ValueError("stall_prob must be in [0, 1)")

        self.dut = dut
        self.dram = dram
        self.latency = latency
        self.stall_prob = stall_prob
        self.rng = np.random.default_rng(seed)

        self.cycle = 0
        self.transactions: list[MemTransaction] = []
        self._pending = deque()  # (ready_cycle, address)
        self._waitrequest = False

    def _port(self, name):
        return getattr(self.dut, f"mem_{name}", None)

    @property
    def reads(self) -> list[MemTransaction]:
        return [t for t in self.transactions if t.kind == "read"]

    @property
    def writes(self) -> list[MemTransaction]:
        return [t for t in self.transactions if t.kind == "write"]

    @property
    def outstanding(self) -> int:
        """Read beats requested but not yet returned."""
        return len(self._pending)

    def drive(self, ctx):
        """Present this cycle's waitrequest and read data."""
        self._waitrequest = self.stall_prob > 0 and self.rng.random() < self.stall_prob
        ctx.set(self.dut.mem_waitrequest, int(self._waitrequest))

        if self._port("readdata") is None:
            return
        if self._pending and self._pending[0][0] <= self.cycle:
            _, addr = self._pending.popleft()
            ctx.set(self.dut.mem_readdata, self.dram.read_beat(addr))
            ctx.set(self.dut.mem_readdatavalid, 1)
        else:
            ctx.set(self.dut.mem_readdata, 0)
            ctx.set(self.dut.mem_readdatavalid, 0)

    def sample(self, ctx):
        """Accept this cycle's request (if any) and advance the cycle count."""
        if not self._waitrequest:
            if self._port("read") is not None and ctx.get(self.dut.mem_read):
                self._accept_read(ctx)
            elif self._port("write") is not None and ctx.get(self.dut.mem_write):
                self._accept_write(ctx)
        self.cycle += 1

    async def step(self, ctx):
        """Run one full clock cycle: drive, sample, tick."""
        self.drive(ctx)
        self.sample(ctx)
        await ctx.tick()

    def _accept_read(self, ctx):
        if self._pending:
            raise RuntimeError(
                f"cycle {self.cycle}: read accepted with {len(self._pending)} beats outstanding"
            )

        addr = ctx.get(self.dut.mem_address)
        burst = max(1, ctx.get(self.dut.mem_burstcount))
        beat = self.dram.bytes_per_beat
        first = self.cycle + self.latency
        for i in range(burst):
            self._pending.append((first + i, addr + i * beat))

        self.transactions.append(MemTransaction(self.cycle, "read", addr, burstcount=burst))

    def _accept_write(self, ctx):
        addr = ctx.get(self.dut.mem_address)
        data = ctx.get(self.dut.mem_writedata)
        strb = ctx.get(self.dut.mem_byteenable)
        self.dram.write_beat(addr, data, strb)
        self.transactions.append(
            MemTransaction(self.cycle, "write", addr, data=data, byteenable=strb)
        )
