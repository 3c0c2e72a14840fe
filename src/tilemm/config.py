"""
tilemm Configuration Module

This module defines the configuration dataclass for the tiled systolic
matrix-multiply accelerator. All hardware parameters are specified here and
propagate through the design.

The accelerator computes C = A × B for N×N matrices that are much larger than
the T×T processing-element mesh. A and B hold narrow elements (elem_bits),
C holds full accumulators (acc_bits). All three live in byte-addressed
external memory reached through a single beat_bits-wide channel.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum

from amaranth import signed, unsigned


class ReadDuringWrite(Enum):
    """
    Read-during-write policy of a memory bank port.

    Selected once per bank at construction time:
    - WRITE_FIRST: a same-port read of the address being written returns the new data
    - READ_FIRST: the read returns the data stored before the write
    - NO_CHANGE: the read output holds its previous value on a write cycle
    """

    WRITE_FIRST = "write_first"
    READ_FIRST = "read_first"
    NO_CHANGE = "no_change"


class BitOrder(Enum):
    """Placement of element slot 0 inside a bus beat."""

    LSB_FIRST = "lsb_first"  # slot 0 in bits [0, W)
    MSB_FIRST = "msb_first"  # slot 0 in the top W bits


class Layout(IntEnum):
    """
    Bank mapping used by the TileLoader.

    ROW_MAJOR ("A-like"): element (row, col) goes to bank row, K index = col
    COL_MAJOR ("B-like"): element (row, col) goes to bank col, K index = row
    """

    ROW_MAJOR = 0
    COL_MAJOR = 1


def _is_pow2(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


@dataclass
class AcceleratorConfig:
    """
    Configuration for the tiled systolic matmul accelerator.

    Example:
        >>> config = AcceleratorConfig(dim=16, elem_bits=8, acc_bits=32)
        >>> config.elems_per_beat  # 16 int8 elements per 128-bit beat
        16
        >>> config.feed_cycles  # skewed wavefront length
        31

    Raises:
        ValueError: if the geometry or width ratios cannot be built
    """

    # =========================================================================
    # Array Geometry
    # =========================================================================
    dim: int = 16
    """Side length T of the PE mesh; also the tile size. Power of two, >= 2."""

    # =========================================================================
    # Data Types (bit widths)
    # =========================================================================
    elem_bits: int = 8
    """Bit width W of A/B elements (whole bytes)."""

    acc_bits: int = 32
    """Bit width of each PE accumulator and of the C elements; >= 2 * elem_bits."""

    signed: bool = True
    """Treat elements as two's complement (sign-extend products) or unsigned."""

    # =========================================================================
    # External Memory Channel
    # =========================================================================
    beat_bits: int = 128
    """Width of one external-memory beat in bits."""

    addr_bits: int = 32
    """Byte address width of the external-memory channel."""

    max_burst: int = 16
    """Maximum beats per read burst (burstcount is clamped to this)."""

    size_bits: int = 16
    """Width of the matrix dimension and leading-dimension registers."""

    # =========================================================================
    # Stream Buffering
    # =========================================================================
    queue_depth: int = 16
    """Depth of the elastic queue between the drainer and the packer."""

    bit_order: BitOrder = BitOrder.LSB_FIRST
    """Slot placement inside a beat, used by both loader and packer."""

    # =========================================================================
    # Bank Policy
    # =========================================================================
    read_during_write: ReadDuringWrite = ReadDuringWrite.READ_FIRST
    """Read-during-write policy of the A/B/C bank ports."""

    result_read_latency: int = 2
    """Read latency of the result (C) banks: memory read plus output register."""

    # =========================================================================
    # Computed Properties
    # =========================================================================
    @property
    def elem_shape(self):
        """Amaranth shape of an A/B element."""
        return signed(self.elem_bits) if self.signed else unsigned(self.elem_bits)

    @property
    def elem_bytes(self) -> int:
        return self.elem_bits // 8

    @property
    def acc_bytes(self) -> int:
        return self.acc_bits // 8

    @property
    def beat_bytes(self) -> int:
        return self.beat_bits // 8

    @property
    def elems_per_beat(self) -> int:
        """A/B elements carried by one beat."""
        return self.beat_bits // self.elem_bits

    @property
    def accs_per_beat(self) -> int:
        """C accumulators carried by one beat."""
        return self.beat_bits // self.acc_bits

    @property
    def dim_shift(self) -> int:
        """log2(dim), used to multiply and divide by the tile size."""
        return (self.dim - 1).bit_length()

    @property
    def bank_depth(self) -> int:
        """Entries per A/B bank: one tile column (or row) per bankset."""
        return 2 * self.dim

    @property
    def bank_addr_bits(self) -> int:
        return (self.bank_depth - 1).bit_length()

    @property
    def burst_bits(self) -> int:
        """Width of the burstcount field."""
        return self.max_burst.bit_length()

    @property
    def feed_cycles(self) -> int:
        """Cycles to inject one K-tile as a skewed wavefront."""
        return 2 * self.dim - 1

    @property
    def settle_cycles(self) -> int:
        """Cycles after the feed until the last operands have crossed the mesh."""
        return self.dim

    @property
    def drain_cycles(self) -> int:
        """Cycles for the drain token to visit every cell."""
        return self.dim * self.dim

    @property
    def drain_timeout(self) -> int:
        """Cycle budget for all accumulator-valid flags after token injection."""
        return self.dim * self.dim + self.dim

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.dim < 2 or not _is_pow2(self.dim):
            raise ValueError(f"dim must be a power of two >= 2, got {self.dim}")
        if self.elem_bits <= 0 or self.elem_bits % 8:
            raise ValueError(f"elem_bits must be a positive multiple of 8, got {self.elem_bits}")
        if self.acc_bits < 2 * self.elem_bits:
            raise ValueError(
                f"acc_bits ({self.acc_bits}) must be at least 2 * elem_bits ({2 * self.elem_bits})"
            )
        if self.acc_bits % 8:
            raise ValueError(f"acc_bits must be a multiple of 8, got {self.acc_bits}")
        if self.beat_bits < 8 or not _is_pow2(self.beat_bits):
            raise ValueError(f"beat_bits must be a power of two >= 8, got {self.beat_bits}")
        if self.beat_bits % self.elem_bits or not _is_pow2(self.beat_bits // self.elem_bits):
            raise ValueError(
                f"beat_bits ({self.beat_bits}) must hold a power-of-two number of "
                f"{self.elem_bits}-bit elements"
            )
        if self.beat_bits % self.acc_bits or not _is_pow2(self.beat_bits // self.acc_bits):
            raise ValueError(
                f"beat_bits ({self.beat_bits}) must hold a power-of-two number of "
                f"{self.acc_bits}-bit accumulators"
            )
        if (self.dim * self.acc_bits) % self.beat_bits:
            raise ValueError("a result row (dim * acc_bits) must fill a whole number of beats")
        if self.max_burst < 1:
            raise ValueError("max_burst must be positive")
        if not _is_pow2(self.queue_depth):
            raise ValueError(f"queue_depth must be a power of two, got {self.queue_depth}")
        if self.result_read_latency not in (1, 2):
            raise ValueError("result_read_latency must be 1 or 2")
        if (1 << self.size_bits) <= self.dim:
            raise ValueError("size_bits too narrow to hold one tile")
        if (1 << self.addr_bits) <= self.beat_bytes:
            raise ValueError("addr_bits too narrow for one beat")


# Pre-defined configurations
DEFAULT_CONFIG = AcceleratorConfig()
"""Default configuration: 16x16 int8 mesh, 32-bit accumulators, 128-bit bus."""

SMALL_CONFIG = AcceleratorConfig(dim=4, max_burst=4, queue_depth=4)
"""Small configuration for fast simulation."""
