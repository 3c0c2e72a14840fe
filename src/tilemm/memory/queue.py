"""
ElasticQueue - first-word-fall-through FIFO between stream stages.

Decouples the ResultDrainer's production rate from the BeatPacker's
consumption rate. Each entry carries a data word and the end-of-tile flag.

    in_valid/in_data/in_last ──▶ [ SyncFIFO depth D ] ──▶ out_valid/out_data/out_last
    in_ready ◀── not full                                 out_ready
"""

from amaranth import Cat, Module, unsigned
from amaranth.lib.fifo import SyncFIFO
from amaranth.lib.wiring import Component, In, Out


class ElasticQueue(Component):
    """
    Strict FIFO stream buffer with valid/ready on both sides.

    Ports:
        in_valid, in_ready, in_data, in_last: Producer side
        out_valid, out_ready, out_data, out_last: Consumer side
        level: Number of stored entries
        full: No space left (in_ready low)
        empty: Nothing stored (out_valid low)

    Parameters:
        width: Data width in bits
        depth: Capacity in entries (power of two)
    """

    def __init__(self, width: int, depth: int):
        if depth <= 0 or depth & (depth - 1):
            raise ValueError(f"queue depth must be a power of two, got {depth}")

        self.width = width
        self.depth = depth

        super().__init__(
            {
                "in_valid": In(1),
                "in_ready": Out(1),
                "in_data": In(unsigned(width)),
                "in_last": In(1),
                "out_valid": Out(1),
                "out_ready": In(1),
                "out_data": Out(unsigned(width)),
                "out_last": Out(1),
                "level": Out(range(depth + 1)),
                "full": Out(1),
                "empty": Out(1),
            }
        )

    def elaborate(self, _platform):
        m = Module()

        m.submodules.fifo = fifo = SyncFIFO(width=self.width + 1, depth=self.depth)

        m.d.comb += [
            fifo.w_data.eq(Cat(self.in_data, self.in_last)),
            fifo.w_en.eq(self.in_valid),
            self.in_ready.eq(fifo.w_rdy),
            self.out_valid.eq(fifo.r_rdy),
            self.out_data.eq(fifo.r_data[: self.width]),
            self.out_last.eq(fifo.r_data[self.width]),
            fifo.r_en.eq(self.out_ready),
            self.level.eq(fifo.r_level),
            self.full.eq(~fifo.w_rdy),
            self.empty.eq(~fifo.r_rdy),
        ]

        return m
