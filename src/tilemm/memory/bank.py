"""
Memory Bank - dual-port synchronous storage for the on-chip A/B/C buffers.

Each bank has two independent ports (a and b). Either port can read and/or
write in any cycle; the two ports only interact through the stored contents.

Read-during-write behaviour is a static per-bank choice (ReadDuringWrite):

    WRITE_FIRST   same-port read of the written address returns the new data
    READ_FIRST    same-port read returns the old data
    NO_CHANGE     rdata holds its previous value during a write cycle

Read latency is one cycle. Banks on the result-store path add one output
register (output_reg=True) for a total latency of two cycles.

    a_en/a_addr/a_we/a_wdata ──┐             ┌── a_rdata (registered)
                               ├─[ Memory ]──┤
    b_en/b_addr/b_we/b_wdata ──┘             └── b_rdata (registered)
"""

from amaranth import Module, Mux, Signal, unsigned
from amaranth.lib.memory import Memory
from amaranth.lib.wiring import Component, In, Out

from ..config import ReadDuringWrite

PORTS = ("a", "b")


class MemoryBank(Component):
    """
    Dual-port memory bank with a configurable read-during-write policy.

    Ports (for each p in a, b):
        {p}_en: Port enable (read and/or write this cycle)
        {p}_addr: Word address
        {p}_we: Write enable (qualified by {p}_en)
        {p}_wdata: Write data
        {p}_wmask: Byte-level write mask (only when byte_mask=True)
        {p}_rdata: Read data, valid one cycle (two with output_reg) after {p}_en

    Parameters:
        width: Word width in bits
        depth: Number of words
        policy: ReadDuringWrite policy applied to both ports
        byte_mask: Enable byte-granular writes (width must be a multiple of 8)
        output_reg: Add an output register stage to the read path
    """

    def __init__(
        self,
        width: int,
        depth: int,
        *,
        policy: ReadDuringWrite = ReadDuringWrite.READ_FIRST,
        byte_mask: bool = False,
        output_reg: bool = False,
    ):
        if width <= 0 or depth <= 0:
            raise ValueError("bank width and depth must be positive")
        if byte_mask and width % 8:
            raise ValueError(f"byte-masked banks need a whole number of bytes, got {width} bits")

        self.width = width
        self.depth = depth
        self.policy = policy
        self.byte_mask = byte_mask
        self.output_reg = output_reg
        self.addr_bits = max(1, (depth - 1).bit_length())

        ports = {}
        for p in PORTS:
            ports[f"{p}_en"] = In(1)
            ports[f"{p}_addr"] = In(unsigned(self.addr_bits))
            ports[f"{p}_we"] = In(1)
            ports[f"{p}_wdata"] = In(unsigned(width))
            if byte_mask:
                ports[f"{p}_wmask"] = In(unsigned(width // 8))
            ports[f"{p}_rdata"] = Out(unsigned(width))

        super().__init__(ports)

    @property
    def read_latency(self) -> int:
        return 2 if self.output_reg else 1

    def elaborate(self, _platform):
        m = Module()

        m.submodules.mem = mem = Memory(shape=unsigned(self.width), depth=self.depth, init=[])

        for p in PORTS:
            en = getattr(self, f"{p}_en")
            addr = getattr(self, f"{p}_addr")
            we = getattr(self, f"{p}_we")

            # Write side
            wr_port = mem.write_port(granularity=8 if self.byte_mask else None)
            m.d.comb += [
                wr_port.addr.eq(addr),
                wr_port.data.eq(getattr(self, f"{p}_wdata")),
            ]
            if self.byte_mask:
                wmask = getattr(self, f"{p}_wmask")
                m.d.comb += wr_port.en.eq(Mux(en & we, wmask, 0))
            else:
                m.d.comb += wr_port.en.eq(en & we)

            # Read side: transparency to this port's own writes gives write-first
            if self.policy == ReadDuringWrite.WRITE_FIRST:
                rd_port = mem.read_port(transparent_for=(wr_port,))
            else:
                rd_port = mem.read_port()

            m.d.comb += rd_port.addr.eq(addr)
            if self.policy == ReadDuringWrite.NO_CHANGE:
                # A disabled read port keeps its last output
                m.d.comb += rd_port.en.eq(en & ~we)
            else:
                m.d.comb += rd_port.en.eq(en)

            rdata = getattr(self, f"{p}_rdata")
            if self.output_reg:
                rdata_q = Signal(unsigned(self.width), name=f"{p}_rdata_q")
                m.d.sync += rdata_q.eq(rd_port.data)
                m.d.comb += rdata.eq(rdata_q)
            else:
                m.d.comb += rdata.eq(rd_port.data)

        return m
