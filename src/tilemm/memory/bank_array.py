"""
BankArray - N independent memory banks addressed in parallel.

One bank serves one systolic row (A) or column (B), or one result row (C).
Every bank has its own enable, address and data on both ports, so a loader
can write bank i while the feeder reads bank j in the same cycle:

                 port a (writes)            port b (reads)
    bank 0   a_en_0 a_addr_0 ...        b_en_0 b_addr_0 → b_rdata_0
    bank 1   a_en_1 a_addr_1 ...        b_en_1 b_addr_1 → b_rdata_1
    ...
    bank N-1
"""

from amaranth import Module, unsigned
from amaranth.lib.wiring import Component, In, Out

from ..config import ReadDuringWrite
from .bank import PORTS, MemoryBank


class BankArray(Component):
    """
    Array of dual-port MemoryBanks with per-bank port vectors.

    Ports (for each p in a, b and each bank i):
        {p}_en_{i}: Port enable
        {p}_we_{i}: Write enable
        {p}_addr_{i}: Word address
        {p}_wdata_{i}: Write data
        {p}_rdata_{i}: Read data (read_latency cycles after {p}_en_{i})

    Parameters:
        count: Number of banks
        width: Word width in bits
        depth: Words per bank
        policy: ReadDuringWrite policy for every bank
        output_reg: Add an output register to every read path
    """

    def __init__(
        self,
        count: int,
        width: int,
        depth: int,
        *,
        policy: ReadDuringWrite = ReadDuringWrite.READ_FIRST,
        output_reg: bool = False,
    ):
        if count <= 0:
            raise ValueError("a bank array needs at least one bank")

        self.count = count
        self.width = width
        self.depth = depth
        self.policy = policy
        self.output_reg = output_reg
        self.addr_bits = max(1, (depth - 1).bit_length())

        ports = {}
        for p in PORTS:
            for i in range(count):
                ports[f"{p}_en_{i}"] = In(1)
                ports[f"{p}_we_{i}"] = In(1)
                ports[f"{p}_addr_{i}"] = In(unsigned(self.addr_bits))
                ports[f"{p}_wdata_{i}"] = In(unsigned(width))
                ports[f"{p}_rdata_{i}"] = Out(unsigned(width))

        super().__init__(ports)

    @property
    def read_latency(self) -> int:
        return 2 if self.output_reg else 1

    def elaborate(self, _platform):
        m = Module()

        banks = [
            MemoryBank(self.width, self.depth, policy=self.policy, output_reg=self.output_reg)
            for _ in range(self.count)
        ]

        for i, bank in enumerate(banks):
            m.submodules[f"bank_{i}"] = bank
            for p in PORTS:
                m.d.comb += [
                    getattr(bank, f"{p}_en").eq(getattr(self, f"{p}_en_{i}")),
                    getattr(bank, f"{p}_we").eq(getattr(self, f"{p}_we_{i}")),
                    getattr(bank, f"{p}_addr").eq(getattr(self, f"{p}_addr_{i}")),
                    getattr(bank, f"{p}_wdata").eq(getattr(self, f"{p}_wdata_{i}")),
                    getattr(self, f"{p}_rdata_{i}").eq(getattr(bank, f"{p}_rdata")),
                ]

        return m
