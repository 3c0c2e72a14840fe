"""
MemoryArbiter - shares the single external-memory channel between masters.

Masters are numbered in priority order (0 highest). In the accelerator:

    m0  MemoryWriter      (result beats)
    m1  TileLoader A
    m2  TileLoader B

Every cycle the lowest-numbered master with mem_read or mem_write asserted is
connected to the channel; every other master sees waitrequest. Once a read
burst is accepted the channel is locked to its owner until all burstcount
beats have returned, so bursts never interleave and readdatavalid always
belongs to the owner.

    m0_* ──┐
    m1_* ──┼──[ priority select ]──▶ mem_address / mem_read / mem_write / ...
    m2_* ──┘          │
                      └── lock (owner, beats_left) ◀── mem_readdatavalid
"""

from amaranth import Module, Signal
from amaranth.lib.wiring import Component, In, Out

from ..config import AcceleratorConfig


class MemoryArbiter(Component):
    """
    Fixed-priority Avalon-MM arbiter with read-burst locking.

    Ports (for each master i):
        m{i}_address, m{i}_read, m{i}_write: Request
        m{i}_writedata, m{i}_byteenable, m{i}_burstcount: Request payload
        m{i}_waitrequest: Request not accepted (always high when not granted)
        m{i}_readdata: Returned beat (broadcast)
        m{i}_readdatavalid: Returned beat belongs to master i

    Slave side:
        mem_address, mem_read, mem_write, mem_writedata, mem_byteenable,
        mem_burstcount, mem_waitrequest, mem_readdata, mem_readdatavalid

    Debug:
        grant: Index of the connected master
        grant_valid: A master is connected this cycle
        locked: A read burst is outstanding

    Parameters:
        config: AcceleratorConfig with bus parameters
        masters: Number of masters
    """

    def __init__(self, config: AcceleratorConfig, masters: int = 3):
        if masters < 1:
            raise ValueError("the arbiter needs at least one master")

        self.config = config
        self.masters = masters

        ports = {}
        for i in range(masters):
            ports[f"m{i}_address"] = In(config.addr_bits)
            ports[f"m{i}_read"] = In(1)
            ports[f"m{i}_write"] = In(1)
            ports[f"m{i}_writedata"] = In(config.beat_bits)
            ports[f"m{i}_byteenable"] = In(config.beat_bytes)
            ports[f"m{i}_burstcount"] = In(config.burst_bits)
            ports[f"m{i}_waitrequest"] = Out(1)
            ports[f"m{i}_readdata"] = Out(config.beat_bits)
            ports[f"m{i}_readdatavalid"] = Out(1)

        ports.update(
            {
                "mem_address": Out(config.addr_bits),
                "mem_read": Out(1),
                "mem_write": Out(1),
                "mem_writedata": Out(config.beat_bits),
                "mem_byteenable": Out(config.beat_bytes),
                "mem_burstcount": Out(config.burst_bits),
                "mem_waitrequest": In(1),
                "mem_readdata": In(config.beat_bits),
                "mem_readdatavalid": In(1),
                "grant": Out(range(masters)),
                "grant_valid": Out(1),
                "locked": Out(1),
            }
        )

        super().__init__(ports)

    def _master(self, i, name):
        return getattr(self, f"m{i}_{name}")

    def elaborate(self, _platform):
        m = Module()
        n = self.masters

        locked = Signal()
        owner = Signal(range(n))
        beats_left = Signal(self.config.burst_bits)

        grant = Signal(range(n))
        grant_valid = Signal()

        # =====================================================================
        # Priority Select (lowest index wins; assignments later in the loop override)
        # =====================================================================

        with m.If(~locked):
            for i in reversed(range(n)):
                with m.If(self._master(i, "read") | self._master(i, "write")):
                    m.d.comb += [
                        grant.eq(i),
                        grant_valid.eq(1),
                    ]

        m.d.comb += [
            self.grant.eq(grant),
            self.grant_valid.eq(grant_valid),
            self.locked.eq(locked),
        ]

        # =====================================================================
        # Request Routing
        # =====================================================================

        for i in range(n):
            selected = grant_valid & (grant == i)

            with m.If(selected):
                m.d.comb += [
                    self.mem_address.eq(self._master(i, "address")),
                    self.mem_read.eq(self._master(i, "read")),
                    self.mem_write.eq(self._master(i, "write")),
                    self.mem_writedata.eq(self._master(i, "writedata")),
                    self.mem_byteenable.eq(self._master(i, "byteenable")),
                    self.mem_burstcount.eq(self._master(i, "burstcount")),
                ]

            m.d.comb += [
                self._master(i, "waitrequest").eq(~selected | self.mem_waitrequest),
                self._master(i, "readdata").eq(self.mem_readdata),
                self._master(i, "readdatavalid").eq(
                    locked & (owner == i) & self.mem_readdatavalid
                ),
            ]

        # =====================================================================
        # Read Burst Lock
        # =====================================================================

        with m.If(~locked):
            with m.If(grant_valid & self.mem_read & ~self.mem_waitrequest):
                m.d.sync += [
                    locked.eq(1),
                    owner.eq(grant),
                    beats_left.eq(self.mem_burstcount),
                ]
        with m.Elif(self.mem_readdatavalid):
            m.d.sync += beats_left.eq(beats_left - 1)
            with m.If(beats_left == 1):
                m.d.sync += locked.eq(0)

        return m
