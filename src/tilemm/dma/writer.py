"""
MemoryWriter - DMA engine for beat stream → external memory transfers.

The MemoryWriter takes packed beats from the BeatPacker and issues one
single-beat Avalon-MM write per beat, starting at base_addr and advancing by
one beat per accepted write. The beat's byte mask becomes mem_byteenable.

    start/base_addr ──▶ IDLE ──▶ WRITE ──(beat tagged last accepted)──▶ DONE ──▶ IDLE
                                  │
          in_valid/in_data ──────▶ mem_write / mem_writedata / mem_byteenable
          in_ready ◀──────────── ~mem_waitrequest

Nothing advances while mem_waitrequest is high.
"""

from amaranth import Module, Signal
from amaranth.lib.wiring import Component, In, Out

from ..config import AcceleratorConfig


class MemoryWriter(Component):
    """
    Single-beat write master fed by a beat stream.

    Ports:
        Control:
            start: Latch base_addr and begin
            base_addr: Byte address of the first beat
            busy: Transfer in progress
            done: One-cycle pulse after the beat tagged last was written

        Beat stream (from BeatPacker):
            in_valid, in_ready: Handshake
            in_data: Beat data
            in_mask: Byte enables
            in_last: Final beat of the transfer

        External memory (Avalon-MM write master):
            mem_address, mem_write, mem_writedata, mem_byteenable, mem_burstcount
            mem_waitrequest: Write not accepted this cycle

    Parameters:
        config: AcceleratorConfig with bus parameters
    """

    def __init__(self, config: AcceleratorConfig):
        self.config = config

        super().__init__(
            {
                # Control
                "start": In(1),
                "base_addr": In(config.addr_bits),
                "busy": Out(1),
                "done": Out(1),
                # Beat stream
                "in_valid": In(1),
                "in_ready": Out(1),
                "in_data": In(config.beat_bits),
                "in_mask": In(config.beat_bytes),
                "in_last": In(1),
                # External memory write master
                "mem_address": Out(config.addr_bits),
                "mem_write": Out(1),
                "mem_writedata": Out(config.beat_bits),
                "mem_byteenable": Out(config.beat_bytes),
                "mem_burstcount": Out(config.burst_bits),
                "mem_waitrequest": In(1),
            }
        )

    def elaborate(self, _platform):
        m = Module()
        cfg = self.config

        addr = Signal(cfg.addr_bits)

        # Default outputs
        m.d.comb += [
            self.mem_address.eq(addr),
            self.mem_write.eq(0),
            self.mem_writedata.eq(self.in_data),
            self.mem_byteenable.eq(self.in_mask),
            self.mem_burstcount.eq(1),
            self.in_ready.eq(0),
            self.done.eq(0),
        ]

        with m.FSM(init="IDLE") as fsm:
            with m.State("IDLE"):
                with m.If(self.start):
                    m.d.sync += addr.eq(self.base_addr)
                    m.next = "WRITE"

            with m.State("WRITE"):
                m.d.comb += [
                    self.mem_write.eq(self.in_valid),
                    self.in_ready.eq(~self.mem_waitrequest),
                ]
                with m.If(self.in_valid & ~self.mem_waitrequest):
                    m.d.sync += addr.eq(addr + cfg.beat_bytes)
                    with m.If(self.in_last):
                        m.next = "DONE"

            with m.State("DONE"):
                m.d.comb += self.done.eq(1)
                m.next = "IDLE"

        m.d.comb += self.busy.eq(~fsm.ongoing("IDLE"))

        return m
