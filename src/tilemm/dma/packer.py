"""
BeatPacker - packs a stream of elements into external-memory bus beats.

Elements arrive one per cycle (valid/ready) and are placed in the next free
slot of a beat-wide accumulator together with a byte mask marking the bytes
that hold real elements:

    slot:      0        1        2        3          (LSB_FIRST, 4 slots)
    beat:  [ e0     | e1     | e2     | e3     ]   bits 0 → beat_bits
    mask:  [ 1111   | 1111   | 1111   | 1111   ]

A beat is emitted when
    (a) its last slot fills (out_last = that element's last flag), or
    (b) an element tagged last lands in a partial beat (out_last forced).

The emitted beat is held in an output register until the consumer takes it;
input is stalled meanwhile. The accumulator restarts empty after every
emission, so a partial final beat is zero-padded with a partial mask.
"""

from amaranth import Module, Signal
from amaranth.lib.wiring import Component, In, Out

from ..config import BitOrder


class BeatPacker(Component):
    """
    Element → beat packer with byte-enable generation.

    Ports:
        in_valid, in_ready, in_data, in_last: Element stream
        out_valid, out_ready: Beat handshake
        out_data: Packed beat
        out_mask: Byte enables for out_data
        out_last: Beat closes the stream (end of tile)

    Parameters:
        elem_bits: Element width (whole bytes)
        beat_bits: Beat width (a multiple of elem_bits)
        bit_order: Slot placement inside the beat
    """

    def __init__(self, elem_bits: int, beat_bits: int, *, bit_order: BitOrder = BitOrder.LSB_FIRST):
        if elem_bits <= 0 or elem_bits % 8:
            raise ValueError(f"packed elements must be whole bytes, got {elem_bits} bits")
        if beat_bits % elem_bits:
            raise ValueError(f"beat_bits ({beat_bits}) is not a multiple of elem_bits ({elem_bits})")

        self.elem_bits = elem_bits
        self.beat_bits = beat_bits
        self.bit_order = bit_order
        self.slots = beat_bits // elem_bits

        super().__init__(
            {
                "in_valid": In(1),
                "in_ready": Out(1),
                "in_data": In(elem_bits),
                "in_last": In(1),
                "out_valid": Out(1),
                "out_ready": In(1),
                "out_data": Out(beat_bits),
                "out_mask": Out(beat_bits // 8),
                "out_last": Out(1),
            }
        )

    def _lane(self, slot):
        if self.bit_order == BitOrder.MSB_FIRST:
            return self.slots - 1 - slot
        return slot

    def elaborate(self, _platform):
        m = Module()
        slots = self.slots
        elem_bytes = self.elem_bits // 8

        # Beat under construction
        acc_data = Signal(self.beat_bits)
        acc_mask = Signal(self.beat_bits // 8)
        count = Signal(range(slots))

        # Emitted beat waiting for the consumer
        pending = Signal()
        out_data = Signal(self.beat_bits)
        out_mask = Signal(self.beat_bits // 8)
        out_last = Signal()

        m.d.comb += [
            self.in_ready.eq(~pending | self.out_ready),
            self.out_valid.eq(pending),
            self.out_data.eq(out_data),
            self.out_mask.eq(out_mask),
            self.out_last.eq(out_last),
        ]

        # =====================================================================
        # Slot Insertion
        # =====================================================================

        next_data = Signal(self.beat_bits)
        next_mask = Signal(self.beat_bits // 8)
        m.d.comb += [
            next_data.eq(acc_data),
            next_mask.eq(acc_mask),
        ]
        with m.Switch(count):
            for i in range(slots):
                with m.Case(i):
                    lane = self._lane(i)
                    m.d.comb += [
                        next_data.word_select(lane, self.elem_bits).eq(self.in_data),
                        next_mask.word_select(lane, elem_bytes).eq((1 << elem_bytes) - 1),
                    ]

        # =====================================================================
        # Emission
        # =====================================================================

        with m.If(self.in_valid & self.in_ready):
            with m.If((count == slots - 1) | self.in_last):
                m.d.sync += [
                    out_data.eq(next_data),
                    out_mask.eq(next_mask),
                    out_last.eq(self.in_last),
                    pending.eq(1),
                    acc_data.eq(0),
                    acc_mask.eq(0),
                    count.eq(0),
                ]
            with m.Else():
                m.d.sync += [
                    acc_data.eq(next_data),
                    acc_mask.eq(next_mask),
                    count.eq(count + 1),
                ]
                with m.If(self.out_ready):
                    m.d.sync += pending.eq(0)
        with m.Elif(self.out_ready):
            m.d.sync += pending.eq(0)

        return m
