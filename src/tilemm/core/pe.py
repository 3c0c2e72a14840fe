"""
Processing Element (PE) - The fundamental compute unit of the systolic mesh.

Each PE is an output-stationary multiply-accumulate cell:
    acc = acc + ext(in_a * in_b)

Data flows:
- A (left operand): enters from the west, forwarded east one cycle later
- B (right operand): enters from the north, forwarded south one cycle later
- Drain token: forwarded one cycle later to the next cell of the serpentine

The rising edge of the drain token exposes the accumulator: out_acc_valid is
latched, out_acc_strobe pulses for one cycle, and the cell stops
accumulating until the next acc_clear so the snapshot stays stable.
"""

from amaranth import Module, Signal, signed
from amaranth.lib.wiring import Component, In, Out

from ..config import AcceleratorConfig


class PE(Component):
    """
    Processing Element - performs MAC operations in the systolic mesh.

    Ports:
        in_a, in_a_valid: Operand A from the west neighbour
        in_b, in_b_valid: Operand B from the north neighbour
        in_drain: Drain token from the previous serpentine cell
        acc_clear: Zero the accumulator and re-arm the drain edge detector

        out_a, out_a_valid: Registered A to the east neighbour
        out_b, out_b_valid: Registered B to the south neighbour
        out_drain: Registered drain token to the next serpentine cell
        out_acc: Current accumulator value
        out_acc_valid: Accumulator has been drained (held until acc_clear)
        out_acc_strobe: One-cycle pulse when the drain edge was seen

    Parameters:
        config: AcceleratorConfig with element/accumulator widths and signedness
    """

    def __init__(self, config: AcceleratorConfig):
        if config.acc_bits < 2 * config.elem_bits:
            raise ValueError("accumulator must be at least twice the operand width")

        self.config = config
        elem = config.elem_shape

        super().__init__(
            {
                # Inputs
                "in_a": In(elem),
                "in_a_valid": In(1),
                "in_b": In(elem),
                "in_b_valid": In(1),
                "in_drain": In(1),
                "acc_clear": In(1),
                # Outputs
                "out_a": Out(elem),
                "out_a_valid": Out(1),
                "out_b": Out(elem),
                "out_b_valid": Out(1),
                "out_drain": Out(1),
                "out_acc": Out(signed(config.acc_bits)),
                "out_acc_valid": Out(1),
                "out_acc_strobe": Out(1),
            }
        )

    def elaborate(self, _platform):
        m = Module()
        cfg = self.config

        acc = Signal(signed(cfg.acc_bits), name="acc")
        drain_prev = Signal(name="drain_prev")
        locked = Signal(name="locked")

        # =================================================================
        # Multiply-Accumulate Computation
        # =================================================================

        # Signed operands sign-extend the product, unsigned ones zero-extend
        product_shape = signed(2 * cfg.elem_bits) if cfg.signed else 2 * cfg.elem_bits
        product = Signal(product_shape, name="product")
        product_ext = Signal(signed(cfg.acc_bits), name="product_ext")
        m.d.comb += [
            product.eq(self.in_a * self.in_b),
            product_ext.eq(product),
        ]

        drain_edge = Signal(name="drain_edge")
        m.d.comb += drain_edge.eq(self.in_drain & ~drain_prev)

        m.d.sync += [
            drain_prev.eq(self.in_drain),
            self.out_acc_strobe.eq(0),
        ]

        with m.If(self.acc_clear):
            m.d.sync += [
                acc.eq(0),
                locked.eq(0),
                self.out_acc_valid.eq(0),
            ]
        with m.Elif(drain_edge & ~locked):
            m.d.sync += [
                locked.eq(1),
                self.out_acc_valid.eq(1),
                self.out_acc_strobe.eq(1),
            ]
        with m.Elif(self.in_a_valid & self.in_b_valid & ~locked):
            m.d.sync += acc.eq(acc + product_ext)

        m.d.comb += self.out_acc.eq(acc)

        # =================================================================
        # Pass-through Signals (registered for the systolic skew)
        # =================================================================

        m.d.sync += [
            self.out_a.eq(self.in_a),
            self.out_a_valid.eq(self.in_a_valid),
            self.out_b.eq(self.in_b),
            self.out_b_valid.eq(self.in_b_valid),
            self.out_drain.eq(self.in_drain),
        ]

        return m
