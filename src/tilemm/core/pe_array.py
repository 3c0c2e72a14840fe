"""
PEArray - The T×T systolic mesh of Processing Elements.

Operands enter at the mesh edges and are forwarded one PE per cycle:

- A (left operand): row i enters at in_a_{i} and flows west → east
- B (right operand): column j enters at in_b_{j} and flows north → south
- acc_clear: broadcast to every PE

Example 3x3 PEArray:
                 in_b_0     in_b_1     in_b_2
                    |          |          |
    in_a_0 --> [PE(0,0)] -> [PE(0,1)] -> [PE(0,2)]
                    |          |          |
    in_a_1 --> [PE(1,0)] -> [PE(1,1)] -> [PE(1,2)]
                    |          |          |
    in_a_2 --> [PE(2,0)] -> [PE(2,1)] -> [PE(2,2)]

The drain token is injected at (0,0) and snakes through all T² cells in
boustrophedon order, one cell per cycle:

    (0,0) → (0,1) → (0,2)
                      ↓
    (1,0) ← (1,1) ← (1,2)
      ↓
    (2,0) → (2,1) → (2,2) → out_drain

Feed protocol (driven by the TileScheduler): A row i element k must reach
in_a_{i} at cycle k+i and B column j element k must reach in_b_{j} at
cycle k+j, so partial products meet in PE(i,j) at cycle k+i+j.
"""

from amaranth import Cat, Module, signed
from amaranth.lib.wiring import Component, In, Out

from ..config import AcceleratorConfig
from .pe import PE


class PEArray(Component):
    """
    PEArray - T×T grid of PEs with systolic operand flow and serpentine drain.

    Ports:
        in_a_0..T-1, in_a_valid_0..T-1: West inputs (one per row)
        in_b_0..T-1, in_b_valid_0..T-1: North inputs (one per column)
        in_drain: Drain token injected at PE(0,0)
        acc_clear: Clear all accumulators and valid flags

        out_acc_{i}_{j}: Accumulator of PE(i,j)
        out_acc_valid_{i}_{j}: PE(i,j) has been drained
        out_acc_strobe_{i}_{j}: One-cycle pulse when PE(i,j) is drained
        all_valid: Every PE has been drained
        out_drain: Token leaving the last cell of the serpentine

    Parameters:
        config: AcceleratorConfig with the mesh dimension and data widths
    """

    def __init__(self, config: AcceleratorConfig):
        self.config = config
        dim = config.dim
        elem = config.elem_shape

        ports = {}

        # West and north edges
        for i in range(dim):
            ports[f"in_a_{i}"] = In(elem)
            ports[f"in_a_valid_{i}"] = In(1)
        for j in range(dim):
            ports[f"in_b_{j}"] = In(elem)
            ports[f"in_b_valid_{j}"] = In(1)

        ports["in_drain"] = In(1)
        ports["acc_clear"] = In(1)

        # Per-cell result taps
        for i in range(dim):
            for j in range(dim):
                ports[f"out_acc_{i}_{j}"] = Out(signed(config.acc_bits))
                ports[f"out_acc_valid_{i}_{j}"] = Out(1)
                ports[f"out_acc_strobe_{i}_{j}"] = Out(1)

        ports["all_valid"] = Out(1)
        ports["out_drain"] = Out(1)

        super().__init__(ports)

    @staticmethod
    def serpentine_order(dim: int) -> list[tuple[int, int]]:
        """
        Cells in drain-token visiting order.

        Even rows are walked west → east and odd rows east → west, so
        consecutive cells are always neighbours.
        """
        order = []
        for r in range(dim):
            cols = range(dim) if r % 2 == 0 else range(dim - 1, -1, -1)
            order.extend((r, c) for c in cols)
        return order

    def elaborate(self, _platform):
        m = Module()
        dim = self.config.dim

        pes = [[PE(self.config) for _ in range(dim)] for _ in range(dim)]

        for r in range(dim):
            for c in range(dim):
                m.submodules[f"pe_{r}_{c}"] = pes[r][c]

        # =================================================================
        # Horizontal (A) Wiring - flows west to east
        # =================================================================
        for r in range(dim):
            m.d.comb += [
                pes[r][0].in_a.eq(getattr(self, f"in_a_{r}")),
                pes[r][0].in_a_valid.eq(getattr(self, f"in_a_valid_{r}")),
            ]
            for c in range(1, dim):
                m.d.comb += [
                    pes[r][c].in_a.eq(pes[r][c - 1].out_a),
                    pes[r][c].in_a_valid.eq(pes[r][c - 1].out_a_valid),
                ]

        # =================================================================
        # Vertical (B) Wiring - flows north to south
        # =================================================================
        for c in range(dim):
            m.d.comb += [
                pes[0][c].in_b.eq(getattr(self, f"in_b_{c}")),
                pes[0][c].in_b_valid.eq(getattr(self, f"in_b_valid_{c}")),
            ]
            for r in range(1, dim):
                m.d.comb += [
                    pes[r][c].in_b.eq(pes[r - 1][c].out_b),
                    pes[r][c].in_b_valid.eq(pes[r - 1][c].out_b_valid),
                ]

        # =================================================================
        # Drain Token - serpentine chain
        # =================================================================
        order = self.serpentine_order(dim)
        first_r, first_c = order[0]
        m.d.comb += pes[first_r][first_c].in_drain.eq(self.in_drain)
        for (pr, pc), (r, c) in zip(order, order[1:]):
            m.d.comb += pes[r][c].in_drain.eq(pes[pr][pc].out_drain)
        last_r, last_c = order[-1]
        m.d.comb += self.out_drain.eq(pes[last_r][last_c].out_drain)

        # =================================================================
        # Broadcast Clear and Result Taps
        # =================================================================
        valids = []
        for r in range(dim):
            for c in range(dim):
                pe = pes[r][c]
                m.d.comb += [
                    pe.acc_clear.eq(self.acc_clear),
                    getattr(self, f"out_acc_{r}_{c}").eq(pe.out_acc),
                    getattr(self, f"out_acc_valid_{r}_{c}").eq(pe.out_acc_valid),
                    getattr(self, f"out_acc_strobe_{r}_{c}").eq(pe.out_acc_strobe),
                ]
                valids.append(pe.out_acc_valid)

        m.d.comb += self.all_valid.eq(Cat(*valids).all())

        return m
