"""
ResultDrainer - walks a result tile out of the C bank array as a stream.

The drainer reads a rows×cols window of the result banks in row-major order
(bank first_row + r, word c) and emits one accumulator per cycle on a
valid/ready stream. The final element carries out_last, the flush marker that
makes the BeatPacker close a partial beat.

State Machine:
    IDLE -> ISSUE -> EMIT -> DONE -> IDLE

Data Flow:
    bank_re/bank_addr ──▶ C banks ──(read_latency)──▶ [ return FIFO ] ──▶ out_*
          ▲                                                  │
          └──────────── credit: level + in flight < depth ◀──┘

Bank reads are issued ahead of emission. A read is only issued when the
return FIFO is guaranteed to have room for its data, so the output holds
steady under any backpressure.
"""

from amaranth import Array, Cat, Const, Module, Mux, Signal
from amaranth.lib.fifo import SyncFIFO
from amaranth.lib.wiring import Component, In, Out

from ..config import AcceleratorConfig


class ResultDrainer(Component):
    """
    Result bank reader producing a row-major element stream.

    Ports:
        Control:
            start: Latch the window and begin
            first_row: Bank index of window row 0
            rows, cols: Window extent (0 completes with no elements)
            busy: Drain in progress
            done: One-cycle pulse after the final element was accepted

        Bank read interface:
            bank_re: One-hot read enable (dim bits)
            bank_addr: Word address (column)
            bank_rdata_{i}: Read data of bank i

        Output stream:
            out_valid, out_ready: Handshake
            out_data: Accumulator value
            out_last: Final element of the window

    Parameters:
        config: AcceleratorConfig (dim, acc_bits, result_read_latency)
    """

    def __init__(self, config: AcceleratorConfig):
        self.config = config
        self.read_latency = config.result_read_latency
        self.fifo_depth = self.read_latency + 2
        dim = config.dim

        ports = {
            # Control
            "start": In(1),
            "first_row": In(range(dim)),
            "rows": In(range(dim + 1)),
            "cols": In(range(dim + 1)),
            "busy": Out(1),
            "done": Out(1),
            # Bank read interface
            "bank_re": Out(dim),
            "bank_addr": Out(range(dim)),
            # Output stream
            "out_valid": Out(1),
            "out_ready": In(1),
            "out_data": Out(config.acc_bits),
            "out_last": Out(1),
        }
        for i in range(dim):
            ports[f"bank_rdata_{i}"] = In(config.acc_bits)

        super().__init__(ports)

    def elaborate(self, _platform):
        m = Module()
        cfg = self.config
        dim = cfg.dim
        latency = self.read_latency

        m.submodules.ret = ret = SyncFIFO(width=cfg.acc_bits + 1, depth=self.fifo_depth)

        # =====================================================================
        # Window Registers
        # =====================================================================

        first_row = Signal(range(dim))
        rows = Signal(range(dim + 1))
        cols = Signal(range(dim + 1))

        row_idx = Signal(range(dim))
        col_idx = Signal(range(dim))
        last_issue = Signal()
        m.d.comb += last_issue.eq((row_idx == rows - 1) & (col_idx == cols - 1))

        # =====================================================================
        # Read Pipeline (one stage per cycle of bank latency)
        # =====================================================================

        stage_valid = [Signal(name=f"stage_valid_{i}") for i in range(latency)]
        stage_bank = [Signal(range(dim), name=f"stage_bank_{i}") for i in range(latency)]
        stage_last = [Signal(name=f"stage_last_{i}") for i in range(latency)]

        issue = Signal()
        bank = Signal(range(dim))
        m.d.comb += bank.eq(first_row + row_idx)

        m.d.sync += [
            stage_valid[0].eq(issue),
            stage_bank[0].eq(bank),
            stage_last[0].eq(last_issue),
        ]
        for i in range(1, latency):
            m.d.sync += [
                stage_valid[i].eq(stage_valid[i - 1]),
                stage_bank[i].eq(stage_bank[i - 1]),
                stage_last[i].eq(stage_last[i - 1]),
            ]

        in_flight = Signal(range(latency + 1))
        m.d.comb += in_flight.eq(sum(stage_valid))

        credit = Signal()
        m.d.comb += credit.eq(ret.w_level + in_flight < self.fifo_depth)

        rdata = Array([getattr(self, f"bank_rdata_{i}") for i in range(dim)])

        m.d.comb += [
            self.bank_re.eq(Mux(issue, Const(1, dim) << bank, 0)),
            self.bank_addr.eq(col_idx),
            ret.w_en.eq(stage_valid[-1]),
            ret.w_data.eq(Cat(rdata[stage_bank[-1]], stage_last[-1])),
        ]

        # =====================================================================
        # Output Stream
        # =====================================================================

        accept_last = Signal()
        m.d.comb += [
            self.out_valid.eq(ret.r_rdy),
            self.out_data.eq(ret.r_data[: cfg.acc_bits]),
            self.out_last.eq(ret.r_data[cfg.acc_bits]),
            ret.r_en.eq(self.out_ready),
            accept_last.eq(ret.r_rdy & self.out_ready & self.out_last),
            self.done.eq(0),
        ]

        # =====================================================================
        # State Machine
        # =====================================================================

        with m.FSM(init="IDLE") as fsm:
            with m.State("IDLE"):
                with m.If(self.start):
                    m.d.sync += [
                        first_row.eq(self.first_row),
                        rows.eq(self.rows),
                        cols.eq(self.cols),
                        row_idx.eq(0),
                        col_idx.eq(0),
                    ]
                    with m.If((self.rows == 0) | (self.cols == 0)):
                        m.next = "DONE"
                    with m.Else():
                        m.next = "ISSUE"

            with m.State("ISSUE"):
                with m.If(credit):
                    m.d.comb += issue.eq(1)
                    with m.If(col_idx == cols - 1):
                        m.d.sync += [col_idx.eq(0), row_idx.eq(row_idx + 1)]
                    with m.Else():
                        m.d.sync += col_idx.eq(col_idx + 1)
                    with m.If(last_issue):
                        m.next = "EMIT"

            with m.State("EMIT"):
                with m.If(accept_last):
                    m.next = "DONE"

            with m.State("DONE"):
                m.d.comb += self.done.eq(1)
                m.next = "IDLE"

        m.d.comb += self.busy.eq(~fsm.ongoing("IDLE"))

        return m
