"""
TileLoader - DMA engine for external memory → bank array tile transfers.

The TileLoader copies one rows×cols tile of W-bit elements from byte-addressed
external memory into a BankArray. It reads whole bus beats with burst
requests, buffers returned beats and unpacks them one element per cycle.

Segmentation:
    A tile whose rows are contiguous (stride == cols * elem_bytes) is read as
    one segment. Otherwise every tile row is its own segment starting at
    base_addr + row * stride.

Burst sizing (per request):
    aligned = addr & ~(beat_bytes - 1)
    skip    = (addr - aligned) / elem_bytes      leading slots to discard
    beats   = ceil((skip + remaining) / elems_per_beat), clamped to max_burst

Bank routing:
    ROW_MAJOR (A-like): element (r, c) → bank r, address bankset*T + c
    COL_MAJOR (B-like): element (r, c) → bank c, address bankset*T + r

    ext mem ──burst──▶ [ beat FIFO ] ──unpack──▶ bank_we / bank_addr / bank_data

Only one burst is outstanding: the next request is issued after every
element of the previous burst has been written.
"""

from amaranth import Cat, Const, Module, Mux, Signal
from amaranth.lib.fifo import SyncFIFO
from amaranth.lib.wiring import Component, In, Out

from ..config import AcceleratorConfig, BitOrder, Layout


class TileLoader(Component):
    """
    Burst-reading tile loader with per-element bank routing.

    Ports:
        Control:
            start: Latch the request and begin (ignored while busy)
            base_addr: Byte address of element (0, 0)
            rows, cols: Tile extent in elements (0 completes immediately)
            stride: Byte pitch between tile rows
            bankset: Bankset bit placed on top of every bank address
            layout: Layout.ROW_MAJOR or Layout.COL_MAJOR
            busy: Transfer in progress
            done: One-cycle pulse after the last element was written

        Bank write interface:
            bank_we: One-hot bank write enable (dim bits)
            bank_addr: Bank word address
            bank_data: Element value

        External memory (Avalon-MM read master):
            mem_address, mem_read, mem_burstcount: Read request
            mem_waitrequest: Request not accepted this cycle
            mem_readdata, mem_readdatavalid: Returned beats, in order

    Parameters:
        config: AcceleratorConfig with bus, element and tile parameters
    """

    def __init__(self, config: AcceleratorConfig):
        self.config = config
        dim = config.dim

        super().__init__(
            {
                # Control
                "start": In(1),
                "base_addr": In(config.addr_bits),
                "rows": In(range(dim + 1)),
                "cols": In(range(dim + 1)),
                "stride": In(config.addr_bits),
                "bankset": In(1),
                "layout": In(1),
                "busy": Out(1),
                "done": Out(1),
                # Bank write interface
                "bank_we": Out(dim),
                "bank_addr": Out(config.bank_addr_bits),
                "bank_data": Out(config.elem_bits),
                # External memory read master
                "mem_address": Out(config.addr_bits),
                "mem_read": Out(1),
                "mem_burstcount": Out(config.burst_bits),
                "mem_waitrequest": In(1),
                "mem_readdata": In(config.beat_bits),
                "mem_readdatavalid": In(1),
            }
        )

    def elaborate(self, _platform):
        m = Module()
        cfg = self.config
        dim = cfg.dim
        epb = cfg.elems_per_beat

        beat_shift = (cfg.beat_bytes - 1).bit_length()
        elem_shift = (cfg.elem_bytes - 1).bit_length()
        epb_shift = (epb - 1).bit_length()

        m.submodules.beats = beats = SyncFIFO(width=cfg.beat_bits, depth=cfg.max_burst)

        # =====================================================================
        # Request Registers
        # =====================================================================

        row_base = Signal(cfg.addr_bits)
        stride = Signal(cfg.addr_bits)
        cols = Signal(range(dim + 1))
        bankset = Signal()
        layout = Signal()

        # =====================================================================
        # Progress Tracking
        # =====================================================================

        cur_addr = Signal(cfg.addr_bits)  # next element not yet requested
        seg_left = Signal(range(dim * dim + 1))  # elements of the segment not yet requested
        rows_left = Signal(range(dim + 1))  # segments after the current one
        take_left = Signal(range(cfg.max_burst * epb + 1))  # elements of this burst to write
        slot = Signal(range(epb))

        row_idx = Signal(range(dim))
        col_idx = Signal(range(dim))

        # =====================================================================
        # Burst Sizing (combinational, from cur_addr and seg_left)
        # =====================================================================

        aligned = Signal(cfg.addr_bits)
        skip = Signal(range(epb))
        beats_needed = Signal(range(dim * dim + 2 * epb))
        clamp = Signal()
        burst_len = Signal(cfg.burst_bits)
        burst_take = Signal(range(dim * dim + 1))

        m.d.comb += [
            aligned.eq(Cat(Const(0, beat_shift), cur_addr[beat_shift:])),
            skip.eq(cur_addr[:beat_shift] >> elem_shift),
            beats_needed.eq((skip + seg_left + (epb - 1)) >> epb_shift),
            clamp.eq(beats_needed > cfg.max_burst),
            burst_len.eq(Mux(clamp, cfg.max_burst, beats_needed)),
            burst_take.eq(Mux(clamp, cfg.max_burst * epb - skip, seg_left)),
        ]

        # =====================================================================
        # Beat Unpacking and Bank Routing
        # =====================================================================

        lane = Signal(range(epb))
        if cfg.bit_order == BitOrder.LSB_FIRST:
            m.d.comb += lane.eq(slot)
        else:
            m.d.comb += lane.eq((epb - 1) - slot)

        element = beats.r_data.word_select(lane, cfg.elem_bits)

        bank_idx = Signal(range(dim))
        k_idx = Signal(range(dim))
        with m.If(layout == Layout.COL_MAJOR):
            m.d.comb += [bank_idx.eq(col_idx), k_idx.eq(row_idx)]
        with m.Else():
            m.d.comb += [bank_idx.eq(row_idx), k_idx.eq(col_idx)]

        write = Signal()
        m.d.comb += [
            self.bank_we.eq(Mux(write, Const(1, dim) << bank_idx, 0)),
            self.bank_addr.eq(Cat(k_idx[: cfg.dim_shift], bankset)),
            self.bank_data.eq(element),
            beats.w_data.eq(self.mem_readdata),
            beats.w_en.eq(self.mem_readdatavalid),
        ]

        # Default outputs
        m.d.comb += [
            self.mem_read.eq(0),
            self.mem_address.eq(aligned),
            self.mem_burstcount.eq(burst_len),
            self.done.eq(0),
            beats.r_en.eq(0),
        ]

        # =====================================================================
        # State Machine
        # =====================================================================

        with m.FSM(init="IDLE") as fsm:
            with m.State("IDLE"):
                with m.If(self.start):
                    m.d.sync += [
                        row_base.eq(self.base_addr),
                        cur_addr.eq(self.base_addr),
                        stride.eq(self.stride),
                        cols.eq(self.cols),
                        bankset.eq(self.bankset),
                        layout.eq(self.layout),
                        row_idx.eq(0),
                        col_idx.eq(0),
                    ]
                    with m.If((self.rows == 0) | (self.cols == 0)):
                        m.next = "DONE"
                    with m.Elif(self.stride == (self.cols << elem_shift)):
                        # Contiguous rows: one segment covers the whole tile
                        m.d.sync += [
                            seg_left.eq(self.rows * self.cols),
                            rows_left.eq(0),
                        ]
                        m.next = "ISSUE"
                    with m.Else():
                        m.d.sync += [
                            seg_left.eq(self.cols),
                            rows_left.eq(self.rows - 1),
                        ]
                        m.next = "ISSUE"

            with m.State("ISSUE"):
                m.d.comb += self.mem_read.eq(1)
                with m.If(~self.mem_waitrequest):
                    m.d.sync += [
                        seg_left.eq(seg_left - burst_take),
                        take_left.eq(burst_take),
                        slot.eq(skip),
                        cur_addr.eq(cur_addr + (burst_take << elem_shift)),
                    ]
                    m.next = "FILL"

            with m.State("FILL"):
                with m.If(beats.r_rdy):
                    m.d.comb += write.eq(1)
                    m.d.sync += [
                        take_left.eq(take_left - 1),
                        slot.eq(slot + 1),
                    ]

                    # Walk the tile row-major
                    with m.If(col_idx == cols - 1):
                        m.d.sync += [col_idx.eq(0), row_idx.eq(row_idx + 1)]
                    with m.Else():
                        m.d.sync += col_idx.eq(col_idx + 1)

                    # A beat is released once its last used slot is written
                    with m.If((slot == epb - 1) | (take_left == 1)):
                        m.d.comb += beats.r_en.eq(1)

                    with m.If(take_left == 1):
                        with m.If(seg_left != 0):
                            m.next = "ISSUE"
                        with m.Elif(rows_left != 0):
                            m.d.sync += [
                                rows_left.eq(rows_left - 1),
                                seg_left.eq(cols),
                                row_base.eq(row_base + stride),
                                cur_addr.eq(row_base + stride),
                            ]
                            m.next = "ISSUE"
                        with m.Else():
                            m.next = "DONE"

            with m.State("DONE"):
                m.d.comb += self.done.eq(1)
                m.next = "IDLE"

        m.d.comb += self.busy.eq(~fsm.ongoing("IDLE"))

        return m
