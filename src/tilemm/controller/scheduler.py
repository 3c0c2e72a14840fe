"""
TileScheduler - the controlling FSM of the tiled matmul accelerator.

The scheduler sequences C = A × B for N×N matrices over the T×T mesh. For
every output tile (m, n) it runs the full K loop, then drains the result tile
to external memory row by row:

    for m in 0..N/T-1:
      for n in 0..N/T-1:
        for k in 0..N/T-1:
          LOAD_A   A(m, k) → load bankset (ROW_MAJOR)
          LOAD_B   B(k, n) → load bankset (COL_MAJOR)
          COMPUTE  swap banksets, feed the skewed wavefront, settle
        DRAIN      inject the drain token, wait for all T² strobes
        for r in 0..T-1:
          DRAIN_INIT / WRITE_INIT / DRAIN_WAIT / WRITE_WAIT   row r → C

Bankset ping-pong:
    Each A/B bank holds two tile slices: address = bankset*T + k. The
    scheduler owns compute_set; loaders always fill the other set, and
    COMPUTE_INIT flips compute_set so the freshly loaded slice is fed.

Skewed feed (cycle t = 0 .. 2T-2 of COMPUTE_FEED):
    row i of A reads word t-i when 0 <= t-i < T
    col j of B reads word t-j when 0 <= t-j < T
    valid flags are delayed one cycle to line up with the bank read data.

    t:      0    1    2    3    4          (T = 3)
    row 0:  k0   k1   k2
    row 1:       k0   k1   k2
    row 2:            k0   k1   k2

Accumulators are cleared only at k = 0, and the drain token is only injected
after the last K-tile: a drained PE locks its accumulator until the next
clear.

Error handling:
    A sub-component that is neither busy nor done while the scheduler waits
    on it, a drain that does not complete in T² + T cycles, and an N of zero
    or not a multiple of T all end in ERROR with error_code set. DONE and
    ERROR hold until the next start.
"""

from enum import IntEnum

from amaranth import Cat, Module, Mux, Signal
from amaranth.lib.wiring import Component, In, Out

from ..config import AcceleratorConfig, Layout

# =============================================================================
# Status Codes
# =============================================================================


class SchedulerError(IntEnum):
    """Error codes reported on error_code."""

    NONE = 0x00
    BAD_DIMS = 0x01  # N is zero or not a multiple of the tile size
    LOAD_A_STALL = 0x02  # A loader idle without signalling done
    LOAD_B_STALL = 0x03  # B loader idle without signalling done
    DRAIN_TIMEOUT = 0x04  # Accumulator-valid flags incomplete after T² + T cycles
    DRAIN_STALL = 0x05  # Result drainer idle without signalling done
    WRITE_STALL = 0x06  # Memory writer idle without signalling done


class SchedulerState(IntEnum):
    """Encoding of the state debug output."""

    IDLE = 0
    INIT = 1
    LOAD_A = 2
    WAIT_A = 3
    LOAD_B = 4
    WAIT_B = 5
    COMPUTE_INIT = 6
    COMPUTE_FEED = 7
    COMPUTE_WAIT = 8
    DRAIN_INIT = 9
    WRITE_INIT = 10
    DRAIN_WAIT = 11
    WRITE_WAIT = 12
    NEXT_TILE = 13
    DONE = 14
    ERROR = 15


# =============================================================================
# TileScheduler Component
# =============================================================================


class TileScheduler(Component):
    """
    Tile scheduler FSM with bankset ping-pong.

    Ports:
        Control / Status:
            start: Begin a run (accepted in IDLE, DONE and ERROR)
            base_a, base_b, base_c: Matrix base byte addresses
            n: Matrix dimension N (multiple of dim)
            lda, ldb, ldc: Leading dimensions in elements (0 = N)
            irq_en: Interrupt enable
            busy: Run in progress
            done: Run finished (held until start)
            error: Run aborted (held until start)
            error_code: SchedulerError of the abort
            irq: done or error while irq_en

        Loader A / Loader B (prefix load_a_ / load_b_):
            start, base_addr, rows, cols, stride, bankset, layout: Request
            busy, done: Loader status

        Feed (to the A/B bank read ports and the PE array edges):
            feed_a_en, feed_b_en: Per-bank read enables (dim bits)
            feed_a_addr_{i}, feed_b_addr_{i}: Per-bank read addresses
            feed_a_valid, feed_b_valid: Enables delayed to match read data

        PE array:
            acc_clear: Clear accumulators (k = 0 only)
            drain: Drain token pulse
            all_valid: Every accumulator has been drained

        Result drainer (prefix drain_):
            start, first_row, rows, cols: Request
            busy, done: Drainer status

        Memory writer (prefix write_):
            start, base_addr: Request
            busy, done: Writer status

        Debug:
            tile_m, tile_n, tile_k: Current tile indices
            compute_set: Bankset being fed
            state: SchedulerState encoding

    Parameters:
        config: AcceleratorConfig with tile and bus parameters
    """

    def __init__(self, config: AcceleratorConfig):
        self.config = config
        dim = config.dim
        addr = config.addr_bits
        size = config.size_bits

        ports = {
            # Control / status
            "start": In(1),
            "base_a": In(addr),
            "base_b": In(addr),
            "base_c": In(addr),
            "n": In(size),
            "lda": In(size),
            "ldb": In(size),
            "ldc": In(size),
            "irq_en": In(1),
            "busy": Out(1),
            "done": Out(1),
            "error": Out(1),
            "error_code": Out(8),
            "irq": Out(1),
            # PE array control
            "acc_clear": Out(1),
            "drain": Out(1),
            "all_valid": In(1),
            # Result drainer
            "drain_start": Out(1),
            "drain_first_row": Out(range(dim)),
            "drain_rows": Out(range(dim + 1)),
            "drain_cols": Out(range(dim + 1)),
            "drain_busy": In(1),
            "drain_done": In(1),
            # Memory writer
            "write_start": Out(1),
            "write_base_addr": Out(addr),
            "write_busy": In(1),
            "write_done": In(1),
            # Debug
            "tile_m": Out(size),
            "tile_n": Out(size),
            "tile_k": Out(size),
            "compute_set": Out(1),
            "state": Out(4),
        }

        for p in ("a", "b"):
            ports.update(
                {
                    f"load_{p}_start": Out(1),
                    f"load_{p}_base_addr": Out(addr),
                    f"load_{p}_rows": Out(range(dim + 1)),
                    f"load_{p}_cols": Out(range(dim + 1)),
                    f"load_{p}_stride": Out(addr),
                    f"load_{p}_bankset": Out(1),
                    f"load_{p}_layout": Out(1),
                    f"load_{p}_busy": In(1),
                    f"load_{p}_done": In(1),
                    f"feed_{p}_en": Out(dim),
                    f"feed_{p}_valid": Out(dim),
                }
            )
            for i in range(dim):
                ports[f"feed_{p}_addr_{i}"] = Out(config.bank_addr_bits)

        super().__init__(ports)

    def elaborate(self, _platform):
        m = Module()
        cfg = self.config
        dim = cfg.dim
        dim_shift = cfg.dim_shift
        size = cfg.size_bits

        # =====================================================================
        # Configuration Registers (latched on start)
        # =====================================================================

        reg_base_a = Signal(cfg.addr_bits)
        reg_base_b = Signal(cfg.addr_bits)
        reg_base_c = Signal(cfg.addr_bits)
        reg_n = Signal(size)

        # Row pitches in bytes
        pitch_a = Signal(cfg.addr_bits)
        pitch_b = Signal(cfg.addr_bits)
        pitch_c = Signal(cfg.addr_bits)

        # =====================================================================
        # Tile Counters
        # =====================================================================

        tiles = Signal(size)  # N / T
        tile_m = Signal(size)
        tile_n = Signal(size)
        tile_k = Signal(size)
        drain_row = Signal(range(dim))

        compute_set = Signal()
        load_set = Signal()
        m.d.comb += load_set.eq(~compute_set)

        feed_t = Signal(range(2 * dim))
        settle = Signal(range(dim + 1))
        draining = Signal()
        drain_timer = Signal(range(cfg.drain_timeout + 1))

        drain_seen = Signal()
        write_seen = Signal()

        error_code = Signal(8)
        state = Signal(4)

        last_k = Signal()
        m.d.comb += last_k.eq(tile_k == tiles - 1)

        # =====================================================================
        # Address Calculation
        # =====================================================================

        # Element offsets of the current tile origin
        row_m = Signal(size + dim_shift)
        col_n = Signal(size + dim_shift)
        inner_k = Signal(size + dim_shift)
        m.d.comb += [
            row_m.eq(tile_m << dim_shift),
            col_n.eq(tile_n << dim_shift),
            inner_k.eq(tile_k << dim_shift),
        ]

        addr_a = Signal(cfg.addr_bits)
        addr_b = Signal(cfg.addr_bits)
        addr_c = Signal(cfg.addr_bits)
        m.d.comb += [
            addr_a.eq(reg_base_a + row_m * pitch_a + inner_k * cfg.elem_bytes),
            addr_b.eq(reg_base_b + inner_k * pitch_b + col_n * cfg.elem_bytes),
            addr_c.eq(reg_base_c + (row_m + drain_row) * pitch_c + col_n * cfg.acc_bytes),
        ]

        # =====================================================================
        # Default Outputs
        # =====================================================================

        m.d.comb += [
            self.load_a_start.eq(0),
            self.load_a_base_addr.eq(addr_a),
            self.load_a_rows.eq(dim),
            self.load_a_cols.eq(dim),
            self.load_a_stride.eq(pitch_a),
            self.load_a_bankset.eq(load_set),
            self.load_a_layout.eq(Layout.ROW_MAJOR),
            self.load_b_start.eq(0),
            self.load_b_base_addr.eq(addr_b),
            self.load_b_rows.eq(dim),
            self.load_b_cols.eq(dim),
            self.load_b_stride.eq(pitch_b),
            self.load_b_bankset.eq(load_set),
            self.load_b_layout.eq(Layout.COL_MAJOR),
            self.acc_clear.eq(0),
            self.drain.eq(0),
            self.drain_start.eq(0),
            self.drain_first_row.eq(drain_row),
            self.drain_rows.eq(1),
            self.drain_cols.eq(dim),
            self.write_start.eq(0),
            self.write_base_addr.eq(addr_c),
        ]

        m.d.comb += [
            self.tile_m.eq(tile_m),
            self.tile_n.eq(tile_n),
            self.tile_k.eq(tile_k),
            self.compute_set.eq(compute_set),
            self.state.eq(state),
            self.error_code.eq(error_code),
        ]

        # Completion flags stay set once seen during a row transfer
        with m.If(self.drain_done):
            m.d.sync += drain_seen.eq(1)
        with m.If(self.write_done):
            m.d.sync += write_seen.eq(1)

        # =====================================================================
        # Skewed Feed
        # =====================================================================

        feeding = Signal()
        feed_a_en = Signal(dim)
        feed_b_en = Signal(dim)

        for i in range(dim):
            in_window = feeding & (feed_t >= i) & (feed_t < i + dim)
            word = Signal(range(dim), name=f"feed_word_{i}")
            m.d.comb += [
                word.eq(feed_t - i),
                feed_a_en[i].eq(in_window),
                feed_b_en[i].eq(in_window),
                getattr(self, f"feed_a_addr_{i}").eq(Cat(word, compute_set)),
                getattr(self, f"feed_b_addr_{i}").eq(Cat(word, compute_set)),
            ]

        m.d.comb += [
            self.feed_a_en.eq(feed_a_en),
            self.feed_b_en.eq(feed_b_en),
        ]
        m.d.sync += [
            self.feed_a_valid.eq(feed_a_en),
            self.feed_b_valid.eq(feed_b_en),
        ]

        # =====================================================================
        # State Machine Logic
        # =====================================================================

        def fail(code):
            m.d.sync += error_code.eq(code)
            m.next = "ERROR"

        def begin():
            m.d.sync += [
                reg_base_a.eq(self.base_a),
                reg_base_b.eq(self.base_b),
                reg_base_c.eq(self.base_c),
                reg_n.eq(self.n),
                pitch_a.eq(Mux(self.lda == 0, self.n, self.lda) * cfg.elem_bytes),
                pitch_b.eq(Mux(self.ldb == 0, self.n, self.ldb) * cfg.elem_bytes),
                pitch_c.eq(Mux(self.ldc == 0, self.n, self.ldc) * cfg.acc_bytes),
                error_code.eq(SchedulerError.NONE),
            ]
            m.next = "INIT"

        with m.FSM(init="IDLE"):
            # -----------------------------------------------------------------
            # IDLE: Wait for start
            # -----------------------------------------------------------------
            with m.State("IDLE"):
                m.d.comb += state.eq(SchedulerState.IDLE)
                with m.If(self.start):
                    begin()

            # -----------------------------------------------------------------
            # INIT: Validate N and reset tile counters
            # -----------------------------------------------------------------
            with m.State("INIT"):
                m.d.comb += state.eq(SchedulerState.INIT)
                m.d.sync += [
                    tiles.eq(reg_n >> dim_shift),
                    tile_m.eq(0),
                    tile_n.eq(0),
                    tile_k.eq(0),
                    compute_set.eq(0),
                ]
                with m.If((reg_n == 0) | (reg_n[:dim_shift] != 0)):
                    fail(SchedulerError.BAD_DIMS)
                with m.Else():
                    m.next = "LOAD_A"

            # -----------------------------------------------------------------
            # LOAD_A / WAIT_A: A(m, k) into the load bankset
            # -----------------------------------------------------------------
            with m.State("LOAD_A"):
                m.d.comb += [
                    state.eq(SchedulerState.LOAD_A),
                    self.load_a_start.eq(1),
                ]
                m.next = "WAIT_A"

            with m.State("WAIT_A"):
                m.d.comb += state.eq(SchedulerState.WAIT_A)
                with m.If(self.load_a_done):
                    m.next = "LOAD_B"
                with m.Elif(~self.load_a_busy):
                    fail(SchedulerError.LOAD_A_STALL)

            # -----------------------------------------------------------------
            # LOAD_B / WAIT_B: B(k, n) into the load bankset
            # -----------------------------------------------------------------
            with m.State("LOAD_B"):
                m.d.comb += [
                    state.eq(SchedulerState.LOAD_B),
                    self.load_b_start.eq(1),
                ]
                m.next = "WAIT_B"

            with m.State("WAIT_B"):
                m.d.comb += state.eq(SchedulerState.WAIT_B)
                with m.If(self.load_b_done):
                    m.next = "COMPUTE_INIT"
                with m.Elif(~self.load_b_busy):
                    fail(SchedulerError.LOAD_B_STALL)

            # -----------------------------------------------------------------
            # COMPUTE_INIT: Swap banksets, clear accumulators on the first K-tile
            # -----------------------------------------------------------------
            with m.State("COMPUTE_INIT"):
                m.d.comb += [
                    state.eq(SchedulerState.COMPUTE_INIT),
                    self.acc_clear.eq(tile_k == 0),
                ]
                m.d.sync += [
                    compute_set.eq(~compute_set),
                    feed_t.eq(0),
                ]
                m.next = "COMPUTE_FEED"

            # -----------------------------------------------------------------
            # COMPUTE_FEED: 2T-1 cycles of skewed bank reads
            # -----------------------------------------------------------------
            with m.State("COMPUTE_FEED"):
                m.d.comb += [
                    state.eq(SchedulerState.COMPUTE_FEED),
                    feeding.eq(1),
                ]
                m.d.sync += feed_t.eq(feed_t + 1)
                with m.If(feed_t == cfg.feed_cycles - 1):
                    m.d.sync += [
                        settle.eq(cfg.settle_cycles),
                        draining.eq(0),
                    ]
                    m.next = "COMPUTE_WAIT"

            # -----------------------------------------------------------------
            # COMPUTE_WAIT: Settle, then next K-tile or drain the mesh
            # -----------------------------------------------------------------
            with m.State("COMPUTE_WAIT"):
                m.d.comb += state.eq(SchedulerState.COMPUTE_WAIT)
                with m.If(~draining):
                    with m.If(settle != 0):
                        m.d.sync += settle.eq(settle - 1)
                    with m.Elif(last_k):
                        m.d.comb += self.drain.eq(1)
                        m.d.sync += [
                            draining.eq(1),
                            drain_timer.eq(0),
                        ]
                    with m.Else():
                        m.d.sync += tile_k.eq(tile_k + 1)
                        m.next = "LOAD_A"
                with m.Else():
                    with m.If(self.all_valid):
                        m.d.sync += drain_row.eq(0)
                        m.next = "DRAIN_INIT"
                    with m.Elif(drain_timer == cfg.drain_timeout):
                        fail(SchedulerError.DRAIN_TIMEOUT)
                    with m.Else():
                        m.d.sync += drain_timer.eq(drain_timer + 1)

            # -----------------------------------------------------------------
            # DRAIN_INIT / WRITE_INIT: Start row transfer drain_row
            # -----------------------------------------------------------------
            with m.State("DRAIN_INIT"):
                m.d.comb += [
                    state.eq(SchedulerState.DRAIN_INIT),
                    self.drain_start.eq(1),
                ]
                m.d.sync += [
                    drain_seen.eq(0),
                    write_seen.eq(0),
                ]
                m.next = "WRITE_INIT"

            with m.State("WRITE_INIT"):
                m.d.comb += [
                    state.eq(SchedulerState.WRITE_INIT),
                    self.write_start.eq(1),
                ]
                m.next = "DRAIN_WAIT"

            # -----------------------------------------------------------------
            # DRAIN_WAIT / WRITE_WAIT: Row transfer completion
            # -----------------------------------------------------------------
            with m.State("DRAIN_WAIT"):
                m.d.comb += state.eq(SchedulerState.DRAIN_WAIT)
                with m.If(drain_seen | self.drain_done):
                    m.next = "WRITE_WAIT"
                with m.Elif(~self.drain_busy):
                    fail(SchedulerError.DRAIN_STALL)

            with m.State("WRITE_WAIT"):
                m.d.comb += state.eq(SchedulerState.WRITE_WAIT)
                with m.If(write_seen | self.write_done):
                    with m.If(drain_row == dim - 1):
                        m.next = "NEXT_TILE"
                    with m.Else():
                        m.d.sync += drain_row.eq(drain_row + 1)
                        m.next = "DRAIN_INIT"
                with m.Elif(~self.write_busy):
                    fail(SchedulerError.WRITE_STALL)

            # -----------------------------------------------------------------
            # NEXT_TILE: Advance n, then m
            # -----------------------------------------------------------------
            with m.State("NEXT_TILE"):
                m.d.comb += state.eq(SchedulerState.NEXT_TILE)
                m.d.sync += tile_k.eq(0)
                with m.If(tile_n != tiles - 1):
                    m.d.sync += tile_n.eq(tile_n + 1)
                    m.next = "LOAD_A"
                with m.Elif(tile_m != tiles - 1):
                    m.d.sync += [
                        tile_n.eq(0),
                        tile_m.eq(tile_m + 1),
                    ]
                    m.next = "LOAD_A"
                with m.Else():
                    m.next = "DONE"

            # -----------------------------------------------------------------
            # DONE / ERROR: Hold until the next start
            # -----------------------------------------------------------------
            with m.State("DONE"):
                m.d.comb += state.eq(SchedulerState.DONE)
                with m.If(self.start):
                    begin()

            with m.State("ERROR"):
                m.d.comb += state.eq(SchedulerState.ERROR)
                with m.If(self.start):
                    begin()

        # Status signals
        finished = Signal()
        m.d.comb += [
            finished.eq((state == SchedulerState.DONE) | (state == SchedulerState.ERROR)),
            self.busy.eq((state != SchedulerState.IDLE) & ~finished),
            self.done.eq(state == SchedulerState.DONE),
            self.error.eq(state == SchedulerState.ERROR),
            self.irq.eq(finished & self.irq_en),
        ]

        return m
