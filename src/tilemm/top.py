"""
AcceleratorTop - Top-level integration of the tiled matmul accelerator.

This module wires together all major subsystems:
- PEArray: T×T output-stationary compute mesh
- a_banks / b_banks: Double-buffered operand banks (two banksets each)
- c_banks: Result banks written by the drain strobes
- TileLoader (×2): External memory → A/B banks
- ResultDrainer → ElasticQueue → BeatPacker → MemoryWriter: C banks → external memory
- MemoryArbiter: Writer > Loader A > Loader B on the single external channel
- TileScheduler: Sequences everything over the M×N×K tile grid

External Interfaces:
- Avalon-MM master (single outstanding request)
- Control/status registers (start, addresses, N, leading dimensions, irq)

Data Flow for C = A × B:

    ext mem ──▶ loader_a ──▶ a_banks ──┐ (skewed feed)
            ──▶ loader_b ──▶ b_banks ──┤
                                       ▼
                                   pe_array ──drain strobes──▶ c_banks
                                                                 │
    ext mem ◀── writer ◀── packer ◀── queue ◀── drainer ◀────────┘
"""

from amaranth import Cat, Module, Signal
from amaranth.lib.wiring import Component, In, Out

from .config import AcceleratorConfig
from .controller.drainer import ResultDrainer
from .controller.scheduler import TileScheduler
from .core.pe_array import PEArray
from .dma.arbiter import MemoryArbiter
from .dma.loader import TileLoader
from .dma.packer import BeatPacker
from .dma.writer import MemoryWriter
from .memory.bank_array import BankArray
from .memory.queue import ElasticQueue


class AcceleratorTop(Component):
    """
    Top-level tiled systolic matmul accelerator.

    Ports:
        Control / Status:
            start: Begin C = A × B
            base_a, base_b, base_c: Matrix base byte addresses
            n: Matrix dimension N (multiple of dim)
            lda, ldb, ldc: Leading dimensions in elements (0 = N)
            irq_en: Interrupt enable
            busy, done, error: Run status (done/error held until start)
            error_code: SchedulerError of the abort
            irq: Interrupt request

        External memory (Avalon-MM master):
            mem_address, mem_read, mem_write, mem_writedata, mem_byteenable,
            mem_burstcount: Request
            mem_waitrequest: Request not accepted this cycle
            mem_readdata, mem_readdatavalid: Read response

        Debug:
            tile_m, tile_n, tile_k: Current tile indices
            compute_set: Bankset being fed
            state: Scheduler state encoding
    """

    # Arbiter master indices, highest priority first
    MASTER_WRITER = 0
    MASTER_LOAD_A = 1
    MASTER_LOAD_B = 2

    def __init__(self, config: AcceleratorConfig):
        self.config = config
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
            # External memory
            "mem_address": Out(addr),
            "mem_read": Out(1),
            "mem_write": Out(1),
            "mem_writedata": Out(config.beat_bits),
            "mem_byteenable": Out(config.beat_bytes),
            "mem_burstcount": Out(config.burst_bits),
            "mem_waitrequest": In(1),
            "mem_readdata": In(config.beat_bits),
            "mem_readdatavalid": In(1),
            # Debug
            "tile_m": Out(size),
            "tile_n": Out(size),
            "tile_k": Out(size),
            "compute_set": Out(1),
            "state": Out(4),
        }

        super().__init__(ports)

    def elaborate(self, _platform):
        m = Module()
        cfg = self.config
        dim = cfg.dim

        # =====================================================================
        # Instantiate Submodules
        # =====================================================================

        # Compute fabric
        m.submodules.pe_array = pe_array = PEArray(cfg)

        # On-chip memories
        m.submodules.a_banks = a_banks = BankArray(
            dim, cfg.elem_bits, cfg.bank_depth, policy=cfg.read_during_write
        )
        m.submodules.b_banks = b_banks = BankArray(
            dim, cfg.elem_bits, cfg.bank_depth, policy=cfg.read_during_write
        )
        m.submodules.c_banks = c_banks = BankArray(
            dim,
            cfg.acc_bits,
            dim,
            policy=cfg.read_during_write,
            output_reg=cfg.result_read_latency == 2,
        )

        # Data movers
        m.submodules.loader_a = loader_a = TileLoader(cfg)
        m.submodules.loader_b = loader_b = TileLoader(cfg)
        m.submodules.drainer = drainer = ResultDrainer(cfg)
        m.submodules.queue = queue = ElasticQueue(cfg.acc_bits, cfg.queue_depth)
        m.submodules.packer = packer = BeatPacker(
            cfg.acc_bits, cfg.beat_bits, bit_order=cfg.bit_order
        )
        m.submodules.writer = writer = MemoryWriter(cfg)
        m.submodules.arbiter = arbiter = MemoryArbiter(cfg, masters=3)

        # Control
        m.submodules.scheduler = sched = TileScheduler(cfg)

        # =====================================================================
        # Control / Status
        # =====================================================================

        m.d.comb += [
            sched.start.eq(self.start),
            sched.base_a.eq(self.base_a),
            sched.base_b.eq(self.base_b),
            sched.base_c.eq(self.base_c),
            sched.n.eq(self.n),
            sched.lda.eq(self.lda),
            sched.ldb.eq(self.ldb),
            sched.ldc.eq(self.ldc),
            sched.irq_en.eq(self.irq_en),
            self.busy.eq(sched.busy),
            self.done.eq(sched.done),
            self.error.eq(sched.error),
            self.error_code.eq(sched.error_code),
            self.irq.eq(sched.irq),
            self.tile_m.eq(sched.tile_m),
            self.tile_n.eq(sched.tile_n),
            self.tile_k.eq(sched.tile_k),
            self.compute_set.eq(sched.compute_set),
            self.state.eq(sched.state),
        ]

        # =====================================================================
        # Scheduler <-> Loaders <-> A/B Banks
        # =====================================================================

        for p, loader, banks in (("a", loader_a, a_banks), ("b", loader_b, b_banks)):
            m.d.comb += [
                loader.start.eq(getattr(sched, f"load_{p}_start")),
                loader.base_addr.eq(getattr(sched, f"load_{p}_base_addr")),
                loader.rows.eq(getattr(sched, f"load_{p}_rows")),
                loader.cols.eq(getattr(sched, f"load_{p}_cols")),
                loader.stride.eq(getattr(sched, f"load_{p}_stride")),
                loader.bankset.eq(getattr(sched, f"load_{p}_bankset")),
                loader.layout.eq(getattr(sched, f"load_{p}_layout")),
                getattr(sched, f"load_{p}_busy").eq(loader.busy),
                getattr(sched, f"load_{p}_done").eq(loader.done),
            ]

            feed_en = getattr(sched, f"feed_{p}_en")
            for i in range(dim):
                m.d.comb += [
                    # Port a: loader writes
                    getattr(banks, f"a_en_{i}").eq(loader.bank_we[i]),
                    getattr(banks, f"a_we_{i}").eq(loader.bank_we[i]),
                    getattr(banks, f"a_addr_{i}").eq(loader.bank_addr),
                    getattr(banks, f"a_wdata_{i}").eq(loader.bank_data),
                    # Port b: skewed feed reads
                    getattr(banks, f"b_en_{i}").eq(feed_en[i]),
                    getattr(banks, f"b_we_{i}").eq(0),
                    getattr(banks, f"b_addr_{i}").eq(getattr(sched, f"feed_{p}_addr_{i}")),
                    getattr(banks, f"b_wdata_{i}").eq(0),
                ]

        # =====================================================================
        # A/B Banks -> PEArray
        # =====================================================================

        for i in range(dim):
            m.d.comb += [
                getattr(pe_array, f"in_a_{i}").eq(getattr(a_banks, f"b_rdata_{i}")),
                getattr(pe_array, f"in_a_valid_{i}").eq(sched.feed_a_valid[i]),
                getattr(pe_array, f"in_b_{i}").eq(getattr(b_banks, f"b_rdata_{i}")),
                getattr(pe_array, f"in_b_valid_{i}").eq(sched.feed_b_valid[i]),
            ]

        m.d.comb += [
            pe_array.acc_clear.eq(sched.acc_clear),
            pe_array.in_drain.eq(sched.drain),
            sched.all_valid.eq(pe_array.all_valid),
        ]

        # =====================================================================
        # PEArray drain strobes -> C Banks
        # =====================================================================

        # The serpentine token visits one cell per cycle, so at most one
        # strobe in each row is active at a time.
        for r in range(dim):
            row_strobe = Signal(name=f"c_strobe_{r}")
            row_col = Signal(range(dim), name=f"c_col_{r}")
            row_acc = Signal(cfg.acc_bits, name=f"c_acc_{r}")
            strobes = []
            for c in range(dim):
                strobe = getattr(pe_array, f"out_acc_strobe_{r}_{c}")
                strobes.append(strobe)
                with m.If(strobe):
                    m.d.comb += [
                        row_col.eq(c),
                        row_acc.eq(getattr(pe_array, f"out_acc_{r}_{c}")),
                    ]
            m.d.comb += row_strobe.eq(Cat(*strobes).any())

            m.d.comb += [
                getattr(c_banks, f"a_en_{r}").eq(row_strobe),
                getattr(c_banks, f"a_we_{r}").eq(row_strobe),
                getattr(c_banks, f"a_addr_{r}").eq(row_col),
                getattr(c_banks, f"a_wdata_{r}").eq(row_acc),
            ]

        # =====================================================================
        # C Banks -> Drainer -> Queue -> Packer -> Writer
        # =====================================================================

        m.d.comb += [
            drainer.start.eq(sched.drain_start),
            drainer.first_row.eq(sched.drain_first_row),
            drainer.rows.eq(sched.drain_rows),
            drainer.cols.eq(sched.drain_cols),
            sched.drain_busy.eq(drainer.busy),
            sched.drain_done.eq(drainer.done),
        ]

        for i in range(dim):
            m.d.comb += [
                getattr(c_banks, f"b_en_{i}").eq(drainer.bank_re[i]),
                getattr(c_banks, f"b_we_{i}").eq(0),
                getattr(c_banks, f"b_addr_{i}").eq(drainer.bank_addr),
                getattr(c_banks, f"b_wdata_{i}").eq(0),
                getattr(drainer, f"bank_rdata_{i}").eq(getattr(c_banks, f"b_rdata_{i}")),
            ]

        m.d.comb += [
            queue.in_valid.eq(drainer.out_valid),
            drainer.out_ready.eq(queue.in_ready),
            queue.in_data.eq(drainer.out_data),
            queue.in_last.eq(drainer.out_last),
            packer.in_valid.eq(queue.out_valid),
            queue.out_ready.eq(packer.in_ready),
            packer.in_data.eq(queue.out_data),
            packer.in_last.eq(queue.out_last),
            writer.in_valid.eq(packer.out_valid),
            packer.out_ready.eq(writer.in_ready),
            writer.in_data.eq(packer.out_data),
            writer.in_mask.eq(packer.out_mask),
            writer.in_last.eq(packer.out_last),
            writer.start.eq(sched.write_start),
            writer.base_addr.eq(sched.write_base_addr),
            sched.write_busy.eq(writer.busy),
            sched.write_done.eq(writer.done),
        ]

        # =====================================================================
        # External Memory Arbitration
        # =====================================================================

        w = self.MASTER_WRITER
        m.d.comb += [
            getattr(arbiter, f"m{w}_address").eq(writer.mem_address),
            getattr(arbiter, f"m{w}_read").eq(0),
            getattr(arbiter, f"m{w}_write").eq(writer.mem_write),
            getattr(arbiter, f"m{w}_writedata").eq(writer.mem_writedata),
            getattr(arbiter, f"m{w}_byteenable").eq(writer.mem_byteenable),
            getattr(arbiter, f"m{w}_burstcount").eq(writer.mem_burstcount),
            writer.mem_waitrequest.eq(getattr(arbiter, f"m{w}_waitrequest")),
        ]

        for i, loader in ((self.MASTER_LOAD_A, loader_a), (self.MASTER_LOAD_B, loader_b)):
            m.d.comb += [
                getattr(arbiter, f"m{i}_address").eq(loader.mem_address),
                getattr(arbiter, f"m{i}_read").eq(loader.mem_read),
                getattr(arbiter, f"m{i}_write").eq(0),
                getattr(arbiter, f"m{i}_writedata").eq(0),
                getattr(arbiter, f"m{i}_byteenable").eq(0),
                getattr(arbiter, f"m{i}_burstcount").eq(loader.mem_burstcount),
                loader.mem_waitrequest.eq(getattr(arbiter, f"m{i}_waitrequest")),
                loader.mem_readdata.eq(getattr(arbiter, f"m{i}_readdata")),
                loader.mem_readdatavalid.eq(getattr(arbiter, f"m{i}_readdatavalid")),
            ]

        m.d.comb += [
            self.mem_address.eq(arbiter.mem_address),
            self.mem_read.eq(arbiter.mem_read),
            self.mem_write.eq(arbiter.mem_write),
            self.mem_writedata.eq(arbiter.mem_writedata),
            self.mem_byteenable.eq(arbiter.mem_byteenable),
            self.mem_burstcount.eq(arbiter.mem_burstcount),
            arbiter.mem_waitrequest.eq(self.mem_waitrequest),
            arbiter.mem_readdata.eq(self.mem_readdata),
            arbiter.mem_readdatavalid.eq(self.mem_readdatavalid),
        ]

        return m
