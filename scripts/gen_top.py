#!/usr/bin/env python3
"""
Generate Verilog for the accelerator and its building blocks.

Usage:
    python scripts/gen_top.py                    # AcceleratorTop, default config
    python scripts/gen_top.py --dim 4            # 4x4 mesh
    python scripts/gen_top.py --module packer    # a single block
    python scripts/gen_top.py --module all       # every block
"""

import argparse
import sys
from pathlib import Path

# Add src to path if running from scripts/
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from amaranth.back import verilog  # noqa: E402

from tilemm.config import AcceleratorConfig  # noqa: E402
from tilemm.controller import ResultDrainer, TileScheduler  # noqa: E402
from tilemm.dma import BeatPacker, MemoryArbiter, MemoryWriter, TileLoader  # noqa: E402
from tilemm.memory import ElasticQueue  # noqa: E402
from tilemm.top import AcceleratorTop  # noqa: E402

MODULES = {
    "top": ("AcceleratorTop", AcceleratorTop),
    "scheduler": ("TileScheduler", TileScheduler),
    "loader": ("TileLoader", TileLoader),
    "drainer": ("ResultDrainer", ResultDrainer),
    "writer": ("MemoryWriter", MemoryWriter),
    "arbiter": ("MemoryArbiter", MemoryArbiter),
    "queue": ("ElasticQueue", lambda cfg: ElasticQueue(cfg.acc_bits, cfg.queue_depth)),
    "packer": (
        "BeatPacker",
        lambda cfg: BeatPacker(cfg.acc_bits, cfg.beat_bits, bit_order=cfg.bit_order),
    ),
}


def main():
    parser = argparse.ArgumentParser(description="Generate tilemm Verilog")
    parser.add_argument("--module", choices=[*MODULES, "all"], default="top")
    parser.add_argument("--dim", type=int, default=16, help="Mesh size T")
    parser.add_argument("--elem-bits", type=int, default=8)
    parser.add_argument("--acc-bits", type=int, default=32)
    parser.add_argument("--beat-bits", type=int, default=128)
    parser.add_argument("--max-burst", type=int, default=16)
    parser.add_argument("--unsigned", action="store_true")
    parser.add_argument("--output-dir", type=Path, default=project_root / "gen")
    args = parser.parse_args()

    config = AcceleratorConfig(
        dim=args.dim,
        elem_bits=args.elem_bits,
        acc_bits=args.acc_bits,
        signed=not args.unsigned,
        beat_bits=args.beat_bits,
        max_burst=args.max_burst,
    )

    args.output_dir.mkdir(parents=True, exist_ok=True)
    selected = list(MODULES) if args.module == "all" else [args.module]

    for key in selected:
        name, factory = MODULES[key]
        output_path = args.output_dir / f"{key}_{config.dim}x{config.dim}.v"
        with open(output_path, "w") as f:
            f.write(verilog.convert(factory(config), name=name))
        print(f"Generated {output_path}")


if __name__ == "__main__":
    main()
