#!/usr/bin/env python3
"""
Generate PE Verilog for the configurations the tests exercise.

Usage:
    python scripts/gen_pe.py                     # every variant into gen/
    python scripts/gen_pe.py --variant pe        # gen/pe.v only (cocotb flow)

Variants:
    pe           signed int8 operands, 32-bit accumulator (verif/cocotb/tests/pe)
    pe_unsigned  unsigned int8 operands, 32-bit accumulator
    pe_acc16     signed int8 operands, 16-bit wrapping accumulator
"""

import argparse
import sys
from pathlib import Path

# Add src to path if running from scripts/
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from amaranth.back import verilog  # noqa: E402

from tilemm.config import SMALL_CONFIG, AcceleratorConfig  # noqa: E402
from tilemm.core.pe import PE  # noqa: E402

VARIANTS = {
    "pe": ("PE", SMALL_CONFIG),
    "pe_unsigned": ("PE_unsigned", AcceleratorConfig(dim=4, signed=False)),
    "pe_acc16": ("PE_acc16", AcceleratorConfig(dim=4, acc_bits=16, beat_bits=64)),
}


def main():
    parser = argparse.ArgumentParser(description="Generate tilemm PE Verilog")
    parser.add_argument("--variant", choices=[*VARIANTS, "all"], default="all")
    parser.add_argument("--output-dir", type=Path, default=project_root / "gen")
    args = parser.parse_args()

    args.output_dir.mkdir(parents=True, exist_ok=True)
    selected = list(VARIANTS) if args.variant == "all" else [args.variant]

    for key in selected:
        name, config = VARIANTS[key]
        output_path = args.output_dir / f"{key}.v"
        with open(output_path, "w") as f:
            f.write(verilog.convert(PE(config), name=name))
        print(f"Generated {output_path} ({config.elem_bits}-bit operands, "
              f"{config.acc_bits}-bit accumulator, {'signed' if config.signed else 'unsigned'})")


if __name__ == "__main__":
    main()
