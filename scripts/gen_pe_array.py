#!/usr/bin/env python3
"""Generate PEArray Verilog from tilemm."""

import sys
from pathlib import Path

# Add src to path if running from scripts/
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from amaranth.back import verilog  # noqa: E402

from tilemm.config import DEFAULT_CONFIG, SMALL_CONFIG  # noqa: E402
from tilemm.core.pe_array import PEArray  # noqa: E402


def main():
    gen_dir = project_root / "gen"
    gen_dir.mkdir(exist_ok=True)

    # Default 16x16 mesh
    pe_array = PEArray(DEFAULT_CONFIG)

    output_path = gen_dir / "pe_array.v"
    with open(output_path, "w") as f:
        f.write(verilog.convert(pe_array, name="PEArray"))

    print(f"Generated {output_path}")

    # Also generate a 4x4 mesh for cocotb
    pe_array_4x4 = PEArray(SMALL_CONFIG)

    output_path_4x4 = gen_dir / "pe_array_4x4.v"
    with open(output_path_4x4, "w") as f:
        f.write(verilog.convert(pe_array_4x4, name="PEArray_4x4"))

    print(f"Generated {output_path_4x4}")


if __name__ == "__main__":
    main()
