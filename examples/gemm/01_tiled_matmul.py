#!/usr/bin/env python3
"""
Tiled Matrix Multiply Demo.

This example runs C = A @ B on the cycle-accurate RTL model of the tiled
systolic accelerator. It shows:

1. Problem Setup
   - Define input matrices A and B using NumPy

2. Hardware Configuration
   - Mesh size, element/accumulator widths, bus width

3. Memory Layout and Execution
   - Place A, B and C in simulated DRAM (optionally with padded rows)
   - Start the scheduler and serve its Avalon-MM traffic until done

4. Verification
   - Read C back from DRAM and compare against NumPy

Usage:
    python 01_tiled_matmul.py [--size N] [--dim T] [--ld LD] [--stall P] [--vcd FILE]

    --size N      Matrix size (default: 8, creates NxN matrices)
    --dim T       Mesh size (default: 4)
    --ld LD       Leading dimension of A, B and C in elements (default: N)
    --stall P     Probability of waitrequest per cycle (default: 0)
    --vcd FILE    Dump a waveform
"""

import argparse
import sys
from pathlib import Path

import numpy as np

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from tilemm.config import AcceleratorConfig  # noqa: E402
from tilemm.util import reference_matmul, simulate_matmul  # noqa: E402


def run_demo(
    matrix_size: int = 8,
    dim: int = 4,
    ld: int = 0,
    stall_prob: float = 0.0,
    vcd_path: str | None = None,
) -> bool:
    """
    Run the tiled matrix multiply demonstration.

    Returns:
        True when the RTL result matches NumPy
    """
    print("=" * 70)
    print("Tiled Matrix Multiply Demo")
    print("=" * 70)

    # -------------------------------------------------------------------------
    # 1. Problem Setup
    # -------------------------------------------------------------------------
    print("\n1. Problem Setup")
    print("-" * 40)

    n = matrix_size
    print(f"   Computing C[{n}x{n}] = A[{n}x{n}] @ B[{n}x{n}]")

    rng = np.random.default_rng(42)
    A = rng.integers(-10, 10, size=(n, n)).astype(np.int8)
    B = rng.integers(-10, 10, size=(n, n)).astype(np.int8)

    if n <= 8:
        print(f"\n   Matrix A ({n}x{n}):")
        print(A)
        print(f"\n   Matrix B ({n}x{n}):")
        print(B)

    C_expected = reference_matmul(A, B)

    # -------------------------------------------------------------------------
    # 2. Hardware Configuration
    # -------------------------------------------------------------------------
    print("\n2. Hardware Configuration")
    print("-" * 40)

    config = AcceleratorConfig(dim=dim, max_burst=4, queue_depth=4)

    print(f"   Mesh size: {config.dim} x {config.dim}")
    print(f"   Element precision: {config.elem_bits}-bit")
    print(f"   Accumulator precision: {config.acc_bits}-bit")
    print(f"   Bus width: {config.beat_bits}-bit ({config.elems_per_beat} elements per beat)")
    print(f"   Max burst: {config.max_burst} beats")
    print(f"   Tiles per dimension: {n // dim if n % dim == 0 else 'invalid'}")

    # -------------------------------------------------------------------------
    # 3. Memory Layout and Execution
    # -------------------------------------------------------------------------
    print("\n3. Memory Layout and Execution")
    print("-" * 40)
    print("   Running RTL simulation...")

    result = simulate_matmul(
        A,
        B,
        config,
        lda=ld,
        ldb=ld,
        ldc=ld,
        stall_prob=stall_prob,
        vcd_path=vcd_path,
    )

    print("\n   DRAM Layout:")
    result.dram.print_memory_map()
    print(f"     C: 0x{result.base_c:08X} ({n * n * config.acc_bytes} bytes)")

    print(f"\n   Cycles: {result.cycles}")
    print(f"   Read beats: {result.read_beats}")
    print(f"   Write beats: {result.write_beats}")
    print(f"   Status: {result.error.name}")

    if not result.ok:
        print("\n   FAIL: accelerator reported an error")
        return False

    # -------------------------------------------------------------------------
    # 4. Verification
    # -------------------------------------------------------------------------
    print("\n4. Verification")
    print("-" * 40)

    if n <= 8:
        print(f"   Result C ({n}x{n}):")
        print(result.c)

    if np.array_equal(result.c, C_expected):
        print("\n   PASS: Result matches expected!")
    else:
        print("\n   FAIL: Result does not match expected!")
        print(f"   Difference:\n{result.c - C_expected}")
        return False

    print("\n" + "=" * 70)
    print("Demo completed successfully!")
    print("=" * 70)
    return True


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Tiled Matrix Multiply Demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--size", type=int, default=8, help="Matrix size N (default: 8)")
    parser.add_argument("--dim", type=int, default=4, help="Mesh size T (default: 4)")
    parser.add_argument("--ld", type=int, default=0, help="Leading dimension (default: N)")
    parser.add_argument("--stall", type=float, default=0.0, help="waitrequest probability")
    parser.add_argument("--vcd", type=str, default=None, help="Write a VCD waveform")

    args = parser.parse_args()

    success = run_demo(
        matrix_size=args.size,
        dim=args.dim,
        ld=args.ld,
        stall_prob=args.stall,
        vcd_path=args.vcd,
    )
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
