#!/usr/bin/env python3
"""
Memory Traffic Report.

Runs one tiled matmul and summarises the external-memory transactions the
accelerator issued: how many bursts were needed per operand, the burst
length histogram, and how the bus was shared between reads and writes
over time.

Usage:
    python 02_memory_traffic.py [--size N] [--dim T] [--max-burst B] [--bins K]
"""

import argparse
import sys
from collections import Counter
from pathlib import Path

import numpy as np

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from tilemm.config import AcceleratorConfig  # noqa: E402
from tilemm.util import simulate_matmul  # noqa: E402


def region_of(addr, result, n, config):
    """Name the matrix an address falls into."""
    spans = {
        "A": (result.base_a, n * n * config.elem_bytes),
        "B": (result.base_b, n * n * config.elem_bytes),
        "C": (result.base_c, n * n * config.acc_bytes),
    }
    for name, (base, size) in spans.items():
        # Reads start on the beat containing the first element
        if base - config.beat_bytes < addr < base + size:
            return name
    return "?"


def main():
    parser = argparse.ArgumentParser(description="Memory traffic report")
    parser.add_argument("--size", type=int, default=16, help="Matrix size N (default: 16)")
    parser.add_argument("--dim", type=int, default=4, help="Mesh size T (default: 4)")
    parser.add_argument("--max-burst", type=int, default=4, help="Max beats per burst")
    parser.add_argument("--bins", type=int, default=20, help="Timeline columns")
    args = parser.parse_args()

    config = AcceleratorConfig(dim=args.dim, max_burst=args.max_burst, queue_depth=4)
    n = args.size

    rng = np.random.default_rng(0)
    A = rng.integers(-128, 128, size=(n, n)).astype(np.int8)
    B = rng.integers(-128, 128, size=(n, n)).astype(np.int8)

    result = simulate_matmul(A, B, config)
    if not result.ok:
        print(f"Accelerator error: {result.error.name}")
        sys.exit(1)

    print("=" * 70)
    print(f"Memory traffic for N={n}, T={config.dim}, {config.beat_bits}-bit bus")
    print("=" * 70)

    per_region = Counter()
    beats_per_region = Counter()
    burst_hist = Counter()
    for t in result.transactions:
        region = region_of(t.address, result, n, config)
        per_region[(region, t.kind)] += 1
        beats_per_region[region] += t.burstcount
        if t.kind == "read":
            burst_hist[t.burstcount] += 1

    print("\nTransactions:")
    for (region, kind), count in sorted(per_region.items()):
        print(f"  {region} {kind:5s}: {count:6d} requests, {beats_per_region[region]:6d} beats")

    print("\nRead burst lengths:")
    for length in sorted(burst_hist):
        print(f"  {length:3d} beats: {burst_hist[length]}")

    useful = 2 * n * n * config.elem_bytes + n * n * config.acc_bytes
    moved = (result.read_beats + result.write_beats) * config.beat_bytes
    print(f"\nBytes moved: {moved} (matrix footprint {useful})")
    print(f"Cycles: {result.cycles}")
    print(f"Bus utilisation: {100.0 * (result.read_beats + result.write_beats) / result.cycles:.1f}%")

    print("\nTimeline (r = read beats, w = write beats per bin):")
    width = max(1, result.cycles // args.bins + 1)
    reads = [0] * args.bins
    writes = [0] * args.bins
    for t in result.transactions:
        b = min(t.cycle // width, args.bins - 1)
        if t.kind == "read":
            reads[b] += t.burstcount
        else:
            writes[b] += 1
    print("  r " + " ".join(f"{v:3d}" for v in reads))
    print("  w " + " ".join(f"{v:3d}" for v in writes))


if __name__ == "__main__":
    main()
