"""
DMA engines for external memory transfers.

This module contains:
- TileLoader: External memory -> bank array (burst read, unpack, route)
- BeatPacker: Element stream -> bus beats with byte enables
- MemoryWriter: Beat stream -> external memory (single-beat writes)
- MemoryArbiter: Fixed-priority sharing of the external channel
"""

from .arbiter import MemoryArbiter
from .loader import TileLoader
from .packer import BeatPacker
from .writer import MemoryWriter

__all__ = ["MemoryArbiter", "TileLoader", "BeatPacker", "MemoryWriter"]
