"""
tilemm - A Python-based tiled systolic matrix-multiply RTL generator.

This package provides configurable hardware generation for a tiled
output-stationary systolic matmul accelerator using Amaranth HDL.
"""

from .config import AcceleratorConfig, BitOrder, Layout, ReadDuringWrite

__version__ = "0.1.0"
__all__ = ["AcceleratorConfig", "BitOrder", "Layout", "ReadDuringWrite", "__version__"]
