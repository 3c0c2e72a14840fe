"""
Core systolic compute components.

- PE: Output-stationary multiply-accumulate cell
- PEArray: T×T mesh of PEs with a serpentine drain chain
"""

from .pe import PE
from .pe_array import PEArray

__all__ = ["PE", "PEArray"]
