"""
On-chip memory components.

- MemoryBank: Dual-port bank with read-during-write policy
- BankArray: N banks addressed in parallel (A/B banksets, C result rows)
- ElasticQueue: FWFT FIFO between stream stages
"""

from .bank import MemoryBank
from .bank_array import BankArray
from .queue import ElasticQueue

__all__ = ["MemoryBank", "BankArray", "ElasticQueue"]
