"""
Golden models and beat packing helpers.

This module provides the software side of the hardware data formats:
- element_dtype / accumulator_dtype: numpy dtypes matching a configuration
- reference_matmul: exact C = A × B with accumulator wraparound
- pack_elements / unpack_beat: element lists <-> bus beats, honouring BitOrder
- to_signed: two's complement reinterpretation of a raw bit pattern
"""

import numpy as np

from ..config import AcceleratorConfig, BitOrder

_INT_DTYPES = {8: np.int8, 16: np.int16, 32: np.int32, 64: np.int64}
_UINT_DTYPES = {8: np.uint8, 16: np.uint16, 32: np.uint32, 64: np.uint64}


def element_dtype(config: AcceleratorConfig):
    """numpy dtype of an A/B element."""
    table = _INT_DTYPES if config.signed else _UINT_DTYPES
    try:
        return np.dtype(table[config.elem_bits])
    except KeyError:
        raise ValueError(f"no numpy dtype for {config.elem_bits}-bit elements") from None


def accumulator_dtype(config: AcceleratorConfig):
    """numpy dtype of a C element (always signed)."""
    try:
        return np.dtype(_INT_DTYPES[config.acc_bits])
    except KeyError:
        raise ValueError(f"no numpy dtype for {config.acc_bits}-bit accumulators") from None


def to_signed(value: int, bits: int) -> int:
    """Interpret the low `bits` bits of value as two's complement."""
    value &= (1 << bits) - 1
    if value & (1 << (bits - 1)):
        value -= 1 << bits
    return value


def reference_matmul(a: np.ndarray, b: np.ndarray, acc_bits: int = 32) -> np.ndarray:
    """
    Exact matrix product reduced modulo 2**acc_bits.

    Computed with Python integers so no intermediate overflows, then wrapped
    into the signed accumulator range the way the PE accumulators wrap.

    Example:
        >>> a = np.array([[1, 2], [3, 4]], dtype=np.int8)
        >>> reference_matmul(a, np.eye(2, dtype=np.int8)).tolist()
        [[1, 2], [3, 4]]
    """
    exact = a.astype(object) @ b.astype(object)
    wrapped = np.vectorize(lambda v: to_signed(int(v), acc_bits), otypes=[object])(exact)
    return wrapped.astype(_INT_DTYPES.get(acc_bits, object))


def _lane(slot: int, slots: int, bit_order: BitOrder) -> int:
    return slots - 1 - slot if bit_order == BitOrder.MSB_FIRST else slot


def pack_elements(
    values,
    elem_bits: int,
    beat_bits: int,
    bit_order: BitOrder = BitOrder.LSB_FIRST,
) -> list[tuple[int, int]]:
    """
    Pack element values into (beat, byte_mask) pairs.

    The final beat is zero-padded and its mask covers only real elements,
    matching the BeatPacker output for a stream whose last element closes
    the transfer.
    """
    slots = beat_bits // elem_bits
    elem_mask = (1 << elem_bits) - 1
    byte_ones = (1 << (elem_bits // 8)) - 1
    values = list(values)

    beats = []
    for start in range(0, len(values), slots):
        data = 0
        mask = 0
        for slot, value in enumerate(values[start : start + slots]):
            lane = _lane(slot, slots, bit_order)
            data |= (int(value) & elem_mask) << (lane * elem_bits)
            mask |= byte_ones << (lane * (elem_bits // 8))
        beats.append((data, mask))
    return beats


def unpack_beat(
    beat: int,
    elem_bits: int,
    beat_bits: int,
    bit_order: BitOrder = BitOrder.LSB_FIRST,
    signed: bool = True,
    count: int | None = None,
) -> list[int]:
    """Split a beat into its first `count` elements (all slots by default)."""
    slots = beat_bits // elem_bits
    count = slots if count is None else count
    elem_mask = (1 << elem_bits) - 1

    values = []
    for slot in range(count):
        raw = (beat >> (_lane(slot, slots, bit_order) * elem_bits)) & elem_mask
        values.append(to_signed(raw, elem_bits) if signed else raw)
    return values
