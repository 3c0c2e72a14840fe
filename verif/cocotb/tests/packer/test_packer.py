"""
Cocotb tests for the BeatPacker.

These tests run gen/packer_16x16.v (32-bit accumulators into 128-bit beats,
generated with scripts/gen_top.py --module packer).
"""

import cocotb
from cocotb.clock import Clock
from cocotb.triggers import FallingEdge, ReadOnly, RisingEdge

ELEM_BITS = 32
SLOTS = 4


async def reset(dut):
    clock = Clock(dut.clk, 10, unit="ns")
    cocotb.start_soon(clock.start())

    dut.in_valid.value = 0
    dut.in_data.value = 0
    dut.in_last.value = 0
    dut.out_ready.value = 0

    dut.rst.value = 1
    await RisingEdge(dut.clk)
    await RisingEdge(dut.clk)
    dut.rst.value = 0
    await FallingEdge(dut.clk)


async def stream(dut, values, ready_every=1, max_cycles=200):
    """Send values (last on the final one) and collect (data, mask, last) beats."""
    beats = []
    idx = 0
    for cycle in range(max_cycles):
        ready = int(cycle % ready_every == 0)
        dut.out_ready.value = ready
        if idx < len(values):
            dut.in_valid.value = 1
            dut.in_data.value = values[idx] & ((1 << ELEM_BITS) - 1)
            dut.in_last.value = int(idx == len(values) - 1)
        else:
            dut.in_valid.value = 0
            dut.in_last.value = 0

        # Sample the settled handshakes just before the edge
        await ReadOnly()
        accepted = idx < len(values) and dut.in_ready.value == 1
        emitted = ready and dut.out_valid.value == 1
        if emitted:
            beats.append(
                (int(dut.out_data.value), int(dut.out_mask.value), int(dut.out_last.value))
            )
        await RisingEdge(dut.clk)
        await FallingEdge(dut.clk)
        if accepted:
            idx += 1
        if beats and beats[-1][2]:
            break
    dut.in_valid.value = 0
    dut.out_ready.value = 0
    return beats


def expected_beats(values):
    beats = []
    for start in range(0, len(values), SLOTS):
        chunk = values[start : start + SLOTS]
        data = sum((v & 0xFFFFFFFF) << (32 * s) for s, v in enumerate(chunk))
        mask = sum(0xF << (4 * s) for s in range(len(chunk)))
        beats.append((data, mask, int(start + SLOTS >= len(values))))
    return beats


@cocotb.test()
async def test_packer_full_beats(dut):
    """Eight elements fill two beats."""
    await reset(dut)

    values = [1, -2, 3, -4, 5, -6, 7, -8]
    beats = await stream(dut, values)

    assert beats == expected_beats(values)
    dut._log.info(f"Packed {len(values)} elements into {len(beats)} beats")


@cocotb.test()
async def test_packer_partial_beat(dut):
    """A last element in a partial beat closes it with a partial mask."""
    await reset(dut)

    values = [10, 20, 30, 40, 50, 60]
    beats = await stream(dut, values)

    assert beats == expected_beats(values)
    assert beats[-1][1] == 0x00FF


@cocotb.test()
async def test_packer_backpressure(dut):
    """A slow consumer sees the same beats."""
    await reset(dut)

    values = list(range(100, 113))
    beats = await stream(dut, values, ready_every=3)

    assert beats == expected_beats(values)
