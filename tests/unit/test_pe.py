"""
Unit tests for the Processing Element (PE).

These tests verify:
1. Multiply-accumulate with signed and unsigned operands
2. Accumulator wraparound at acc_bits
3. Registered forwarding of operands and the drain token
4. Drain edge: valid/strobe and the accumulator lock
5. acc_clear priority
"""

import pytest
from amaranth.sim import Simulator

from tilemm.config import AcceleratorConfig
from tilemm.core import PE


def _run(dut, testbench):
    sim = Simulator(dut)
    sim.add_clock(1e-6)
    sim.add_testbench(testbench)
    sim.run()


async def _mac(ctx, pe, a, b):
    ctx.set(pe.in_a, a)
    ctx.set(pe.in_b, b)
    ctx.set(pe.in_a_valid, 1)
    ctx.set(pe.in_b_valid, 1)
    await ctx.tick()
    ctx.set(pe.in_a_valid, 0)
    ctx.set(pe.in_b_valid, 0)


class TestPE:
    """Test suite for the PE."""

    @pytest.fixture
    def config(self):
        return AcceleratorConfig(dim=4, max_burst=4, queue_depth=4)

    @pytest.fixture
    def pe(self, config):
        return PE(config)

    def test_instantiation(self, pe):
        assert pe.config.elem_bits == 8
        assert pe.config.acc_bits == 32
        assert pe.out_acc.shape().signed

    def test_narrow_accumulator_rejected(self, config):
        config.acc_bits = 8
        with pytest.raises(ValueError, match="accumulator"):
            PE(config)

    def test_signed_mac(self, pe):
        results = []

        async def testbench(ctx):
            await _mac(ctx, pe, 3, 4)
            results.append(ctx.get(pe.out_acc))
            await _mac(ctx, pe, -3, 5)
            results.append(ctx.get(pe.out_acc))
            await _mac(ctx, pe, -128, -128)
            results.append(ctx.get(pe.out_acc))

        _run(pe, testbench)
        assert results == [12, -3, 16381]

    def test_one_valid_is_not_enough(self, pe):
        results = []

        async def testbench(ctx):
            ctx.set(pe.in_a, 7)
            ctx.set(pe.in_b, 7)
            ctx.set(pe.in_a_valid, 1)
            await ctx.tick()
            ctx.set(pe.in_a_valid, 0)
            ctx.set(pe.in_b_valid, 1)
            await ctx.tick()
            results.append(ctx.get(pe.out_acc))

        _run(pe, testbench)
        assert results == [0]

    def test_unsigned_mac(self):
        pe = PE(AcceleratorConfig(dim=4, signed=False, max_burst=4, queue_depth=4))
        results = []

        async def testbench(ctx):
            await _mac(ctx, pe, 200, 200)
            await _mac(ctx, pe, 255, 255)
            results.append(ctx.get(pe.out_acc))

        _run(pe, testbench)
        assert results == [40000 + 65025]

    def test_accumulator_wraps(self):
        pe = PE(AcceleratorConfig(dim=4, acc_bits=16, beat_bits=64, max_burst=4, queue_depth=4))
        results = []

        async def testbench(ctx):
            for _ in range(3):
                await _mac(ctx, pe, 127, 127)
            results.append(ctx.get(pe.out_acc))

        _run(pe, testbench)
        # 3 * 16129 = 48387 wraps to 48387 - 65536
        assert results == [-17149]

    def test_forwarding_is_registered(self, pe):
        seen = []

        async def testbench(ctx):
            ctx.set(pe.in_a, -5)
            ctx.set(pe.in_a_valid, 1)
            ctx.set(pe.in_b, 9)
            ctx.set(pe.in_drain, 1)
            seen.append((ctx.get(pe.out_a), ctx.get(pe.out_b), ctx.get(pe.out_drain)))
            await ctx.tick()
            seen.append((ctx.get(pe.out_a), ctx.get(pe.out_b), ctx.get(pe.out_drain)))
            seen.append((ctx.get(pe.out_a_valid), ctx.get(pe.out_b_valid)))

        _run(pe, testbench)
        assert seen == [(0, 0, 0), (-5, 9, 1), (1, 0)]

    def test_drain_edge_locks_accumulator(self, pe):
        """The rising drain edge snapshots the accumulator and stops MACs."""
        trace = []

        async def testbench(ctx):
            await _mac(ctx, pe, 6, 7)

            ctx.set(pe.in_drain, 1)
            ctx.set(pe.in_a, 1)
            ctx.set(pe.in_b, 1)
            ctx.set(pe.in_a_valid, 1)
            ctx.set(pe.in_b_valid, 1)
            for _ in range(3):
                await ctx.tick()
                trace.append(
                    (ctx.get(pe.out_acc), ctx.get(pe.out_acc_valid), ctx.get(pe.out_acc_strobe))
                )

            # A second token edge does not re-strobe a locked cell
            ctx.set(pe.in_drain, 0)
            await ctx.tick()
            ctx.set(pe.in_drain, 1)
            await ctx.tick()
            trace.append(
                (ctx.get(pe.out_acc), ctx.get(pe.out_acc_valid), ctx.get(pe.out_acc_strobe))
            )

        _run(pe, testbench)
        assert trace == [(42, 1, 1), (42, 1, 0), (42, 1, 0), (42, 1, 0)]

    def test_clear_has_priority(self, pe):
        trace = []

        async def testbench(ctx):
            await _mac(ctx, pe, 10, 10)
            ctx.set(pe.in_drain, 1)
            await ctx.tick()
            trace.append((ctx.get(pe.out_acc), ctx.get(pe.out_acc_valid)))

            # Clear wins over a simultaneous MAC
            ctx.set(pe.in_drain, 0)
            ctx.set(pe.acc_clear, 1)
            ctx.set(pe.in_a, 2)
            ctx.set(pe.in_b, 2)
            ctx.set(pe.in_a_valid, 1)
            ctx.set(pe.in_b_valid, 1)
            await ctx.tick()
            trace.append((ctx.get(pe.out_acc), ctx.get(pe.out_acc_valid)))

            # Unlocked again: accumulation resumes
            ctx.set(pe.acc_clear, 0)
            await ctx.tick()
            trace.append((ctx.get(pe.out_acc), ctx.get(pe.out_acc_valid)))

        _run(pe, testbench)
        assert trace == [(100, 1), (0, 0), (4, 0)]
