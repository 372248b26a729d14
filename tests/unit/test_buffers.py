"""Unit tests for the fixed-capacity ring buffers."""

import numpy as np
import pytest

from bequalize.analysis.buffers import NumericRingBuffer, RingBuffer


class TestRingBuffer:
    def test_keeps_most_recent_items(self):
        buf = RingBuffer[int](3)
        buf.extend([1, 2, 3, 4, 5])

        assert buf.to_list() == [3, 4, 5]
        assert len(buf) == 3
        assert buf.is_full

    def test_partial_fill(self):
        buf = RingBuffer[str](4)
        buf.append("a")
        buf.append("b")

        assert buf.to_list() == ["a", "b"]
        assert not buf.is_full

    def test_latest(self):
        buf = RingBuffer[int](5)
        buf.extend(range(8))

        assert buf.latest(2) == [6, 7]
        assert buf.latest(10) == [3, 4, 5, 6, 7]
        assert buf.latest(0) == []
        assert buf.latest() == [3, 4, 5, 6, 7]

    def test_clear(self):
        buf = RingBuffer[int](2)
        buf.extend([1, 2, 3])

        buf.clear()

        assert len(buf) == 0
        assert buf.to_list() == []
        buf.append(9)
        assert buf.to_list() == [9]

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_non_positive_capacity_raises(self, capacity):
        with pytest.raises(ValueError, match="capacity"):
            RingBuffer(capacity)


class TestNumericRingBuffer:
    def test_wraps_in_arrival_order(self):
        buf = NumericRingBuffer(4)
        buf.extend([1, 2, 3, 4, 5, 6])

        np.testing.assert_array_equal(buf.to_array(), [3.0, 4.0, 5.0, 6.0])

    def test_to_array_is_a_copy(self):
        buf = NumericRingBuffer(3)
        buf.extend([1, 2, 3])

        snapshot = buf.to_array()
        snapshot[0] = 100

        assert buf.to_array()[0] == 1.0

    def test_clear(self):
        buf = NumericRingBuffer(3)
        buf.extend([1, 2])

        buf.clear()

        assert len(buf) == 0
        assert buf.to_array().size == 0

    def test_non_positive_capacity_raises(self):
        with pytest.raises(ValueError):
            NumericRingBuffer(0)
