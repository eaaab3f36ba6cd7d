"""Tests for the reassembler ring buffer."""

import pytest

from pyharp.protocol.ring_buffer import RingBuffer


class TestRingBuffer:
    """Tests for RingBuffer class."""

    def test_write_and_read(self):
        """Test reading back written bytes."""
        ring = RingBuffer(8)
        ring.write(b"abc")
        assert ring.count == 3
        assert ring.read(3) == b"abc"
        assert ring.count == 0

    def test_wraparound(self):
        """Test writes that wrap past the end of the storage."""
        ring = RingBuffer(4)
        ring.write(b"abc")
        assert ring.read(2) == b"ab"
        ring.write(b"def")
        assert ring.capacity == 4
        assert ring.copy(4) == b"cdef"
        assert ring.peek(0) == ord("c")
        assert ring.peek(3) == ord("f")

    def test_grows_by_doubling(self):
        """Test that capacity doubles and unread content survives."""
        ring = RingBuffer(4)
        ring.write(b"ab")
        ring.skip(1)
        ring.write(b"cdefgh")
        assert ring.capacity == 8
        assert ring.read(7) == b"bcdefgh"

    def test_grows_multiple_times(self):
        """Test growth for writes much larger than the capacity."""
        ring = RingBuffer(2)
        ring.write(bytes(range(20)))
        assert ring.capacity == 32
        assert ring.read(20) == bytes(range(20))

    def test_skip_rewinds_when_empty(self):
        """Test that cursors reset once every byte is consumed."""
        ring = RingBuffer(8)
        ring.write(b"abcde")
        ring.skip(5)
        assert ring.head == 0
        assert ring.tail == 0

    def test_peek_out_of_range_raises(self):
        """Test peek bounds."""
        ring = RingBuffer(4)
        ring.write(b"a")
        with pytest.raises(IndexError):
            ring.peek(1)

    def test_copy_too_many_raises(self):
        """Test copy bounds."""
        ring = RingBuffer(4)
        with pytest.raises(IndexError):
            ring.copy(1)

    def test_skip_too_many_raises(self):
        """Test skip bounds."""
        ring = RingBuffer(4)
        ring.write(b"ab")
        with pytest.raises(IndexError):
            ring.skip(3)

    def test_clear(self):
        """Test discarding buffered data."""
        ring = RingBuffer(4)
        ring.write(b"abc")
        ring.clear()
        assert len(ring) == 0
        assert ring.free == 4

    def test_invalid_capacity_raises(self):
        """Test capacity validation."""
        with pytest.raises(ValueError):
            RingBuffer(0)
