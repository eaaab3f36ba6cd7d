"""Tests for MockTransport."""

import asyncio

import pytest

from pyharp.exceptions import TransportError
from pyharp.protocol.constants import MessageType
from pyharp.protocol.message import HarpMessage
from pyharp.transport.mock import MockTransport

WRITE_FRAME = bytes([2, 5, 42, 255, 1, 23, 72])


class TestMockTransport:
    """Tests for MockTransport class."""

    @pytest.fixture
    def transport(self):
        """Create a MockTransport instance."""
        return MockTransport()

    @pytest.mark.asyncio
    async def test_open_close(self, transport):
        """Test opening and closing transport."""
        assert not transport.is_open
        await transport.open()
        assert transport.is_open
        await transport.close()
        assert not transport.is_open
        assert transport.is_closed

    @pytest.mark.asyncio
    async def test_double_open_is_noop(self, transport):
        """Test that opening twice has no effect."""
        await transport.open()
        await transport.open()
        assert transport.is_open
        await transport.close()

    @pytest.mark.asyncio
    async def test_reopen_after_close_raises(self, transport):
        """Test that a closed transport cannot be reopened."""
        await transport.open()
        await transport.close()
        with pytest.raises(TransportError):
            await transport.open()

    @pytest.mark.asyncio
    async def test_write_records_data(self, transport):
        """Test that write records data."""
        async with transport:
            await transport.write(WRITE_FRAME)
            await transport.write(HarpMessage.from_byte(43, MessageType.WRITE, 1))
            assert transport.written_data[0] == WRITE_FRAME
            assert transport.last_written == HarpMessage.from_byte(43, MessageType.WRITE, 1).message_bytes
            assert transport.written_messages[0].address == 42

    @pytest.mark.asyncio
    async def test_write_when_closed_raises(self, transport):
        """Test that writing to closed transport raises."""
        with pytest.raises(TransportError):
            await transport.write(WRITE_FRAME)

    @pytest.mark.asyncio
    async def test_feed_reaches_subscribers(self, transport):
        """Test that fed bytes are reassembled and broadcast."""
        async with transport:
            async with transport.messages() as stream:
                transport.feed(WRITE_FRAME[:3])
                transport.feed(WRITE_FRAME[3:])
                message = await asyncio.wait_for(anext(stream), 1.0)
        assert message == HarpMessage(WRITE_FRAME)

    @pytest.mark.asyncio
    async def test_response_follows_write(self, transport):
        """Test that queued responses are delivered after each write."""
        reply = HarpMessage.from_byte(42, MessageType.WRITE, 23)
        transport.add_response(reply)
        async with transport:
            async with transport.messages() as stream:
                await transport.write(WRITE_FRAME)
                message = await asyncio.wait_for(anext(stream), 1.0)
        assert message == reply

    @pytest.mark.asyncio
    async def test_response_callback(self, transport):
        """Test dynamically generated responses."""
        transport.set_response_callback(
            lambda command: HarpMessage.from_byte(command.address, MessageType.WRITE, 99)
        )
        async with transport:
            async with transport.messages() as stream:
                await transport.write(WRITE_FRAME)
                message = await asyncio.wait_for(anext(stream), 1.0)
        assert message.address == 42
        assert message.get_payload_byte() == 99

    @pytest.mark.asyncio
    async def test_read_buffer_size_bounds_chunks(self):
        """Test that large chunks are split by the read buffer size."""
        transport = MockTransport(read_buffer_size=2)
        frames = [HarpMessage.from_byte(address, MessageType.EVENT, address) for address in range(5)]
        async with transport:
            async with transport.messages() as stream:
                transport.feed(frames)
                received = [await asyncio.wait_for(anext(stream), 1.0) for _ in frames]
        assert received == frames

    @pytest.mark.asyncio
    async def test_assert_written(self, transport):
        """Test write assertions."""
        async with transport:
            await transport.write(WRITE_FRAME)
        transport.assert_written(WRITE_FRAME)
        transport.assert_written(HarpMessage(WRITE_FRAME), index=0)
        transport.assert_write_count(1)
        with pytest.raises(AssertionError):
            transport.assert_written(b"\x00")
        with pytest.raises(AssertionError):
            transport.assert_write_count(2)

    @pytest.mark.asyncio
    async def test_clear_written(self, transport):
        """Test clearing the write history."""
        async with transport:
            await transport.write(WRITE_FRAME)
        transport.clear_written()
        assert transport.written_data == []
        assert transport.last_written is None
