"""Tests for transport read loop, broadcast and shutdown."""

import asyncio
import logging
import threading

import pytest

from pyharp.exceptions import TransportError
from pyharp.protocol.constants import MessageType
from pyharp.protocol.message import HarpMessage
from pyharp.transport.mock import MockTransport
from pyharp.transport.observable import CallbackObserver, MessageBroadcaster


class RecordingObserver:
    """Observer that records every notification."""

    def __init__(self):
        self.messages = []
        self.errors = []
        self.completed = 0
        self.done = asyncio.Event()

    def on_next(self, message):
        self.messages.append(message)

    def on_error(self, error):
        self.errors.append(error)
        self.done.set()

    def on_completed(self):
        self.completed += 1
        self.done.set()


class RaisingObserver(RecordingObserver):
    """Observer that fails on its first message."""

    def on_next(self, message):
        super().on_next(message)
        raise RuntimeError("observer failure")


def event(address, value):
    return HarpMessage.from_byte(address, MessageType.EVENT, value)


async def wait_for_count(observer, count):
    for _ in range(200):
        if len(observer.messages) >= count:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"Expected {count} messages, got {len(observer.messages)}")


class TestMessageBroadcaster:
    """Tests for MessageBroadcaster class."""

    def test_publish_to_all(self):
        """Test that each observer receives each message."""
        broadcaster = MessageBroadcaster()
        first, second = RecordingObserver(), RecordingObserver()
        broadcaster.subscribe(first)
        broadcaster.subscribe(second)
        broadcaster.publish(event(1, 1))
        assert first.messages == second.messages == [event(1, 1)]

    def test_dispose_stops_delivery(self):
        """Test that disposing a subscription detaches the observer."""
        broadcaster = MessageBroadcaster()
        observer = RecordingObserver()
        subscription = broadcaster.subscribe(observer)
        subscription.dispose()
        subscription.dispose()
        broadcaster.publish(event(1, 1))
        assert observer.messages == []
        assert broadcaster.observer_count == 0

    def test_subscription_context_manager(self):
        """Test that leaving the with block disposes the subscription."""
        broadcaster = MessageBroadcaster()
        observer = RecordingObserver()
        with broadcaster.subscribe(observer) as subscription:
            broadcaster.publish(event(1, 1))
        assert subscription.disposed
        broadcaster.publish(event(1, 2))
        assert len(observer.messages) == 1

    def test_failing_observer_is_isolated(self, caplog):
        """Test that a raising observer is detached without affecting others."""
        broadcaster = MessageBroadcaster()
        failing, healthy = RaisingObserver(), RecordingObserver()
        broadcaster.subscribe(failing)
        broadcaster.subscribe(healthy)
        with caplog.at_level(logging.WARNING, logger="pyharp.transport.observable"):
            broadcaster.publish(event(1, 1))
            broadcaster.publish(event(1, 2))
        assert len(failing.messages) == 1
        assert len(healthy.messages) == 2
        assert any("raised" in record.message for record in caplog.records)

    def test_dispose_inside_on_next(self):
        """Test that an observer may dispose itself while being notified."""
        broadcaster = MessageBroadcaster()
        received = []
        subscription = None

        def on_next(message):
            received.append(message)
            subscription.dispose()

        subscription = broadcaster.subscribe(CallbackObserver(on_next))
        broadcaster.publish(event(1, 1))
        broadcaster.publish(event(1, 2))
        assert received == [event(1, 1)]

    def test_terminal_notification_once(self):
        """Test that completion is delivered once and ends the stream."""
        broadcaster = MessageBroadcaster()
        observer = RecordingObserver()
        broadcaster.subscribe(observer)
        broadcaster.complete()
        broadcaster.complete()
        broadcaster.error(TransportError("late"))
        broadcaster.publish(event(1, 1))
        assert observer.completed == 1
        assert observer.errors == []
        assert observer.messages == []

    def test_late_subscriber_gets_terminal_error(self):
        """Test that subscribing after a failure reports the failure."""
        broadcaster = MessageBroadcaster()
        error = TransportError("gone")
        broadcaster.error(error)
        observer = RecordingObserver()
        subscription = broadcaster.subscribe(observer)
        assert observer.errors == [error]
        assert subscription.disposed

    def test_concurrent_subscribe_and_publish(self):
        """Test subscribe and dispose from other threads while publishing."""
        broadcaster = MessageBroadcaster()
        steady = RecordingObserver()
        broadcaster.subscribe(steady)

        def churn():
            for _ in range(500):
                broadcaster.subscribe(RecordingObserver()).dispose()

        threads = [threading.Thread(target=churn) for _ in range(4)]
        for thread in threads:
            thread.start()
        for value in range(500):
            broadcaster.publish(event(1, value % 256))
        for thread in threads:
            thread.join()
        assert len(steady.messages) == 500
        assert broadcaster.observer_count == 1


class TestTransportReadLoop:
    """Tests for the HarpTransport read loop using MockTransport."""

    @pytest.mark.asyncio
    async def test_messages_in_wire_order(self):
        """Test that subscribers see messages in wire order."""
        transport = MockTransport()
        observer = RecordingObserver()
        expected = [event(address, address) for address in range(10)]
        async with transport:
            transport.subscribe(observer)
            for message in expected:
                transport.feed(message)
            await wait_for_count(observer, len(expected))
        assert observer.messages == expected
        assert observer.completed == 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        """Test that closing twice completes subscribers once."""
        transport = MockTransport()
        observer = RecordingObserver()
        await transport.open()
        transport.subscribe(observer)
        await transport.close()
        await transport.close()
        assert observer.completed == 1
        assert observer.errors == []

    @pytest.mark.asyncio
    async def test_unexpected_eof_is_error(self):
        """Test that end of stream on a live link fails subscribers."""
        transport = MockTransport()
        observer = RecordingObserver()
        await transport.open()
        transport.subscribe(observer)
        transport.feed_eof()
        await asyncio.wait_for(observer.done.wait(), 1.0)
        assert len(observer.errors) == 1
        assert isinstance(observer.errors[0], TransportError)
        assert observer.completed == 0
        assert transport.is_closed
        await transport.close()
        assert observer.completed == 0

    @pytest.mark.asyncio
    async def test_read_failure_is_wrapped(self):
        """Test that I/O errors reach subscribers as TransportError."""
        transport = MockTransport()
        observer = RecordingObserver()
        await transport.open()
        transport.subscribe(observer)
        transport.fail(OSError("device unplugged"))
        await asyncio.wait_for(observer.done.wait(), 1.0)
        error = observer.errors[0]
        assert isinstance(error, TransportError)
        assert isinstance(error.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_messages_stream_raises_on_failure(self):
        """Test that the async iterator re-raises the link failure."""
        transport = MockTransport()
        await transport.open()
        async with transport.messages() as stream:
            transport.feed(event(1, 1))
            transport.feed_eof()
            assert await asyncio.wait_for(anext(stream), 1.0) == event(1, 1)
            with pytest.raises(TransportError):
                await asyncio.wait_for(anext(stream), 1.0)

    @pytest.mark.asyncio
    async def test_messages_stream_ends_on_close(self):
        """Test that the async iterator stops after close."""
        transport = MockTransport()
        await transport.open()
        stream = transport.messages()
        transport.feed(event(1, 1))
        await asyncio.sleep(0.01)
        await transport.close()
        received = [message async for message in stream]
        assert received == [event(1, 1)]

    @pytest.mark.asyncio
    async def test_close_nowait_from_observer(self):
        """Test requesting shutdown from inside a notification."""
        transport = MockTransport()
        observer = RecordingObserver()
        await transport.open()
        transport.subscribe(observer)
        transport.subscribe(CallbackObserver(lambda message: transport.close_nowait()))
        transport.feed(event(1, 1))
        await asyncio.wait_for(observer.done.wait(), 1.0)
        assert observer.completed == 1
        assert transport.is_closed

    @pytest.mark.asyncio
    async def test_close_nowait_from_other_thread(self):
        """Test requesting shutdown from a foreign thread."""
        transport = MockTransport()
        observer = RecordingObserver()
        await transport.open()
        transport.subscribe(observer)
        futures = []
        thread = threading.Thread(target=lambda: futures.append(transport.close_nowait()))
        thread.start()
        thread.join()
        await asyncio.wait_for(observer.done.wait(), 1.0)
        assert observer.completed == 1
        assert futures[0] is not None

    @pytest.mark.asyncio
    async def test_ignore_errors_on_transport(self):
        """Test that the transport drops error events when configured."""
        transport = MockTransport(ignore_errors=True)
        observer = RecordingObserver()
        frame = bytearray(event(32, 1).message_bytes)
        frame[0] |= 0x08
        frame[-1] = sum(frame[:-1]) & 0xFF
        async with transport:
            transport.subscribe(observer)
            transport.feed(bytes(frame) + event(33, 2).message_bytes)
            await wait_for_count(observer, 1)
        assert observer.messages == [event(33, 2)]


class SlowOpenTransport(MockTransport):
    """MockTransport whose stream takes a moment to open."""

    def __init__(self):
        super().__init__()
        self.opens = 0

    async def _open_stream(self):
        self.opens += 1
        await asyncio.sleep(0.01)
        await super()._open_stream()


class FlakyOpenTransport(MockTransport):
    """MockTransport whose first opens fail."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    async def _open_stream(self):
        if self.failures:
            self.failures -= 1
            raise TransportError("port busy")
        await super()._open_stream()


def read_tasks():
    return [task for task in asyncio.all_tasks() if task.get_name().startswith("harp-read-")]


class TestTransportLifecycle:
    """Tests for overlapping open and close requests."""

    @pytest.mark.asyncio
    async def test_overlapping_open_starts_one_reader(self):
        """Test that concurrent open calls share one stream and read loop."""
        transport = SlowOpenTransport()
        await asyncio.gather(transport.open(), transport.open(), transport.open())
        readers = read_tasks()
        assert transport.opens == 1
        assert len(readers) == 1
        await transport.close()
        assert all(task.done() for task in readers)

    @pytest.mark.asyncio
    async def test_failed_open_can_be_retried(self):
        """Test that an open failure does not leave the transport half open."""
        transport = FlakyOpenTransport(failures=1)
        with pytest.raises(TransportError):
            await transport.open()
        assert not transport.is_open
        assert not transport.is_closed
        await transport.open()
        assert transport.is_open
        await transport.close()

    @pytest.mark.asyncio
    async def test_close_while_opening(self):
        """Test that a close during open wins and releases the stream."""
        transport = SlowOpenTransport()
        opening = asyncio.ensure_future(transport.open())
        await asyncio.sleep(0)
        await transport.close()
        with pytest.raises(TransportError):
            await opening
        assert transport.is_closed
        assert not transport.is_open
        assert read_tasks() == []

    @pytest.mark.asyncio
    async def test_close_nowait_before_open_from_other_thread(self):
        """Test that closing an unopened transport from a thread is final."""
        transport = MockTransport()
        completed = []
        transport.subscribe(
            CallbackObserver(lambda message: None, on_completed=lambda: completed.append(True))
        )
        thread = threading.Thread(target=transport.close_nowait)
        thread.start()
        thread.join()
        assert transport.is_closed
        assert completed == [True]
        with pytest.raises(TransportError):
            await transport.open()
        transport.close_nowait()
        await transport.close()
        assert completed == [True]

    def test_close_nowait_without_loop(self):
        """Test closing an unopened transport outside any event loop."""
        transport = MockTransport()
        assert transport.close_nowait() is None
        assert transport.is_closed
