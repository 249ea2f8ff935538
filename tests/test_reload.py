"""
Tests for FakeForge Hot Reload

Tests:
- Debounce collapsing of rapid triggers
- Non-overlapping rebuilds with a single queued follow-up
- Failed rebuilds keep the previous table
- Watcher restarts when watched paths change
- Live-update channel messages and shutdown
"""

import asyncio
from unittest.mock import AsyncMock, Mock, call

from fakeforge.reload import LiveUpdateChannel, ReloadCoordinator, format_event


class FakeHandle:
    """Minimal serving handle recording swaps."""

    def __init__(self, table):
        self.current = table
        self.swaps = []

    def swap(self, table):
        previous, self.current = self.current, table
        self.swaps.append(table)
        return previous


class TestDebounce:
    """Test trigger debouncing."""

    def test_rapid_triggers_collapse_into_one_rebuild(self):
        """Test many triggers inside the window cause one rebuild."""
        calls = []
        handle = FakeHandle('v0')

        async def scenario():
            coordinator = ReloadCoordinator(lambda refresh: calls.append(refresh) or 'v1', handle, debounce=0.05)
            for _ in range(10):
                coordinator.trigger("test")
                await asyncio.sleep(0.005)
            await coordinator.wait_idle()
            return coordinator

        coordinator = asyncio.run(scenario())

        assert calls == [True]
        assert handle.current == 'v1'
        assert coordinator.rebuild_count == 1

    def test_separate_windows_rebuild_twice(self):
        """Test triggers far apart rebuild once each."""
        calls = []

        async def scenario():
            coordinator = ReloadCoordinator(lambda refresh: calls.append(refresh) or 'v', FakeHandle('v0'), debounce=0.02)
            coordinator.trigger()
            await coordinator.wait_idle()
            coordinator.trigger()
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert len(calls) == 2

    def test_close_cancels_pending_timer(self):
        """Test close() drops a pending rebuild."""
        rebuild = Mock(return_value='v1')

        async def scenario():
            coordinator = ReloadCoordinator(rebuild, FakeHandle('v0'), debounce=0.05)
            coordinator.trigger()
            assert coordinator.pending is True
            coordinator.close()
            await asyncio.sleep(0.1)
            coordinator.trigger()
            return coordinator

        coordinator = asyncio.run(scenario())

        rebuild.assert_not_called()
        assert coordinator.pending is False


class TestNonOverlap:
    """Test the running/queued state machine."""

    def test_trigger_during_rebuild_queues_exactly_one_more(self):
        """Test triggers during a rebuild produce a single follow-up."""
        calls = []
        active = []
        overlaps = []

        async def scenario():
            gate = asyncio.Event()

            async def rebuild(refresh):
                if active:
                    overlaps.append(True)
                active.append(True)
                calls.append(refresh)
                await gate.wait()
                active.pop()
                return f"v{len(calls)}"

            handle = FakeHandle('v0')
            coordinator = ReloadCoordinator(rebuild, handle, debounce=0.02)

            coordinator.trigger("first")
            await asyncio.sleep(0.05)
            assert coordinator.running is True

            for _ in range(3):
                coordinator.trigger("during")
                await asyncio.sleep(0.04)
            assert coordinator.queued is True

            gate.set()
            await coordinator.wait_idle()
            return handle

        handle = asyncio.run(scenario())

        assert len(calls) == 2
        assert overlaps == []
        assert handle.current == 'v2'

    def test_failed_rebuild_keeps_previous_table(self):
        """Test a failing build leaves the live table untouched."""
        handle = FakeHandle('v0')
        on_reloaded = Mock()

        def rebuild(refresh):
            raise SyntaxError("broken models.py")

        async def scenario():
            coordinator = ReloadCoordinator(rebuild, handle, on_reloaded=on_reloaded)
            swapped = await coordinator.rebuild_now()
            return coordinator, swapped

        coordinator, swapped = asyncio.run(scenario())

        assert swapped is False
        assert handle.current == 'v0'
        assert handle.swaps == []
        assert coordinator.failure_count == 1
        on_reloaded.assert_not_called()

    def test_successful_rebuild_notifies(self):
        """Test a swap broadcasts reload and calls the callback."""
        handle = FakeHandle('v0')
        on_reloaded = Mock()
        channel = LiveUpdateChannel()

        async def scenario():
            queue = channel.connect()
            coordinator = ReloadCoordinator(lambda refresh: 'v1', handle, channel=channel, on_reloaded=on_reloaded)
            await coordinator.rebuild_now(refresh=False)
            return queue.get_nowait()

        message = asyncio.run(scenario())

        assert message == format_event("reload")
        assert handle.current == 'v1'
        table, elapsed_ms = on_reloaded.call_args[0]
        assert table == 'v1'
        assert elapsed_ms >= 0


class TestWatching:
    """Test watcher task management."""

    def test_changed_paths_restart_watch(self):
        """Test new paths replace the running watch and equal paths do not."""
        async def scenario():
            coordinator = ReloadCoordinator(lambda refresh: 'v1', FakeHandle('v0'))
            coordinator.watch = AsyncMock()

            coordinator.start_watching(['models.py'])
            first = coordinator._watch_task
            coordinator.start_watching(['models.py'])
            assert coordinator._watch_task is first

            coordinator.start_watching(['models.py', 'extra'])
            await asyncio.sleep(0)
            assert first.cancelled() or first.done()
            assert coordinator._watch_task is not first

            coordinator.close()
            return coordinator

        coordinator = asyncio.run(scenario())

        assert coordinator.watch.call_args_list == [call(['models.py']), call(['models.py', 'extra'])]

    def test_closed_coordinator_does_not_watch(self):
        """Test start_watching() after close() is ignored."""
        async def scenario():
            coordinator = ReloadCoordinator(lambda refresh: 'v1', FakeHandle('v0'))
            coordinator.watch = AsyncMock()
            coordinator.close()
            coordinator.start_watching(['models.py'])
            return coordinator

        coordinator = asyncio.run(scenario())

        coordinator.watch.assert_not_called()


class TestLiveUpdateChannel:
    """Test the live-update stream."""

    def test_stream_yields_messages_until_closed(self):
        """Test a client sees the preamble, events, then end of stream."""
        channel = LiveUpdateChannel()

        async def scenario():
            queue = channel.connect()
            channel.heartbeat()
            channel.broadcast("reload")
            channel.close_all()
            return [message async for message in channel.stream(queue)]

        messages = asyncio.run(scenario())

        assert messages == [
            ": connected\n\n",
            "event: ping\ndata: now\n\n",
            "event: reload\ndata: now\n\n",
        ]
        assert channel.client_count == 0

    def test_full_queue_is_pruned(self):
        """Test unresponsive clients are dropped."""
        channel = LiveUpdateChannel(max_pending=1)

        async def scenario():
            channel.connect()
            first = channel.broadcast("reload")
            second = channel.broadcast("reload")
            return first, second

        assert asyncio.run(scenario()) == (1, 0)
        assert channel.client_count == 0

    def test_close_all_with_full_queue(self):
        """Test closing still ends a stream whose queue is full."""
        channel = LiveUpdateChannel(max_pending=1)

        async def scenario():
            queue = channel.connect()
            channel.broadcast("reload")
            channel.close_all()
            return [message async for message in channel.stream(queue)]

        assert asyncio.run(scenario()) == [": connected\n\n"]

    def test_connect_after_close_ends_immediately(self):
        """Test connections opened during shutdown close at once."""
        channel = LiveUpdateChannel()

        async def scenario():
            channel.close_all()
            queue = channel.connect()
            return [message async for message in channel.stream(queue)]

        assert asyncio.run(scenario()) == [": connected\n\n"]
        assert channel.client_count == 0

    def test_heartbeat_task(self):
        """Test the periodic ping reaches clients."""
        channel = LiveUpdateChannel(heartbeat_interval=0.01)

        async def scenario():
            queue = channel.connect()
            channel.start_heartbeat()
            message = await asyncio.wait_for(queue.get(), timeout=1)
            channel.close_all()
            return message

        assert asyncio.run(scenario()) == format_event("ping")
