"""
Tests for FakeForge Webhooks

Tests:
- Hook configuration parsing and validation
- Delivery headers and body
- Transform failures
- Re-activation and teardown semantics
- Delivery failure handling
"""

import asyncio
import json

import httpx
import pytest

from fakeforge.errors import ConfigError
from fakeforge.events import (
    DATABASE_FLUSHED,
    SERVER_STARTED,
    WEBHOOK_HEADER,
    EventBus,
    Hook,
    WebhookDispatcher,
)


class Recorder:
    """httpx MockTransport handler that records requests."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)


def make_dispatcher(handler):
    bus = EventBus()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return bus, WebhookDispatcher(bus, client=client)


def notify_hook(**kwargs):
    options = dict(name='notify', trigger_event=SERVER_STARTED, url='http://localhost:9000/hook')
    options.update(kwargs)
    return Hook(**options)


async def publish_and_flush(bus, dispatcher, event=SERVER_STARTED, payload=None):
    bus.publish(event, payload if payload is not None else {'port': 5200})
    await dispatcher.flush(timeout=5)
    await dispatcher.aclose()


class TestHookConfig:
    """Test Hook.from_dict and validation."""

    def test_from_dict_nested_trigger(self):
        """Test the trigger.event form."""
        hook = Hook.from_dict({
            'name': 'notify',
            'trigger': {'event': 'server:started'},
            'url': 'https://example.com/hook',
            'headers': {'Authorization': 'Bearer abc'},
        })

        assert hook.trigger_event == 'server:started'
        assert hook.method == 'POST'
        assert hook.headers == {'Authorization': 'Bearer abc'}

    def test_from_dict_resolves_transform_path(self):
        """Test module:function transforms are imported."""
        hook = Hook.from_dict({
            'name': 'notify',
            'event': 'server:started',
            'url': 'https://example.com/hook',
            'transform': 'json:dumps',
        })

        assert hook.transform is json.dumps

    def test_unresolvable_transform_is_dropped(self):
        """Test a bad transform path keeps the hook without a transform."""
        hook = Hook.from_dict({
            'name': 'notify',
            'event': 'server:started',
            'url': 'https://example.com/hook',
            'transform': 'no_such_module_xyz:fn',
        })

        assert hook.transform is None

    def test_missing_url_raises(self):
        """Test required keys."""
        with pytest.raises(ConfigError):
            Hook.from_dict({'name': 'notify', 'event': 'server:started'})

    def test_validation(self):
        """Test method, URL and event validation."""
        assert notify_hook().validation_error() is None
        assert notify_hook(method='post').validation_error() is None
        assert notify_hook(method='GET').validation_error() is not None
        assert notify_hook(url='ftp://example.com').validation_error() is not None
        assert notify_hook(url='/relative').validation_error() is not None
        assert notify_hook(trigger_event='server:exploded').validation_error() is not None


class TestDelivery:
    """Test outbound deliveries."""

    def test_single_delivery_with_headers(self):
        """Test one valid hook produces one POST with the expected headers."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)
        hook = notify_hook(headers={'X-Token': 'secret'})

        async def scenario():
            assert dispatcher.activate([hook]) is True
            await publish_and_flush(bus, dispatcher)

        asyncio.run(scenario())

        assert len(recorder.requests) == 1
        request = recorder.requests[0]
        assert request.method == 'POST'
        assert str(request.url) == 'http://localhost:9000/hook'
        assert request.headers['content-type'] == 'application/json'
        assert request.headers[WEBHOOK_HEADER] == 'name=notify,event=server:started'
        assert request.headers['x-token'] == 'secret'
        assert json.loads(request.content) == {'port': 5200}
        assert dispatcher.delivered == 1

    def test_unsubscribed_event_sends_nothing(self):
        """Test publishing a different event triggers no call."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)

        async def scenario():
            dispatcher.activate([notify_hook()])
            await publish_and_flush(bus, dispatcher, event=DATABASE_FLUSHED)

        asyncio.run(scenario())

        assert recorder.requests == []

    def test_no_hooks_is_not_activated(self):
        """Test an empty hook list reports not activated and sends nothing."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)

        async def scenario():
            assert dispatcher.activate([]) is False
            await publish_and_flush(bus, dispatcher)

        asyncio.run(scenario())

        assert dispatcher.is_activated is False
        assert recorder.requests == []

    def test_disabled_is_not_activated(self):
        """Test the feature toggle."""
        _, dispatcher = make_dispatcher(Recorder())

        assert dispatcher.activate([notify_hook()], enabled=False) is False
        assert dispatcher.active_hooks == []

    def test_only_invalid_hooks_is_not_activated(self):
        """Test invalid hooks are skipped and activation fails without valid ones."""
        _, dispatcher = make_dispatcher(Recorder())

        assert dispatcher.activate([notify_hook(method='PUT')]) is False

    def test_invalid_hook_is_skipped_others_activate(self):
        """Test activation continues past an invalid hook."""
        _, dispatcher = make_dispatcher(Recorder())

        activated = dispatcher.activate([
            notify_hook(name='bad', url='not a url'),
            notify_hook(name='good'),
        ])

        assert activated is True
        assert dispatcher.active_hooks == ['good']

    def test_throwing_transform_sends_original_payload(self):
        """Test transform errors never suppress delivery."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)

        def broken(payload):
            raise ValueError("bad transform")

        async def scenario():
            dispatcher.activate([notify_hook(transform=broken)])
            await publish_and_flush(bus, dispatcher, payload={'original': True})

        asyncio.run(scenario())

        assert len(recorder.requests) == 1
        assert json.loads(recorder.requests[0].content) == {'original': True}

    def test_transform_applied(self):
        """Test a working transform shapes the body."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)

        async def scenario():
            dispatcher.activate([notify_hook(transform=lambda p: {'wrapped': p})])
            await publish_and_flush(bus, dispatcher, payload={'port': 1})

        asyncio.run(scenario())

        assert json.loads(recorder.requests[0].content) == {'wrapped': {'port': 1}}

    def test_double_activation_delivers_once(self):
        """Test re-activating with the same hook leaves one subscription."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)

        async def scenario():
            dispatcher.activate([notify_hook()])
            dispatcher.activate([notify_hook()])
            # aclose() deactivates, so count while the hooks are live
            subscribed = bus.handler_count(SERVER_STARTED)
            await publish_and_flush(bus, dispatcher)
            return subscribed

        subscribed = asyncio.run(scenario())

        assert subscribed == 1
        assert len(recorder.requests) == 1
        assert bus.handler_count(SERVER_STARTED) == 0

    def test_duplicate_names_in_one_list(self):
        """Test a repeated hook name is subscribed once."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)

        async def scenario():
            dispatcher.activate([notify_hook(), notify_hook(url='http://localhost:9001/other')])
            await publish_and_flush(bus, dispatcher)

        asyncio.run(scenario())

        assert len(recorder.requests) == 1

    def test_deactivate_detaches(self):
        """Test no deliveries after deactivate()."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)

        async def scenario():
            dispatcher.activate([notify_hook()])
            dispatcher.deactivate()
            await publish_and_flush(bus, dispatcher)

        asyncio.run(scenario())

        assert recorder.requests == []
        assert dispatcher.is_activated is False


class TestDeliveryFailures:
    """Test failure handling (logged, never retried)."""

    def test_non_2xx_is_counted_not_retried(self):
        """Test an error status is a single failed delivery."""
        recorder = Recorder(status_code=500)
        bus, dispatcher = make_dispatcher(recorder)

        async def scenario():
            dispatcher.activate([notify_hook()])
            await publish_and_flush(bus, dispatcher)

        asyncio.run(scenario())

        assert len(recorder.requests) == 1
        assert dispatcher.failed == 1
        assert dispatcher.delivered == 0

    def test_transport_error_is_logged(self):
        """Test connection errors do not reach the publisher."""
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        bus, dispatcher = make_dispatcher(refuse)

        async def scenario():
            dispatcher.activate([notify_hook()])
            await publish_and_flush(bus, dispatcher)

        asyncio.run(scenario())

        assert dispatcher.failed == 1

    def test_deactivate_aborts_in_flight_delivery(self):
        """Test teardown cancels a delivery that is still waiting."""
        started = []

        async def slow(request):
            started.append(request)
            await asyncio.sleep(10)
            return httpx.Response(200)

        bus, dispatcher = make_dispatcher(slow)

        async def scenario():
            dispatcher.activate([notify_hook()])
            bus.publish(SERVER_STARTED, {'port': 1})
            for _ in range(50):
                if started:
                    break
                await asyncio.sleep(0.01)
            dispatcher.deactivate()
            await asyncio.sleep(0.05)
            await dispatcher.aclose()

        asyncio.run(scenario())

        assert len(started) == 1
        assert dispatcher.aborted == 1
        assert dispatcher.delivered == 0

    def test_publish_without_event_loop_is_dropped(self):
        """Test synchronous publishers outside a loop do not crash."""
        recorder = Recorder()
        bus, dispatcher = make_dispatcher(recorder)
        dispatcher.activate([notify_hook()])

        bus.publish(SERVER_STARTED, {'port': 1})

        assert recorder.requests == []
