"""
FakeForge Webhooks

Turns lifecycle events into outbound HTTP deliveries.

Each configured hook subscribes to one event on the EventBus. When the
event is published, the payload is (optionally) transformed and POSTed as
JSON to the hook's URL. Deliveries are fire-and-forget: the publisher never
waits for them, failures are logged and nothing is retried.
"""

import asyncio
import importlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from urllib.parse import urlparse

import httpx

from ..errors import ConfigError
from .bus import EVENT_NAMES, EventBus

logger = logging.getLogger("fakeforge.webhook")

WEBHOOK_HEADER = "X-Fakeforge-Webhook"

Transform = Callable[[Any], Any]


def resolve_transform(path: str) -> Optional[Transform]:
    """
    Import a transform function from a ``"module:function"`` path.

    Args:
        path: Import path, e.g. ``"hooks.transforms:slim_payload"``

    Returns:
        The callable, or None if it cannot be imported
    """
    module_name, _, attr = path.partition(':')
    if not module_name or not attr:
        logger.error(f"Invalid transform path '{path}' (expected 'module:function')")
        return None

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        logger.error(f"Could not import transform module '{module_name}': {e}")
        return None

    fn = getattr(module, attr, None)
    if not callable(fn):
        logger.error(f"Transform '{path}' is not a callable")
        return None
    return fn


@dataclass
class Hook:
    """
    Declarative rule mapping a lifecycle event to an HTTP delivery.

    Attributes:
        name: Unique hook name
        trigger_event: Event name that fires the hook
        url: Absolute http(s) URL to deliver to
        method: HTTP method (only POST is accepted)
        headers: Extra request headers
        transform: Optional payload transform
    """

    name: str
    trigger_event: str
    url: str
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    transform: Optional[Transform] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Hook':
        """
        Create a hook from a configuration entry.

        Accepts the trigger either as ``trigger: {event: ...}`` or as
        ``event``. ``transform`` may be a callable or a ``"module:function"``
        import path.

        Raises:
            ConfigError: If the name, URL or trigger event is missing
        """
        trigger = data.get('trigger')
        event = trigger.get('event') if isinstance(trigger, dict) else data.get('event', trigger)

        name = data.get('name')
        if not name:
            raise ConfigError("Webhook hook is missing 'name'")
        if not data.get('url'):
            raise ConfigError(f"Webhook hook '{name}' is missing 'url'")
        if not event:
            raise ConfigError(f"Webhook hook '{name}' is missing 'trigger.event'")

        transform = data.get('transform')
        if isinstance(transform, str):
            transform = resolve_transform(transform)

        return cls(
            name=str(name),
            trigger_event=str(event),
            url=str(data['url']),
            method=str(data.get('method', 'POST')),
            headers={str(k): str(v) for k, v in (data.get('headers') or {}).items()},
            transform=transform,
        )

    def validation_error(self) -> Optional[str]:
        """Reason this hook cannot be activated, or None if it is valid."""
        if self.method.upper() != "POST":
            return f"only POST is allowed, got {self.method}"

        parsed = urlparse(self.url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return f"URL must be an absolute http(s) URL, got {self.url!r}"

        if self.trigger_event not in EVENT_NAMES:
            return f"unknown trigger event '{self.trigger_event}'"
        return None


@dataclass
class _Subscription:
    hook: Hook
    dispose: Callable[[], None] = lambda: None
    tasks: Set[asyncio.Task] = field(default_factory=set)

    def cancel(self) -> None:
        self.dispose()
        for task in list(self.tasks):
            task.cancel()
        self.tasks.clear()


class WebhookDispatcher:
    """
    Subscribes hooks to the event bus and delivers matching events.

    ``activate`` always tears down the previous subscriptions first, so a
    hook name has at most one live subscription no matter how often the
    configuration is reloaded.

    Example:
        dispatcher = WebhookDispatcher(bus)
        dispatcher.activate([Hook('notify', 'server:started', 'http://localhost:9000/hook')])
        bus.publish('server:started', {'port': 3000})
        await dispatcher.flush()
    """

    def __init__(
        self,
        bus: EventBus,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        lifecycle=None
    ):
        """
        Initialize webhook dispatcher.

        Args:
            bus: Event bus to subscribe hooks on
            client: HTTP client used for deliveries (created if None)
            timeout: Request timeout for the default client, in seconds
            lifecycle: Optional Lifecycle; hooks are deactivated on shutdown
        """
        self.bus = bus
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._subscriptions: Dict[str, _Subscription] = {}
        self._activated = False

        self.delivered = 0
        self.failed = 0
        self.aborted = 0

        if lifecycle is not None:
            lifecycle.register(self.deactivate, "webhook dispatcher")

    @property
    def is_activated(self) -> bool:
        return self._activated

    @property
    def active_hooks(self) -> List[str]:
        return list(self._subscriptions)

    def activate(self, hooks: Iterable[Hook], enabled: bool = True) -> bool:
        """
        Subscribe every valid hook, replacing any earlier activation.

        Invalid hooks and duplicate names are logged and skipped.

        Args:
            hooks: Hooks to subscribe
            enabled: Feature toggle from configuration

        Returns:
            True if at least one hook is now subscribed
        """
        self.deactivate()

        hooks = list(hooks)
        if not enabled:
            logger.debug("Webhooks disabled")
            return False
        if not hooks:
            logger.debug("No webhooks configured")
            return False

        for hook in hooks:
            if hook.name in self._subscriptions:
                logger.warning(f"Skipping duplicate webhook '{hook.name}'")
                continue

            reason = hook.validation_error()
            if reason:
                logger.error(f"Skipping webhook '{hook.name}': {reason}")
                continue

            subscription = _Subscription(hook)
            subscription.dispose = self.bus.subscribe(
                hook.trigger_event,
                lambda payload, sub=subscription: self._schedule(sub, payload)
            )
            self._subscriptions[hook.name] = subscription

        self._activated = bool(self._subscriptions)
        if self._activated:
            logger.info(f"Activated {len(self._subscriptions)} webhook(s): {', '.join(self._subscriptions)}")
        else:
            logger.warning("No valid webhooks to activate")
        return self._activated

    def deactivate(self) -> None:
        """Detach every hook and abort in-flight deliveries."""
        if self._subscriptions:
            logger.debug(f"Deactivating {len(self._subscriptions)} webhook(s)")
        for subscription in self._subscriptions.values():
            subscription.cancel()
        self._subscriptions.clear()
        self._activated = False

    async def flush(self, timeout: Optional[float] = None) -> None:
        """
        Wait for in-flight deliveries to finish.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)
        """
        pending = [task for sub in self._subscriptions.values() for task in sub.tasks]
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    async def aclose(self) -> None:
        self.deactivate()
        await self.client.aclose()

    def _schedule(self, subscription: _Subscription, payload: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; dropping webhook '{subscription.hook.name}'")
            return

        task = loop.create_task(self._deliver(subscription.hook, payload))
        subscription.tasks.add(task)
        task.add_done_callback(subscription.tasks.discard)

    def _apply_transform(self, hook: Hook, payload: Any) -> Any:
        if hook.transform is None:
            return payload
        try:
            return hook.transform(payload)
        except Exception as e:
            logger.error(f"Transform for webhook '{hook.name}' failed ({e}); sending original payload")
            return payload

    async def _deliver(self, hook: Hook, payload: Any) -> None:
        body = self._apply_transform(hook, payload)
        try:
            content = json.dumps(body, default=str)
        except (TypeError, ValueError) as e:
            self.failed += 1
            logger.error(f"Webhook '{hook.name}' payload is not JSON serializable: {e}")
            return

        headers = {
            **hook.headers,
            'Content-Type': 'application/json',
            WEBHOOK_HEADER: f"name={hook.name},event={hook.trigger_event}",
        }

        try:
            response = await self.client.post(hook.url, content=content, headers=headers)
        except asyncio.CancelledError:
            self.aborted += 1
            logger.warning(f"Webhook '{hook.name}' delivery aborted")
            raise
        except httpx.HTTPError as e:
            self.failed += 1
            logger.error(f"Webhook '{hook.name}' delivery to {hook.url} failed: {e}")
            return

        if response.is_success:
            self.delivered += 1
            logger.debug(f"Webhook '{hook.name}' delivered ({response.status_code})")
        else:
            self.failed += 1
            logger.error(f"Webhook '{hook.name}' delivery to {hook.url} returned {response.status_code}")
