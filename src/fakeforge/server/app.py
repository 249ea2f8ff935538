"""
FakeForge Mock Server

FastAPI-based HTTP server that serves synthetic data generated from
declared types.

Features:
- Entity routes (``GET /<prefix>/<name>?count=N``)
- Network fault simulation (latency, errors, hangs, offline)
- Optional JSON persistence (``/<prefix>/database/<name>`` and ``.../seed``)
- Lifecycle webhooks
- Hot reload with a live-update event stream
- Admin API and metrics
"""

from __future__ import annotations  # Enable forward references for type hints

import asyncio
import glob
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse

from ..config import FakeforgeConfig
from ..database import SEED_STRATEGIES, JsonDatabase
from ..errors import SchemaError
from ..events import SERVER_RELOADED, SERVER_SHUTDOWN, SERVER_STARTED, EventBus, WebhookDispatcher
from ..lifecycle import Lifecycle
from ..network import FaultInjector
from ..reload import LiveUpdateChannel, ReloadCoordinator
from .routing import RoutingTable, ServingHandle, build_routing_table

NETWORK_HEADER = "X-Fakeforge-Network"
ADMIN_PREFIX = "/__fakeforge__"

# Seconds a hanging request waits between disconnect checks
HANG_POLL_INTERVAL = 0.5
# Seconds shutdown waits for in-flight webhook deliveries
SHUTDOWN_FLUSH_TIMEOUT = 2.0


@dataclass
class MockMetrics:
    """Track mock server metrics."""

    total_requests: int = 0
    served_requests: int = 0
    not_found: int = 0
    bad_requests: int = 0
    schema_errors: int = 0
    offline_responses: int = 0
    error_responses: int = 0
    timeouts: int = 0
    reloads: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        faults = self.offline_responses + self.error_responses + self.timeouts
        return {
            'total_requests': self.total_requests,
            'served_requests': self.served_requests,
            'not_found': self.not_found,
            'bad_requests': self.bad_requests,
            'schema_errors': self.schema_errors,
            'offline_responses': self.offline_responses,
            'error_responses': self.error_responses,
            'timeouts': self.timeouts,
            'fault_rate': round((faults / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'reloads': self.reloads,
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class MockServer:
    """
    FastAPI-based mock server for serving generated data.

    Extracts entities from the configured sources once at construction
    (a failure here is fatal) and rebuilds them on source changes while
    running.

    Example:
        config = load_config('fakeforge.yaml')
        server = MockServer(config)
        server.start()

        # In tests
        with TestClient(MockServer(config, watch=False).get_app()) as client:
            client.get('/api/user?count=3')
    """

    def __init__(
        self,
        config: FakeforgeConfig,
        lifecycle: Optional[Lifecycle] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        watch: Optional[bool] = None
    ):
        """
        Initialize mock server.

        Args:
            config: Server configuration
            lifecycle: Shutdown sequence (created if None)
            http_client: Optional HTTP client for webhook deliveries
            watch: Watch sources for changes (defaults to ``server.hot_reload``)

        Raises:
            SchemaError: If the initial schema extraction fails
        """
        self.config = config
        self.metrics = MockMetrics()
        self.watch = config.server.hot_reload if watch is None else watch

        self.logger = logging.getLogger("fakeforge.server")

        # Teardown runs in registration order: bus, webhooks, live updates and watcher
        self.lifecycle = lifecycle or Lifecycle()
        self.bus = EventBus(lifecycle=self.lifecycle)
        self.dispatcher = WebhookDispatcher(self.bus, client=http_client, lifecycle=self.lifecycle)

        self.database = JsonDatabase(
            config.database.directory,
            enabled=config.database.enabled,
            bus=self.bus,
            base_dir=config.base_dir
        )
        self.database.prepare()

        self.handle = ServingHandle(build_routing_table(config, self.database))
        self.logger.info(f"Loaded {len(self.handle.current.registry)} entities")

        self.channel = LiveUpdateChannel()
        self.coordinator = ReloadCoordinator(
            self._rebuild,
            self.handle,
            self.channel,
            on_reloaded=self._on_reloaded,
            lifecycle=self.lifecycle
        )

        self.app = self._create_app()

    @property
    def table(self) -> RoutingTable:
        return self.handle.current

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self._startup()
            try:
                yield
            finally:
                await self._shutdown()

        app = FastAPI(
            title="FakeForge Mock Server",
            description="Mock HTTP server serving data generated from declared types",
            version="1.0.0",
            lifespan=lifespan
        )

        @app.get("/")
        async def index():
            """List served entities."""
            table = self.table
            prefix = table.config.server.path_prefix
            return JSONResponse(content={
                'name': 'FakeForge',
                'prefix': f"/{prefix}",
                'entities': [
                    {'name': entity.name, 'url': f"/{prefix}/{entity.name}"}
                    for entity in table.registry
                ]
            })

        @app.get(f"{ADMIN_PREFIX}/entities")
        async def list_entities():
            """Describe every served entity."""
            entities = [entity.to_dict() for entity in self.table.registry]
            return JSONResponse(content={
                'total': len(entities),
                'generation': self.handle.generation,
                'built_at': self.table.built_at,
                'entities': entities
            })

        @app.get(f"{ADMIN_PREFIX}/network")
        async def get_network():
            """Get the active fault profile."""
            return JSONResponse(content=self.table.injector.profile.to_dict())

        @app.get(f"{ADMIN_PREFIX}/metrics")
        async def get_metrics():
            """Get server metrics."""
            return JSONResponse(content={
                **self.metrics.to_dict(),
                'webhooks': {
                    'active': self.dispatcher.active_hooks,
                    'delivered': self.dispatcher.delivered,
                    'failed': self.dispatcher.failed,
                    'aborted': self.dispatcher.aborted
                },
                'reload': {
                    'rebuilds': self.coordinator.rebuild_count,
                    'failures': self.coordinator.failure_count,
                    'running': self.coordinator.running,
                    'queued': self.coordinator.queued
                },
                'live_clients': self.channel.client_count
            })

        @app.post(f"{ADMIN_PREFIX}/reload")
        async def request_reload():
            """Schedule a rebuild, as if a source file had changed."""
            self.coordinator.trigger("admin request")
            return JSONResponse(content={'status': 'scheduled'}, status_code=202)

        @app.get(f"{ADMIN_PREFIX}/events")
        async def live_events():
            """Server-sent event stream of reload notifications."""
            queue = self.channel.connect()
            return StreamingResponse(
                self.channel.stream(queue),
                media_type="text/event-stream",
                headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
            )

        # Main catch-all route for mock data
        @app.api_route("/{path:path}", methods=["GET", "POST", "DELETE"])
        async def mock_request(request: Request, path: str):
            """Handle entity and database requests."""
            return await self._handle_request(request, path)

        return app

    async def _handle_request(self, request: Request, path: str) -> Response:
        """
        Route a request under the configured prefix.

        Args:
            request: FastAPI Request object
            path: Request path

        Returns:
            FastAPI Response
        """
        # One table per request, even if a reload swaps it meanwhile
        table = self.table
        prefix_parts = table.config.server.path_prefix.split('/')
        parts = [part for part in path.split('/') if part]

        if parts[:len(prefix_parts)] != prefix_parts:
            return self._json({'message': f"Not found: /{path}"}, 404, table)
        rest = parts[len(prefix_parts):]

        if rest[:1] == ['database'] and len(rest) == 2:
            return await self._handle_database(request, table, rest[1])
        if rest[:1] == ['database'] and len(rest) == 3 and rest[2] == 'seed':
            return await self._handle_database(request, table, rest[1], action='seed')

        if len(rest) != 1:
            return self._json({'message': f"Not found: /{path}"}, 404, table)
        if request.method != 'GET':
            return self._json({'message': f"Method {request.method} not allowed"}, 405, table)

        return await self._handle_entity(request, table, rest[0])

    async def _handle_entity(self, request: Request, table: RoutingTable, name: str) -> Response:
        self.metrics.total_requests += 1
        self.logger.debug(f"Incoming: GET {request.url}")

        fault = await self._apply_faults(request, table.injector)
        if fault is not None:
            return fault

        entity = table.lookup(name)
        if entity is None:
            self.metrics.not_found += 1
            return self._json({'message': f"Entity '{name}' not found"}, 404, table)

        try:
            count = self._parse_count(request.query_params.get('count'))
        except ValueError as e:
            self.metrics.bad_requests += 1
            return self._json({'message': str(e)}, 400, table)

        strategy = request.query_params.get('strategy') or entity.id_strategy

        try:
            data = await table.engine.forge(entity.schema, count=count, id_strategy=strategy)
        except SchemaError as e:
            self.metrics.schema_errors += 1
            self.logger.error(f"Failed to generate '{name}': {e}")
            return self._json({'message': str(e)}, 500, table)

        self.metrics.served_requests += 1
        return self._json(data, 200, table)

    async def _handle_database(
        self,
        request: Request,
        table: RoutingTable,
        name: str,
        action: Optional[str] = None
    ) -> Response:
        self.metrics.total_requests += 1
        self.logger.debug(f"Incoming: {request.method} {request.url}")

        # Seeding bypasses the fault pipeline
        if action is None:
            fault = await self._apply_faults(request, table.injector)
            if fault is not None:
                return fault

        entity = table.lookup(name)
        if entity is None:
            self.metrics.not_found += 1
            return self._json({'message': f"Entity '{name}' not found"}, 404, table)
        if entity.table is None:
            return self._json({'message': "Database is disabled"}, 404, table)

        if action == 'seed':
            if request.method != 'POST':
                return self._json({'message': f"Method {request.method} not allowed"}, 405, table)
            return await self._seed_table(request, table, entity)

        if request.method == 'GET':
            self.metrics.served_requests += 1
            return self._json(entity.table.read(), 200, table)

        if request.method == 'DELETE':
            removed = entity.table.flush()
            return self._json({'name': entity.name, 'removed': removed}, 200, table)

        try:
            count = self._parse_count(request.query_params.get('count')) or 1
        except ValueError as e:
            self.metrics.bad_requests += 1
            return self._json({'message': str(e)}, 400, table)

        try:
            rows = await self._generate_rows(table, entity, count)
        except SchemaError as e:
            self.metrics.schema_errors += 1
            self.logger.error(f"Failed to generate '{name}': {e}")
            return self._json({'message': str(e)}, 500, table)

        total = entity.table.insert(rows)
        self.metrics.served_requests += 1
        return self._json({'name': entity.name, 'inserted': len(rows), 'total': total}, 201, table)

    async def _seed_table(self, request: Request, table: RoutingTable, entity) -> Response:
        """
        Generate rows and write them with a seeding strategy.

        Options come from a JSON object body or the query string:
        ``count`` (default 1) and ``strategy`` (``reset``, ``once`` or ``merge``).
        """
        try:
            options = await self._seed_options(request)
            count = self._parse_count(options.get('count')) or 1
            if count < 0:
                raise ValueError(f"Invalid count: {count} is negative")
            strategy = options.get('strategy') or 'reset'
            if strategy not in SEED_STRATEGIES:
                raise ValueError(f"Unknown seed strategy '{strategy}' (expected one of {', '.join(SEED_STRATEGIES)})")
        except ValueError as e:
            self.metrics.bad_requests += 1
            return self._json({'message': str(e)}, 400, table)

        try:
            rows = await self._generate_rows(table, entity, count)
        except SchemaError as e:
            self.metrics.schema_errors += 1
            self.logger.error(f"Failed to seed '{entity.name}': {e}")
            return self._json({'message': str(e)}, 500, table)

        seeded = entity.table.seed(rows, strategy=strategy)
        self.metrics.served_requests += 1
        return self._json({
            'name': entity.name,
            'strategy': strategy,
            'seeded': seeded,
            'total': len(entity.table.read())
        }, 201 if seeded else 200, table)

    @staticmethod
    async def _seed_options(request: Request) -> Dict[str, Any]:
        options: Dict[str, Any] = dict(request.query_params)
        body = await request.body()
        if body:
            try:
                data = json.loads(body)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON body: {e}")
            if not isinstance(data, dict):
                raise ValueError("Seed options must be a JSON object")
            options.update({key: value for key, value in data.items() if value is not None})
        if options.get('count') is not None:
            options['count'] = str(options['count'])
        return options

    @staticmethod
    async def _generate_rows(table: RoutingTable, entity, count: int) -> List[Any]:
        data = await table.engine.forge(entity.schema, count=count, id_strategy=entity.id_strategy)
        return jsonable_encoder(data if isinstance(data, list) else [data])

    async def _apply_faults(self, request: Request, injector: FaultInjector) -> Optional[Response]:
        """
        Run the fault pipeline: offline, delay, timeout, error.

        Returns:
            A fault response, or None if the request should be served
        """
        if injector.is_offline():
            self.metrics.offline_responses += 1
            fault = injector.resolve_fault_response("offline")
            return self._json({'message': fault.message}, fault.status, injector=injector)

        await injector.wait()

        if injector.should_timeout():
            self.metrics.timeouts += 1
            self.logger.warning(f"Simulating network timeout for {request.url}")
            await self._hang(request)
            return self._json({'message': "Server shutting down"}, 503, injector=injector)

        if injector.should_error():
            self.metrics.error_responses += 1
            fault = injector.resolve_fault_response("error")
            self.logger.warning(f"Simulated error {fault.status} for {request.url}")
            return self._json({'message': fault.message}, fault.status, injector=injector)

        return None

    async def _hang(self, request: Request) -> None:
        """Leave a request pending until the client leaves or the server stops."""
        while not self.lifecycle.is_shut_down:
            if await request.is_disconnected():
                self.logger.debug(f"Client left hanging request {request.url}")
                return
            await asyncio.sleep(HANG_POLL_INTERVAL)

    @staticmethod
    def _parse_count(value: Optional[str]) -> Optional[int]:
        if value is None or value == '':
            return None
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Invalid count: {value!r} is not an integer")

    def _json(
        self,
        content: Any,
        status_code: int,
        table: Optional[RoutingTable] = None,
        injector: Optional[FaultInjector] = None
    ) -> JSONResponse:
        injector = injector or (table or self.table).injector
        return JSONResponse(
            content=jsonable_encoder(content),
            status_code=status_code,
            headers={NETWORK_HEADER: injector.header_value()}
        )

    # Reload

    async def _rebuild(self, refresh: bool) -> RoutingTable:
        return await asyncio.to_thread(self._build, refresh)

    def _build(self, refresh: bool) -> RoutingTable:
        config = self.config.reload() if refresh else self.config
        return build_routing_table(config, self.database)

    def _on_reloaded(self, table: RoutingTable, elapsed_ms: float) -> None:
        self.config = table.config
        self.metrics.reloads += 1

        webhook = table.config.webhook
        self.dispatcher.activate(webhook.hooks, enabled=webhook.enabled)
        if self.watch:
            # Sources may have changed with the config file
            self.coordinator.start_watching(self._watch_paths())

        self.bus.publish(SERVER_RELOADED, {
            **self._server_payload(),
            'entities': table.entity_names,
            'elapsed_ms': round(elapsed_ms, 1)
        })

    def _watch_paths(self) -> List[str]:
        """Directories and files to watch for changes."""
        base_dir = self.config.base_dir
        paths: Dict[str, None] = {}
        for source in self.config.sources:
            candidate = source if Path(source).is_absolute() else str(base_dir / source)
            if glob.has_magic(candidate):
                # Watch the deepest directory above the first wildcard
                static = []
                for part in Path(candidate).parts:
                    if glob.has_magic(part):
                        break
                    static.append(part)
                candidate = str(Path(*static)) if static else str(base_dir)
            elif not Path(candidate).exists() and Path(candidate + '.py').exists():
                candidate += '.py'
            paths.setdefault(candidate, None)

        if self.config.path is not None:
            paths.setdefault(str(self.config.path), None)
        return list(paths)

    # Lifespan

    def _server_payload(self) -> Dict[str, Any]:
        return {
            'host': self.config.server.host,
            'port': self.config.server.port,
            'prefix': self.config.server.path_prefix
        }

    async def _startup(self) -> None:
        webhook = self.config.webhook
        self.dispatcher.activate(webhook.hooks, enabled=webhook.enabled)

        self.channel.start_heartbeat()
        if self.watch:
            self.coordinator.start_watching(self._watch_paths())

        self.bus.publish(SERVER_STARTED, self._server_payload())

    async def _shutdown(self) -> None:
        self.bus.publish(SERVER_SHUTDOWN, self._server_payload())
        await self.dispatcher.flush(timeout=SHUTDOWN_FLUSH_TIMEOUT)
        self.lifecycle.shutdown("exit")
        await self.dispatcher.aclose()

    def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        access_log: bool = True
    ):
        """
        Start the mock server.

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable access logging
        """
        actual_host = host or self.config.server.host
        actual_port = port or self.config.server.port
        prefix = self.config.server.path_prefix

        print(f"🚀 FakeForge Mock Server starting...")
        print(f"   Host: {actual_host}:{actual_port}")
        print(f"   Entities: {', '.join(self.table.entity_names) or '(none)'}")
        print(f"   Routes: http://{actual_host}:{actual_port}/{prefix}/<entity>")
        print(f"   Admin API: http://{actual_host}:{actual_port}{ADMIN_PREFIX}/metrics")

        profile = self.table.injector.profile
        if profile.offline:
            print(f"   ⚠️  Offline mode enabled (every request returns 503)")
        elif profile.error_rate or profile.timeout_rate:
            print(f"   ⚠️  Network faults enabled ({profile.error_rate * 100:g}% errors, "
                  f"{profile.timeout_rate * 100:g}% timeouts)")

        if self.watch:
            print(f"   Hot reload: {ADMIN_PREFIX}/events")

        print()

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.server.log_level,
            access_log=access_log,
            timeout_graceful_shutdown=5
        )

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def create_mock_server(
    sources: List[str],
    host: str = "127.0.0.1",
    port: int = 5200,
    path_prefix: str = "api",
    locale: Optional[str] = None,
    seed: Optional[int] = None,
    network: Optional[Dict[str, Any]] = None,
    hot_reload: bool = False
) -> MockServer:
    """
    Convenience function to create and configure a mock server.

    Args:
        sources: Declaration files, directories or glob patterns
        host: Host to bind to
        port: Port to bind to
        path_prefix: URL prefix for entity routes
        locale: Faker locale
        seed: Seed for reproducible data
        network: Network fault options (see FaultProfile.from_options)
        hot_reload: Watch sources and rebuild on change

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server(['models/'], port=5200, network={'delay': [100, 300]})
        server.start()
    """
    config = FakeforgeConfig.from_dict({
        'sources': sources,
        'server': {'host': host, 'port': port, 'path_prefix': path_prefix, 'hot_reload': hot_reload},
        'faker': {'locale': locale, 'seed': seed},
        'network': network or {},
    })
    return MockServer(config)
