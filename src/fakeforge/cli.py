"""
FakeForge CLI

Command-line interface for the FakeForge mock server.

Commands:
    serve       - Start the mock server
    entities    - List entities extracted from sources
    generate    - Print generated data for one entity

Examples:
    # Serve every model in models/
    fakeforge serve models/ --port 5200

    # Use a config file
    fakeforge serve --config fakeforge.yaml

    # Print three users
    fakeforge generate models/ user --count 3
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder

from . import __version__
from .config import FakeforgeConfig, load_config
from .errors import FakeforgeError
from .lifecycle import Lifecycle
from .server import MockServer
from .server.routing import build_routing_table


def _overrides(args) -> Dict[str, Any]:
    """Collect command-line values that take precedence over the config file."""
    overrides: Dict[str, Any] = {}
    if getattr(args, 'sources', None):
        overrides['sources'] = list(args.sources)

    server: Dict[str, Any] = {}
    for key, attr in (('host', 'host'), ('port', 'port'), ('path_prefix', 'prefix')):
        value = getattr(args, attr, None)
        if value is not None:
            server[key] = value
    if getattr(args, 'no_watch', False):
        server['hot_reload'] = False
    if getattr(args, 'log_level', None):
        server['log_level'] = args.log_level
    if server:
        overrides['server'] = server

    faker: Dict[str, Any] = {}
    if getattr(args, 'locale', None):
        faker['locale'] = args.locale
    if getattr(args, 'seed', None) is not None:
        faker['seed'] = args.seed
    if faker:
        overrides['faker'] = faker

    return overrides


def _load(args) -> FakeforgeConfig:
    try:
        return load_config(args.config, overrides=_overrides(args))
    except FakeforgeError as e:
        print(f"❌ {e}")
        sys.exit(1)


def cmd_serve(args):
    """
    Start the mock server.

    Args:
        args: Parsed command-line arguments
    """
    config = _load(args)
    if not config.sources:
        print("❌ No sources given (pass paths or set 'sources' in the config file)")
        sys.exit(1)

    lifecycle = Lifecycle()
    try:
        server = MockServer(config, lifecycle=lifecycle)
    except FakeforgeError as e:
        print(f"❌ Failed to create mock server: {e}")
        sys.exit(1)

    lifecycle.install_signal_handlers()

    # Start server (blocking)
    try:
        server.start()
    except KeyboardInterrupt:
        print("\n\n👋 Mock server stopped")
    finally:
        lifecycle.shutdown("exit")
        lifecycle.restore_signal_handlers()


def cmd_entities(args):
    """
    List extracted entities.

    Args:
        args: Parsed command-line arguments
    """
    config = _load(args)
    try:
        table = build_routing_table(config)
    except FakeforgeError as e:
        print(f"❌ {e}")
        sys.exit(1)

    entities = [entity.to_dict() for entity in table.registry]
    if args.json:
        print(json.dumps(entities, indent=2))
        return

    print(f"📦 {len(entities)} entities")
    for entity in entities:
        id_info = f" (id: {entity['id_strategy']})" if entity['id_strategy'] else ""
        print(f"   {entity['name']}{id_info}: {entity['shape']}")


def cmd_generate(args):
    """
    Print generated data for one entity.

    Args:
        args: Parsed command-line arguments
    """
    config = _load(args)
    try:
        table = build_routing_table(config)
    except FakeforgeError as e:
        print(f"❌ {e}")
        sys.exit(1)

    entity = table.lookup(args.entity)
    if entity is None:
        print(f"❌ Unknown entity '{args.entity}' (known: {', '.join(table.entity_names)})")
        sys.exit(1)

    strategy = args.strategy or entity.id_strategy
    try:
        data = asyncio.run(table.engine.forge(entity.schema, count=args.count, id_strategy=strategy))
    except FakeforgeError as e:
        print(f"❌ {e}")
        sys.exit(1)

    print(json.dumps(jsonable_encoder(data), indent=2))


def _add_source_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('-c', '--config', help='Config file (default: ./fakeforge.yaml if present)')
    parser.add_argument('--locale', help='Faker locale (e.g. en_US, de_DE)')
    parser.add_argument('--seed', type=int, help='Seed for reproducible data')


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='fakeforge',
        description="FakeForge - Mock server generating data from Python type declarations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve models with a slow network preset from the config file
  %(prog)s serve models/ --config fakeforge.yaml

  # List the entities found in a package
  %(prog)s entities app/schemas/

  # Print ten users with UUID identifiers
  %(prog)s generate models/ user --count 10 --strategy uuid
        """
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Start the mock server')
    serve_parser.add_argument('sources', nargs='*', help='Declaration files, directories or glob patterns')
    _add_source_arguments(serve_parser)
    serve_parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 5200)')
    serve_parser.add_argument('--prefix', help='URL prefix for entity routes (default: api)')
    serve_parser.add_argument('--no-watch', action='store_true', help='Disable hot reload')
    serve_parser.add_argument('--log-level', choices=['debug', 'info', 'warning', 'error'],
                              help='Logging level (default: info)')

    # --- ENTITIES command ---
    entities_parser = subparsers.add_parser('entities', help='List entities extracted from sources')
    entities_parser.add_argument('sources', nargs='*', help='Declaration files, directories or glob patterns')
    _add_source_arguments(entities_parser)
    entities_parser.add_argument('--json', action='store_true', help='Print as JSON')

    # --- GENERATE command ---
    generate_parser = subparsers.add_parser('generate', help='Print generated data for one entity')
    generate_parser.add_argument('sources', nargs='*', help='Declaration files, directories or glob patterns')
    generate_parser.add_argument('entity', help='Entity name')
    _add_source_arguments(generate_parser)
    generate_parser.add_argument('-n', '--count', type=int, help='Number of items (omit for a single item)')
    generate_parser.add_argument('--strategy', choices=['uuid', 'index'], help='Identifier strategy')

    # Parse arguments
    args = parser.parse_args(argv)

    log_level = getattr(args, 'log_level', None) or 'info'
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Dispatch to command handler
    if args.command == 'serve':
        cmd_serve(args)
    elif args.command == 'entities':
        cmd_entities(args)
    elif args.command == 'generate':
        cmd_generate(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
