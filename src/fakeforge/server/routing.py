"""
FakeForge Routing Table

Everything a request needs to be served, built as one unit and swapped
into a ServingHandle on reload.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..config import FakeforgeConfig
from ..database import JsonDatabase
from ..engine import GenerationEngine, GeneratorLibrary
from ..network import FaultInjector
from ..schema import EntityDescriptor, EntityRegistry, extract_registry

logger = logging.getLogger("fakeforge.server")


@dataclass(frozen=True)
class RoutingTable:
    """
    One fully built serving generation.

    Attributes:
        config: Configuration the table was built from
        registry: Served entities
        engine: Engine bound to the registry
        injector: Fault injector for the configured profile
        built_at: Build timestamp (ISO 8601)
    """

    config: FakeforgeConfig
    registry: EntityRegistry
    engine: GenerationEngine
    injector: FaultInjector
    built_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def lookup(self, name: str) -> Optional[EntityDescriptor]:
        return self.registry.get(name)

    @property
    def entity_names(self) -> List[str]:
        return self.registry.names()


class ServingHandle:
    """
    Holds the active RoutingTable.

    Request handlers read ``current`` once per request; the reload
    coordinator is the only writer.
    """

    def __init__(self, table: RoutingTable):
        self._table = table
        self.generation = 1

    @property
    def current(self) -> RoutingTable:
        return self._table

    def swap(self, table: RoutingTable) -> RoutingTable:
        """Install a new table and return the previous one."""
        previous, self._table = self._table, table
        self.generation += 1
        return previous


def build_routing_table(config: FakeforgeConfig, database: Optional[JsonDatabase] = None) -> RoutingTable:
    """
    Extract schemas and assemble a new RoutingTable.

    Args:
        config: Configuration to build from
        database: Optional database providing table handles

    Returns:
        New RoutingTable

    Raises:
        SchemaError: If a source cannot be read or parsed
    """
    table_factory = database.table if database is not None and database.enabled else None
    registry = extract_registry(config.sources, base_dir=str(config.base_dir), table_factory=table_factory)

    library = GeneratorLibrary(locale=config.faker.locale, seed=config.faker.seed)
    engine = GenerationEngine(library, registry, max_depth=config.generation.max_depth)
    injector = FaultInjector(config.fault_profile())

    logger.debug(f"Built routing table with {len(registry)} entities")
    return RoutingTable(config=config, registry=registry, engine=engine, injector=injector)
