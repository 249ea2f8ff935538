"""
FakeForge Server Module

FastAPI mock server, routing table and serving handle.
"""

from .app import ADMIN_PREFIX, NETWORK_HEADER, MockMetrics, MockServer, create_mock_server
from .routing import RoutingTable, ServingHandle, build_routing_table

__all__ = [
    'MockServer',
    'MockMetrics',
    'create_mock_server',
    'RoutingTable',
    'ServingHandle',
    'build_routing_table',
    'ADMIN_PREFIX',
    'NETWORK_HEADER',
]
