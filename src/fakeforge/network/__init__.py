"""
FakeForge Network Module

Fault injection for mock responses (latency, errors, hangs, offline mode).
"""

from .faults import FaultInjector, FaultProfile, FaultResponse

__all__ = [
    'FaultInjector',
    'FaultProfile',
    'FaultResponse',
]
