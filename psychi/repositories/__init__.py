# psychi/repositories/__init__.py
"""Storage ports and their in-memory and SQL implementations."""

from .interfaces import (
    AssignmentStore,
    AvailabilityStore,
    RescheduleRequestStore,
    SessionStore,
    SupporterDirectory,
)
from .memory import (
    InMemoryAssignmentStore,
    InMemoryAvailabilityStore,
    InMemoryRescheduleRequestStore,
    InMemorySessionStore,
    InMemorySupporterDirectory,
)

__all__ = [
    "AssignmentStore",
    "AvailabilityStore",
    "InMemoryAssignmentStore",
    "InMemoryAvailabilityStore",
    "InMemoryRescheduleRequestStore",
    "InMemorySessionStore",
    "InMemorySupporterDirectory",
    "RescheduleRequestStore",
    "SessionStore",
    "SupporterDirectory",
]
