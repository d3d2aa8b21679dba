"""Test utilities and helpers."""

from tests.utils.constants import COMPANY_ID, NOW, PHONE, TODAY
from tests.utils.fakes import (
    FakeBookingGateway,
    FakeCatalog,
    FakeClock,
    FakeNow,
    FakeSleep,
    InMemoryDialogContextStore,
    InMemoryOwnershipStore,
    InMemorySharedContextCache,
    ScriptedGenerator,
)

__all__ = [
    # Constants
    "COMPANY_ID",
    "NOW",
    "PHONE",
    "TODAY",
    # Time
    "FakeClock",
    "FakeNow",
    "FakeSleep",
    # Ports
    "FakeBookingGateway",
    "FakeCatalog",
    "InMemoryDialogContextStore",
    "InMemoryOwnershipStore",
    "InMemorySharedContextCache",
    "ScriptedGenerator",
]
