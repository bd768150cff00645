"""Storage drivers."""

from merlin.persistence.driver import Driver, InsertTransform
from merlin.persistence.factory import create_driver
from merlin.persistence.memory import MemoryDriver
from merlin.persistence.sqlite import SQLiteDriver

__all__ = [
    "Driver",
    "InsertTransform",
    "MemoryDriver",
    "SQLiteDriver",
    "create_driver",
]
