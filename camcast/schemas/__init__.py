"""Beanie ODM schemas for MongoDB collections."""

from .broadcast import Broadcast
from .init import init_beanie_odm

__all__ = [
    "Broadcast",
    "init_beanie_odm",
]
