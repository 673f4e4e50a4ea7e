"""Endpoint registry and local persistence."""

from meshlink.registry.registry import ServerRegistry
from meshlink.registry.storage import JsonFileStore, MemoryStore


__all__ = [
    "JsonFileStore",
    "MemoryStore",
    "ServerRegistry",
]
