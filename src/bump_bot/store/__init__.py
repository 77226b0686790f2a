"""
Persistence for Bump Bot.

This package provides the store interface the orchestrator talks to, with
pluggable backends: an in-memory store and a PostgREST-backed store.
"""

from .manager import BumpStore, BumpStoreFactory, InMemoryBumpStore
from .postgrest import PostgrestBumpStore

__all__ = [
    "BumpStore",
    "BumpStoreFactory",
    "InMemoryBumpStore",
    "PostgrestBumpStore",
]
