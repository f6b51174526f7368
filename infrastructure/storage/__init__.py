"""
Storage infrastructure - durable key-value stores.
"""

from .key_value_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore

__all__ = [
    'KeyValueStore',
    'MemoryKeyValueStore',
    'SQLiteKeyValueStore'
]
