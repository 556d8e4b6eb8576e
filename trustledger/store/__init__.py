"""
Briq Trust Ledger — Storage Package
Re-exports for convenience.
"""
from trustledger.store.backends import FileBackend, KeyValueBackend, MemoryBackend, RedisBackend, build_backend
from trustledger.store.profiles import ProfileStore
