"""
Briq Trust Ledger — Storage Backends

The ledger never talks to a storage medium directly. Everything persisted
(profiles, the agreement registry, projected NFT metadata) goes through a
KeyValueBackend holding JSON strings:

    briq_trust_data_{address}     → versioned profile record
    briq_agreements_{property_id} → agreement registry entry
    briq_user_nft_{address}       → projected NFT metadata

Backends:
    MemoryBackend  : dict, for tests and single-process demos
    FileBackend    : one JSON file per key under a directory
    RedisBackend   : redis-py, WATCH/MULTI for compare-and-swap

Dependencies: redis >= 5.0.0 (RedisBackend only)
"""
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import redis
import structlog

logger = structlog.get_logger()


class KeyValueBackend:
    """Interface every storage medium implements."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def set_if_unchanged(self, key: str, expected: Optional[str], value: str) -> bool:
        """
        Write `value` only if the stored value still equals `expected`
        (None meaning "key absent"). Returns False when it changed.
        """
        raise NotImplementedError

    def close(self) -> None:
        pass


# =============================================
# IN-MEMORY
# =============================================

class MemoryBackend(KeyValueBackend):

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def set_if_unchanged(self, key: str, expected: Optional[str], value: str) -> bool:
        if self._data.get(key) != expected:
            return False
        self._data[key] = value
        return True


# =============================================
# FILE
# =============================================

class FileBackend(KeyValueBackend):
    """
    One file per key: {base_path}/{key}.json

    Writes go to a temp file in the same directory and are swapped in with
    os.replace, so a crashed write never leaves a half-written record.
    """

    SUFFIX = ".json"

    def __init__(self, base_path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.base_path / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=str(self.base_path), prefix=".tmp-", suffix=self.SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def keys(self, prefix: str = "") -> List[str]:
        names = []
        for path in self.base_path.glob(f"{prefix}*{self.SUFFIX}"):
            if path.name.startswith("."):
                continue
            names.append(path.name[: -len(self.SUFFIX)])
        return sorted(names)

    def set_if_unchanged(self, key: str, expected: Optional[str], value: str) -> bool:
        # Single-process medium: check-then-write is as strong as it gets
        if self.get(key) != expected:
            return False
        self.set(key, value)
        return True


# =============================================
# REDIS
# =============================================

class RedisBackend(KeyValueBackend):
    """
    Redis-backed storage.

    Usage:
        backend = RedisBackend(url="redis://localhost:6379/0")
        store = ProfileStore(backend)
    """

    def __init__(self, url: Optional[str] = None, client: Optional["redis.Redis"] = None):
        self._url = url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        if client is None:
            client = redis.Redis.from_url(
                self._url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=2,
                retry_on_timeout=True,
            )
            logger.info("storage_redis_configured", url=self._url.split("@")[-1])
        self._client = client

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str) -> None:
        self._client.set(key, value)

    def delete(self, key: str) -> bool:
        return bool(self._client.delete(key))

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(self._client.scan_iter(match=f"{prefix}*"))

    def set_if_unchanged(self, key: str, expected: Optional[str], value: str) -> bool:
        with self._client.pipeline() as pipe:
            try:
                pipe.watch(key)
                if pipe.get(key) != expected:
                    pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(key, value)
                pipe.execute()
                return True
            except redis.WatchError:
                logger.debug("storage_cas_lost_race", key=key)
                return False

    def close(self) -> None:
        self._client.close()
        logger.info("storage_redis_disconnected")


def build_backend(settings) -> KeyValueBackend:
    """Pick the storage medium named in settings."""
    if settings.STORAGE_BACKEND == "redis":
        return RedisBackend(url=settings.REDIS_URL)
    if settings.STORAGE_BACKEND == "file":
        return FileBackend(settings.STORAGE_PATH)
    return MemoryBackend()
