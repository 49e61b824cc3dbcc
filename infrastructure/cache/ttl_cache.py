import asyncio
import hashlib
import json
import logging
import os
import re
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CACHE_APP_DIR = "pricr"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def default_cache_root() -> Path | None:
    xdg_cache_home = os.getenv("XDG_CACHE_HOME", "").strip()
    if xdg_cache_home:
        return Path(xdg_cache_home)

    home = os.getenv("HOME", "").strip()
    if not home:
        return None
    return Path(home) / ".cache"


def sanitize_namespace(namespace: str) -> str:
    return _UNSAFE_CHARS.sub("_", namespace)


def hash_key(key: str) -> str:
    return hashlib.blake2b(key.encode("utf-8"), digest_size=8).hexdigest()


class TTLCache:
    """Timestamped JSON files on disk, one per (namespace, key).

    Reads never raise: a missing, corrupt, stale or future-dated entry is a miss.
    Writes are best effort. Concurrent writers race and the last one wins; a torn
    file simply fails to parse on the next read.
    """

    def __init__(self, root: Path | None = None, clock: Callable[[], float] = time.time):
        base = root if root is not None else default_cache_root()
        self.root = base / CACHE_APP_DIR if base is not None else None
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self.root is not None

    def path_for(self, namespace: str, key: str) -> Path | None:
        if self.root is None:
            return None
        return self.root / sanitize_namespace(namespace) / f"{hash_key(key)}.json"

    async def read(self, namespace: str, key: str, ttl_seconds: int) -> Any | None:
        path = self.path_for(namespace, key)
        if path is None:
            return None
        return await asyncio.to_thread(self._read_sync, path, ttl_seconds)

    async def write(self, namespace: str, key: str, value: Any) -> None:
        path = self.path_for(namespace, key)
        if path is None:
            return
        await asyncio.to_thread(self._write_sync, path, value)

    def _read_sync(self, path: Path, ttl_seconds: int) -> Any | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError:
            return None

        try:
            envelope = json.loads(raw)
            fetched_at = int(envelope["fetched_at_unix"])
            value = envelope["value"]
        except (ValueError, TypeError, KeyError) as e:
            logger.debug(f"Ignoring unreadable cache entry {path}: {e}")
            return None

        age = int(self._clock()) - fetched_at
        if age < 0 or age > ttl_seconds:
            return None

        return value

    def _write_sync(self, path: Path, value: Any) -> None:
        envelope = {"fetched_at_unix": int(self._clock()), "value": value}
        try:
            serialized = json.dumps(envelope)
        except (TypeError, ValueError) as e:
            logger.debug(f"Failed to serialize cache payload for {path}: {e}")
            return

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(serialized, encoding="utf-8")
        except OSError as e:
            logger.debug(f"Failed to write cache file {path}: {e}")
