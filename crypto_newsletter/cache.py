"""
File-backed TTL cache for slow-changing API responses.

Each entry is one JSON file holding the payload, its creation time and
its TTL. Caching is an optimization only: storage errors are logged and
treated as a miss, never raised.
"""

import hashlib
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


DEFAULT_TTL_MINUTES = 360  # 6 hours

CACHE_FILE_SUFFIX = ".json"


def _now_ms() -> int:
    return int(time.time() * 1000)


class TTLCache:
    """
    Key/value store with per-entry expiry.

    An entry is readable while ``now <= timestamp + ttl``. Expired entries
    are deleted on the read that finds them expired.

    Args:
        cache_dir: Directory holding one file per entry.
        enabled: When False, get() always misses and set() does nothing.
        default_ttl_minutes: TTL used when set() is called without one.
        clock: Callable returning the current time in epoch milliseconds.
    """

    def __init__(
        self,
        cache_dir: Path | str,
        enabled: bool = True,
        default_ttl_minutes: int = DEFAULT_TTL_MINUTES,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.cache_dir = Path(cache_dir)
        self.enabled = enabled
        self.default_ttl_minutes = default_ttl_minutes
        self._clock = clock or _now_ms

    def path_for(self, key: str) -> Path:
        """Location of the entry file for a key."""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self.cache_dir / f"{digest}{CACHE_FILE_SUFFIX}"

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached payload, or None on miss or expiry.

        Args:
            key: Cache key.

        Returns:
            The stored payload if present and unexpired, otherwise None.
        """
        if not self.enabled:
            return None

        path = self.path_for(key)

        try:
            if not path.exists():
                return None

            with open(path, "r", encoding="utf-8") as f:
                entry = json.load(f)

            expires_at = int(entry["timestamp"]) + int(entry["ttl"])
            if self._clock() > expires_at:
                logger.info(f"Cache expired for key: {key}")
                path.unlink(missing_ok=True)
                return None

            logger.info(f"Cache hit for key: {key}")
            return entry["data"]

        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Cache read error for key {key}: {e}")
            return None

    def set(self, key: str, payload: Any, ttl_minutes: Optional[int] = None) -> None:
        """
        Store a payload, replacing any existing entry for the key.

        The entry is written to a temporary file and moved into place so
        concurrent readers never see a partial write.

        Args:
            key: Cache key.
            payload: JSON-serializable value.
            ttl_minutes: Time to live; defaults to the cache default.
        """
        if not self.enabled:
            return

        if ttl_minutes is None:
            ttl_minutes = self.default_ttl_minutes
        ttl_ms = ttl_minutes * 60 * 1000
        entry = {
            "key": key,
            "timestamp": self._clock(),
            "ttl": ttl_ms,
            "data": payload,
        }

        tmp_name = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry, f)
            os.replace(tmp_name, self.path_for(key))
            tmp_name = None
            logger.info(f"Cache set for key: {key} (TTL: {ttl_ms // 60000} minutes)")

        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Cache write error for key {key}: {e}")

        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def clear(self) -> int:
        """
        Delete every cache entry.

        Returns:
            Number of entries removed, or 0 on a storage error.
        """
        if not self.cache_dir.exists():
            logger.info("Cache directory does not exist")
            return 0

        deleted = 0
        try:
            for path in self.cache_dir.iterdir():
                if path.is_file() and path.suffix == CACHE_FILE_SUFFIX:
                    path.unlink()
                    deleted += 1
        except OSError as e:
            logger.warning(f"Cache clear error after removing {deleted} files: {e}")
            return 0

        logger.info(f"Cleared {deleted} cache files")
        return deleted
