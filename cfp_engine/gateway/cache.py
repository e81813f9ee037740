"""Content-addressed response cache for the LLM gateway.

Entries are keyed by a hash of (model, prompt) and expire after a TTL
(24h by default). The cache is a development aid: a miss or a broken
entry always falls through to a live request.

Concurrent writers for the same key are safe: values are
content-addressed, so last-write-wins is acceptable. File writes go
through a temp file + ``os.replace`` so readers never see partial JSON.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from cfp_engine.gateway.types import LlmResponse

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


def cache_key(model: str, prompt: str) -> str:
    """Deterministic key for a (model, prompt) pair."""
    raw = json.dumps([model, prompt], ensure_ascii=False)
    return hashlib.sha256(raw.encode()).hexdigest()


class ResponseCache(Protocol):
    """Store passed into the gateway client by its owner."""

    def get(self, key: str) -> LlmResponse | None: ...

    def set(self, key: str, response: LlmResponse) -> None: ...


class InMemoryResponseCache:
    """Dict-backed cache with per-entry expiry."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, LlmResponse]] = {}

    def get(self, key: str) -> LlmResponse | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, response = entry
        if self._clock() - stored_at > self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return response

    def set(self, key: str, response: LlmResponse) -> None:
        self._entries[key] = (self._clock(), response)

    def cleanup(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FileResponseCache:
    """One JSON file per key under ``directory``."""

    def __init__(
        self,
        directory: str | Path,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> LlmResponse | None:
        path = self._path(key)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable cache entry %s: %s", key[:12], e)
            return None

        if self._clock() - payload.get("timestamp", 0) > self.ttl_seconds:
            path.unlink(missing_ok=True)
            return None

        data = payload.get("response") or {}
        try:
            return LlmResponse(
                content=data["content"],
                tokens_used=int(data.get("tokens_used", 0)),
                model=data["model"],
                cached=True,
                processing_time_ms=0,
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed cache entry %s, ignoring", key[:12])
            return None

    def set(self, key: str, response: LlmResponse) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {"timestamp": self._clock(), "response": response.to_dict()}
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(tmp_name, self._path(key))
        except OSError as e:
            logger.warning("Failed to write cache entry %s: %s", key[:12], e)
            Path(tmp_name).unlink(missing_ok=True)

    def cleanup(self) -> int:
        """Delete expired entry files. Returns the number removed."""
        if not self.directory.exists():
            return 0
        removed = 0
        now = self._clock()
        for path in self.directory.glob("*.json"):
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
                expired = now - payload.get("timestamp", 0) > self.ttl_seconds
            except (OSError, ValueError):
                expired = True
            if expired:
                path.unlink(missing_ok=True)
                removed += 1
        return removed
