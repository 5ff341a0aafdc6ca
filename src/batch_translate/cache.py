"""Translation cache: fingerprint builder and persistent key-value store."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from .config import (
    DEFAULT_CACHE_PATH,
    DEFAULT_SYS_PROMPT,
    DEFAULT_USER_PROMPT,
    is_llm_provider,
    normalize_prompt,
)

logger = logging.getLogger(__name__)

# 缓存键前缀，与同一存储中的其他数据隔离
CACHE_PREFIX = "t_"

# 短文本直接编码进键名，便于调试
MAX_LITERAL_TEXT_LENGTH = 32
MAX_ENCODED_TEXT_LENGTH = 50

# encodeURIComponent 不转义的字符
_URI_SAFE = "-_.!~*'()"


def _md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def generate_cache_suffix(
    source_language: str,
    target_language: str,
    provider: str,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    sys_prompt: Optional[str] = None,
    user_prompt: Optional[str] = None,
) -> str:
    """
    Build the language/provider part of a cache key.

    For LLM providers a hash of model, temperature and both prompts is
    appended, so editing any of them only invalidates that configuration's
    entries.
    """
    provider = getattr(provider, "value", provider)
    suffix = f"{target_language}_{source_language}_{provider}"

    if is_llm_provider(provider):
        llm_config = json.dumps(
            {
                "model": model or "",
                "temperature": temperature or 0,
                "sysPrompt": normalize_prompt(sys_prompt, DEFAULT_SYS_PROMPT),
                "userPrompt": normalize_prompt(user_prompt, DEFAULT_USER_PROMPT),
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )
        suffix = f"{suffix}_{_md5(llm_config)}"

    return suffix


def generate_cache_key(text: str, cache_suffix: str) -> str:
    """Short text stays readable in the key; anything longer is hashed."""
    if len(text) <= MAX_LITERAL_TEXT_LENGTH:
        encoded = quote(text, safe=_URI_SAFE)
        if len(encoded) <= MAX_ENCODED_TEXT_LENGTH:
            return f"{CACHE_PREFIX}{encoded}_{cache_suffix}"
    return f"{CACHE_PREFIX}{_md5(text)}_{cache_suffix}"


class CacheStore:
    """
    Persistent string -> string store backed by a SQLite file.

    Every operation swallows storage faults: a failed read is a cache miss
    and a failed write is logged and dropped, so the cache can never fail a
    translation. Blocking SQLite calls run in a worker thread.
    """

    TABLE = "translation_cache"

    def __init__(self, path: Union[str, Path] = DEFAULT_CACHE_PATH):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), check_same_thread=False)
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.TABLE} ("
                "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            conn.commit()
            self._conn = conn
        return self._conn

    def _get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._connect().execute(
                f"SELECT value FROM {self.TABLE} WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        with self._lock:
            conn = self._connect()
            conn.execute(
                f"INSERT OR REPLACE INTO {self.TABLE} (key, value) VALUES (?, ?)",
                (key, value),
            )
            conn.commit()

    def _delete(self, key: str) -> None:
        with self._lock:
            conn = self._connect()
            conn.execute(f"DELETE FROM {self.TABLE} WHERE key = ?", (key,))
            conn.commit()

    def _count(self) -> int:
        with self._lock:
            row = self._connect().execute(
                f"SELECT COUNT(*) FROM {self.TABLE} WHERE key LIKE ? ESCAPE '\\'",
                (_prefix_pattern(),),
            ).fetchone()
            return int(row[0])

    def _clear(self) -> int:
        with self._lock:
            conn = self._connect()
            pattern = _prefix_pattern()
            count = conn.execute(
                f"SELECT COUNT(*) FROM {self.TABLE} WHERE key LIKE ? ESCAPE '\\'", (pattern,)
            ).fetchone()[0]
            conn.execute(f"DELETE FROM {self.TABLE} WHERE key LIKE ? ESCAPE '\\'", (pattern,))
            conn.commit()
            return int(count)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._get, key)
        except (sqlite3.Error, OSError) as e:
            logger.debug(f"Cache read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._set, key, value)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Failed to set translation cache: {e}")

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Failed to delete translation cache entry: {e}")

    async def clear(self) -> int:
        """Remove every translation entry; returns how many were removed."""
        try:
            removed = await asyncio.to_thread(self._clear)
            logger.info(f"Cleared {removed} cached translations")
            return removed
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Failed to clear translation cache: {e}")
            return 0

    async def count(self) -> int:
        try:
            return await asyncio.to_thread(self._count)
        except (sqlite3.Error, OSError) as e:
            logger.debug(f"Cache count failed: {e}")
            return 0

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


def _prefix_pattern() -> str:
    escaped = CACHE_PREFIX.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"
