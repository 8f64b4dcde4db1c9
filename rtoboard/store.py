"""JSON document store backing the status board."""
from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


class StoreError(RuntimeError):
    """Raised when the backing document cannot be read or written."""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_store_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the JSON document."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "db.json").resolve(strict=False)


class JsonStore:
    """In-memory JSON document flushed to a single file on every mutation.

    Reads hand out deep copies so callers can never modify the cached
    document behind the lock.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self._lock = threading.RLock()
        self._data: Optional[Dict[str, Any]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = handle.read()
        except OSError as exc:
            raise StoreError(f"Failed to read {self._path}") from exc
        if not raw.strip():
            self._data = {}
            return self._data
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"{self._path} does not contain valid JSON") from exc
        if not isinstance(loaded, dict):
            raise StoreError(f"{self._path} must contain a JSON object at the top level")
        self._data = loaded
        return self._data

    def _flush(self) -> None:
        data = self._data if self._data is not None else {}
        fd, tmp_name = tempfile.mkstemp(prefix=".db-", suffix=".json", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreError(f"Failed to write {self._path}") from exc

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            data = self._load()
            if key not in data:
                return default
            return copy.deepcopy(data[key])

    def collection(self, name: str) -> List[Dict[str, Any]]:
        """Return a copy of a list-valued collection (empty when missing or null)."""

        value = self.get(name)
        if not isinstance(value, list):
            return []
        return value

    def next_id(self, name: str) -> int:
        """Return one past the highest ``id`` in ``name``; callable inside :meth:`mutate`."""

        items = self.collection(name)
        ids = [int(item.get("id") or 0) for item in items if isinstance(item, dict)]
        return max(ids) + 1 if ids else 1

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    @contextmanager
    def mutate(self) -> Iterator[Dict[str, Any]]:
        """Yield the live document and flush it when the block exits cleanly.

        If the block raises, the cached document is discarded so that a
        partial mutation is never observed.
        """

        with self._lock:
            data = self._load()
            try:
                yield data
            except BaseException:
                self._data = None
                raise
            self._flush()


__all__ = ["JsonStore", "StoreError", "resolve_store_path"]
