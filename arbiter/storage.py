from __future__ import annotations

import json
import queue
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, is_dataclass
from typing import Any, Optional

from .models import ArbiterResult


class StorageBase(ABC):
    """Abstract base class for all result storage backends."""

    @abstractmethod
    def write(self, result: ArbiterResult) -> None:
        """Persist a single arbiter result."""

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release resources."""


def to_jsonable(value: Any) -> Any:
    """Dataclasses (and lists of them) as plain JSON-serialisable data."""
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def result_record(result: ArbiterResult) -> dict:
    return {
        "timestamp": time.time(),
        "kind": result.kind,
        "cache_key": result.cache_key,
        "from_cache": result.from_cache,
        "latency": result.latency_ms,
        "empty": result.is_empty,
        "data": to_jsonable(result.data),
    }


class JsonlStorage(StorageBase):
    """Stores arbiter results as JSON Lines (.jsonl) using a background writer thread."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._queue: queue.Queue[Optional[ArbiterResult]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def write(self, result: ArbiterResult) -> None:
        """Enqueue a result for background writing."""
        self._queue.put(result)

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                f.write(json.dumps(result_record(item), ensure_ascii=False) + "\n")
                f.flush()
