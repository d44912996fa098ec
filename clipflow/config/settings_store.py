"""Durable key-value settings shared by every session in the process."""
from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from clipflow.utils.logging_setup import setup_logger

logger = setup_logger(__name__)

GROK_ENDPOINT_KEY = "grok-api-endpoint"
GROK_API_KEY_KEY = "grok-api-key"
EXPLICIT_DEMO_OPT_IN_KEY = "explicit-demo-opt-in"
PROVIDER_STORAGE_KEY = "video-provider-selection"


class SettingsStore:
    """
    A flat toml file of string/bool values.

    With path=None the values live in memory only. Every write rewrites the
    whole file; the file is tiny and writes happen on user actions only.
    """

    def __init__(self, path: Optional[os.PathLike] = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {}
        if self.path is not None and self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    self._data = dict(toml.load(f))
            except (OSError, toml.TomlDecodeError) as exc:
                logger.warning(f"Ignoring unreadable settings file {self.path}: {exc}")
                self._data = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def get_str(self, key: str) -> Optional[str]:
        value = self.get(key)
        if value is None:
            return None
        return str(value)

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, bool):
            return value
        return str(value).lower() == "true" if value is not None else False

    def set(self, key: str, value: Any) -> None:
        if value is None:
            self.delete(key)
            return
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._flush()

    def as_dict(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._data)

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            toml.dump(self._data, f)
        os.replace(tmp, self.path)
