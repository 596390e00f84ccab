"""Key-value storage for prep lists and the recipe book."""

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_VALID_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class KeyValueStore:
    """get/set store for JSON-serializable values."""

    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError


class JsonFileStore(KeyValueStore):
    """Stores each key as <key>.json in a directory."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _file(self, key: str) -> Path:
        if not _VALID_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.path / f"{key}.json"

    def get(self, key: str) -> Any | None:
        file_path = self._file(key)
        with self._lock:
            if not file_path.exists():
                return None
            with open(file_path, encoding="utf-8") as f:
                return json.load(f)

    def set(self, key: str, value: Any) -> None:
        file_path = self._file(key)
        with self._lock:
            self.path.mkdir(parents=True, exist_ok=True)
            # Write to a temp file first so readers never see a partial file
            fd, tmp_name = tempfile.mkstemp(dir=self.path, prefix=f".{key}-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(value, f, ensure_ascii=False)
                os.replace(tmp_name, file_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        logger.debug(f"Stored {key} in {file_path}")
