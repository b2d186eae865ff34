"""
Local key-value string storage for the study client.

Backed by a single JSON file so the guest id and the offline queue survive
restarts. With no path the store lives in memory only.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class LocalStorage:
    """Persistent string -> string map with get/set/remove semantics"""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path).expanduser() if path else None
        self._items: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Local storage at %s is unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Local storage at %s is not a JSON object, starting empty", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so a crash never leaves a half-written file
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._items = {}
        self._flush()
