"""Local key-value store for the estimator.

Holds the values that must survive between sessions on this machine: the
rotated ScopeStack refresh token and the user's customised prompt template.
Backed by a single JSON file.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from config.settings import settings

logger = structlog.get_logger()

KEY_REFRESH_TOKEN = "scopestack_refresh_token"
KEY_PROMPT_TEMPLATE = "prompt_template"


class LocalStore:
    """JSON-file backed key-value store.

    Reads the file on every `get` so that several processes sharing the
    file see each other's writes.
    """

    def __init__(self, file_path: Optional[Path] = None):
        """Initialize LocalStore.

        Args:
            file_path: Path of the JSON file (default from settings).
        """
        self.file_path = Path(file_path or settings.local_store_path)

    def _load(self) -> Dict[str, Any]:
        if not self.file_path.exists():
            return {}
        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            logger.warning("local_store_corrupt", path=str(self.file_path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.file_path)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for `key`, or `default`."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store `value` under `key`."""
        data = self._load()
        data[key] = value
        self._save(data)
        logger.debug("local_store_set", key=key)

    def delete(self, key: str) -> None:
        """Remove `key` if present."""
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
            logger.debug("local_store_deleted", key=key)
