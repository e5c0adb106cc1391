"""
Local durable key-value store

The client keeps three small records between runs:
  token                   bearer token issued by /api/auth/login or /signup
  bandly_feedback_state   feedback prompt policy state (JSON object)
  analytics_session_id    opaque id sent with analytics events

JSONFileStore keeps every key in a single JSON file inside the config
directory. Each write is a read-modify-write of the whole file and is NOT
atomic across processes: two terminals running at once can overwrite each
other's updates. That only ever costs an extra or a missing feedback prompt.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from bandly.exceptions import StorageError
from bandly.logging_config import get_logger

logger = get_logger(__name__)


TOKEN_KEY = "token"
FEEDBACK_STATE_KEY = "bandly_feedback_state"
ANALYTICS_SESSION_KEY = "analytics_session_id"


class LocalStore:
    """Typed get/put/delete over a string-keyed store"""

    def _read_all(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _write_all(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[Any]:
        return self._read_all().get(key)

    def put(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def get_str(self, key: str) -> Optional[str]:
        value = self.get(key)
        return value if isinstance(value, str) else None

    def put_str(self, key: str, value: str) -> None:
        self.put(key, str(value))

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        value = self.get(key)
        return value if isinstance(value, dict) else None

    def put_json(self, key: str, value: Dict[str, Any]) -> None:
        self.put(key, dict(value))


class MemoryStore(LocalStore):
    """In-process store, used by tests"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def _read_all(self) -> Dict[str, Any]:
        return dict(self._data)

    def _write_all(self, data: Dict[str, Any]) -> None:
        self._data = dict(data)


class JSONFileStore(LocalStore):
    """
    Store backed by one JSON file.

    A missing file reads as empty. A corrupt file raises StorageError on read
    so callers can fall back to defaults.
    """

    def __init__(self, path: str):
        self.path = Path(path).expanduser()

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self.path}")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

        # Token lives here, keep the file private (Unix only)
        try:
            self.path.chmod(0o600)
        except OSError:
            logger.debug(f"Could not restrict permissions on {self.path}")
