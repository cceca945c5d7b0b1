"""
Durable local storage for the session descriptor.
"""
import json
import logging
import os
import stat
from pathlib import Path
from typing import Any, Dict, Optional

import appdirs
import portalocker

logger = logging.getLogger(__name__)

APP_NAME = "counter-sdk"


def default_store_path() -> Path:
    """COUNTER_SESSION_STORE_PATH, or session.json in the user data dir"""
    env_path = os.environ.get("COUNTER_SESSION_STORE_PATH")
    if env_path:
        return Path(env_path)
    return Path(appdirs.user_data_dir(APP_NAME)) / "session.json"


class SessionStore:
    """
    Process-safe key/value JSON store.

    Reads tolerate a missing or corrupted file by returning an empty store;
    callers decide whether an individual value is usable.
    """

    def __init__(self, store_path: Optional[str] = None):
        self.store_path = Path(store_path) if store_path else default_store_path()
        self._ensure_dir()

    def _ensure_dir(self):
        directory = self.store_path.parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
        if os.name == 'posix':
            os.chmod(directory, stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR)  # 0700

    def _get_lock_path(self) -> str:
        return str(self.store_path) + '.lock'

    def _read_all(self) -> Dict[str, Any]:
        try:
            with open(self.store_path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Session store {self.store_path} is corrupted, ignoring it: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        with open(self.store_path, 'w') as f:
            json.dump(data, f, indent=2)
        if os.name == 'posix':
            os.chmod(self.store_path, stat.S_IRUSR | stat.S_IWUSR)  # 0600

    def get(self, key: str) -> Optional[Any]:
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def delete(self, key: str) -> None:
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)


class MemorySessionStore:
    """Non-persistent store with the SessionStore interface"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)
