"""
Session Store
Keyed persistence of one in-progress SessionState per (user, test)
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
import logging

from config.settings import SESSIONS_DIR, SESSION_CONFIG, SessionConfig
from core.models import SessionState

logger = logging.getLogger(__name__)


def check_name(value: str, what: str) -> str:
    """Reject ids that cannot be used as a single file or directory name"""
    if not value or "/" in value or "\\" in value or value.startswith("."):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


class SessionStore(ABC):
    """
    load / save / clear of persisted test sessions.
    Corrupt entries are discarded and reported as absent.
    """

    def __init__(self, user_id: str, config: SessionConfig = None):
        self.user_id = user_id
        self.config = config or SESSION_CONFIG

    def key(self, test_id: str) -> str:
        """Raises ValueError for ids that are not a plain name"""
        return f"{self.config.key_prefix}{check_name(test_id, 'test id')}"

    @abstractmethod
    def _read(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def _write(self, key: str, raw: str) -> None:
        pass

    @abstractmethod
    def _delete(self, key: str) -> None:
        pass

    def load(self, test_id: str) -> Optional[SessionState]:
        key = self.key(test_id)
        try:
            # UnicodeDecodeError from unreadable bytes is a ValueError
            raw = self._read(key)
            if raw is None:
                return None
            state = SessionState.from_dict(json.loads(raw))
            if state.test_id != test_id:
                raise ValueError(f"entry belongs to test {state.test_id!r}")
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(
                f"Discarding corrupt session user={self.user_id} test={test_id}: {e}"
            )
            self._delete(key)
            return None

        return state

    def save(self, state: SessionState) -> None:
        self._write(self.key(state.test_id), json.dumps(state.to_dict()))

    def clear(self, test_id: str) -> None:
        self._delete(self.key(test_id))
        logger.info(f"Cleared session user={self.user_id} test={test_id}")


class JsonSessionStore(SessionStore):
    """One JSON file per session under <base_dir>/<user_id>/"""

    def __init__(
        self,
        user_id: str,
        base_dir: Path = SESSIONS_DIR,
        config: SessionConfig = None,
    ):
        super().__init__(check_name(user_id, "user id"), config)
        self.user_dir = Path(base_dir) / user_id

    def _path(self, key: str) -> Path:
        return self.user_dir / f"{key}.json"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def _write(self, key: str, raw: str) -> None:
        self.user_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(raw)
        tmp_path.replace(path)

    def _delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def list_test_ids(self) -> List[str]:
        """Test ids with an in-progress session for this user"""
        if not self.user_dir.exists():
            return []
        prefix = self.config.key_prefix
        return sorted(
            p.stem[len(prefix):]
            for p in self.user_dir.glob(f"{prefix}*.json")
        )


class InMemorySessionStore(SessionStore):
    """Process-local store holding the serialized entries"""

    def __init__(self, user_id: str = "local", config: SessionConfig = None):
        super().__init__(user_id, config)
        self.entries: Dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self.entries.get(key)

    def _write(self, key: str, raw: str) -> None:
        self.entries[key] = raw

    def _delete(self, key: str) -> None:
        self.entries.pop(key, None)
