import json
import logging
import os

logger = logging.getLogger(__name__)


class MemoryStore:
    """Key-value store kept in a dict. Values are strings."""

    def __init__(self, data: dict = None):
        self._data = dict(data or {})

    def get(self, key: str):
        return self._data.get(key)

    def set(self, key: str, value: str):
        self._data[key] = value

    def remove(self, key: str):
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list:
        return [k for k in self._data if k.startswith(prefix)]


class JsonFileStore(MemoryStore):
    """Key-value store persisted as a single JSON object on disk.

    The whole file is rewritten on every set/remove; access is from one
    event loop so no locking is done.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(self._load())

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable store %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Discarding store %s: not a JSON object", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self):
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)

    def set(self, key: str, value: str):
        super().set(key, value)
        self._save()

    def remove(self, key: str):
        if key in self._data:
            super().remove(key)
            self._save()


def load_json(store, key: str, default=None):
    """Read a JSON value from the store; unparsable values give the default."""
    raw = store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding malformed value for %s", key)
        return default


def save_json(store, key: str, value):
    store.set(key, json.dumps(value, ensure_ascii=False))
