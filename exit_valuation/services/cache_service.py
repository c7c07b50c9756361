from typing import Protocol

from exit_valuation.services.db_service import DBService


class KeyValueCache(Protocol):
    """JSON-shaped key-value store. TTL is the caller's concern."""

    def get(self, key: str) -> dict | None: ...

    def put(self, key: str, value: dict) -> None: ...


class InMemoryKeyValueCache:
    def __init__(self):
        self._store: dict[str, dict] = {}

    def get(self, key: str) -> dict | None:
        return self._store.get(key)

    def put(self, key: str, value: dict) -> None:
        self._store[key] = value


class SqlKeyValueCache:
    """Cache entries stored in the key_value_settings table."""

    def __init__(self, db: DBService):
        self.db = db

    def get(self, key: str) -> dict | None:
        return self.db.kv_get(key)

    def put(self, key: str, value: dict) -> None:
        self.db.kv_put(key, value)
