"""Keyed stores. Every per-user collection is read and written through one."""

import copy
import json
import threading

import config
import memory


class KeyedStore:
    """Interface: JSON-able values addressed by string keys."""

    def get(self, key, default=None):
        raise NotImplementedError

    def put(self, key, value):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def keys(self):
        raise NotImplementedError

    def __contains__(self, key):
        return self.get(key) is not None


class InMemoryStore(KeyedStore):
    """Process-local dict. Values are copied in and out so callers can't alias them."""

    def __init__(self):
        self._data = {}
        self._lock = threading.Lock()

    def get(self, key, default=None):
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def put(self, key, value):
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key):
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self):
        with self._lock:
            return sorted(self._data)


class SqliteStore(KeyedStore):
    """JSON values in the documents table, one namespace per collection."""

    def __init__(self, namespace):
        self.namespace = namespace

    def get(self, key, default=None):
        raw = memory.doc_get(self.namespace, str(key))
        if raw is None:
            return default
        return json.loads(raw)

    def put(self, key, value):
        memory.doc_put(self.namespace, str(key), json.dumps(value))

    def delete(self, key):
        return memory.doc_delete(self.namespace, str(key))

    def keys(self):
        return memory.doc_keys(self.namespace)


def open_store(namespace, backend=None):
    """Build the store configured for this deployment."""
    backend = backend or config.STORE_BACKEND
    if backend == "memory":
        return InMemoryStore()
    if backend == "sqlite":
        return SqliteStore(namespace)
    raise ValueError(f"Unknown store backend: {backend}")
