"""
Shared fixtures: an in-memory stand-in for the realtime database gateway.

FakeGateway keeps one nested dict, applies slash-keyed merges the way the
realtime database does, delivers full values to subscribers on every write
beneath their path, and can be told to fail specific operations.
"""

import asyncio
import copy
import inspect

import pytest

from patient_portal.core.exceptions import GatewayError, PortalError
from patient_portal.database.gateway import Subscription
from patient_portal.models.user import Session


def _parts(path):
    return [p for p in path.strip('/').split('/') if p]


def _prune(value):
    """The database never stores nulls or empty objects."""
    if isinstance(value, dict):
        pruned = {k: _prune(v) for k, v in value.items()}
        pruned = {k: v for k, v in pruned.items() if v is not None and v != {}}
        return pruned or None
    return value


class FakeGateway:
    """In-memory gateway for testing"""

    def __init__(self, data=None):
        self.data = copy.deepcopy(data) if data else {}
        self.writes = []  # (operation, path)
        self.failures = []  # (operation, path prefix, exception)
        self.subscribers = []  # (path, callback, subscription)
        self.counter = 0

    # ===== Test helpers =====

    def fail(self, operation, path_prefix, error=None):
        self.failures.append((operation, path_prefix, error or RuntimeError("injected failure")))

    def clear_failures(self):
        self.failures = []

    def get(self, path):
        node = self.data
        for part in _parts(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def writes_under(self, path_prefix):
        return [(op, path) for op, path in self.writes if path.startswith(path_prefix)]

    def _check(self, operation, path):
        for op, prefix, error in self.failures:
            if op == operation and path.startswith(prefix):
                raise GatewayError(path, operation, error)

    def _put(self, path, value):
        parts = _parts(path)
        value = _prune(copy.deepcopy(value))
        if not parts:
            self.data = value or {}
            return
        node = self.data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value
        self.data = _prune(self.data) or {}

    def _notify(self, written_path):
        written = '/'.join(_parts(written_path))
        for path, callback, subscription in list(self.subscribers):
            watched = '/'.join(_parts(path))
            related = written == watched or written.startswith(watched + '/') or watched.startswith(written + '/')
            if related and not subscription.closed:
                self._deliver(callback, self.get(path))

    @staticmethod
    def _deliver(callback, value):
        result = callback(value)
        if inspect.isawaitable(result):
            asyncio.ensure_future(result)

    # ===== Gateway interface =====

    async def create(self, path, value):
        self._check('create', path)
        self.counter += 1
        key = f"-key{self.counter:04d}"
        self._put(f"{path}/{key}", {**value, 'id': key})
        self.writes.append(('create', f"{path}/{key}"))
        self._notify(f"{path}/{key}")
        return key

    async def read(self, path):
        self._check('read', path)
        return self.get(path)

    async def set(self, path, value):
        self._check('set', path)
        self._put(path, value)
        self.writes.append(('set', path))
        self._notify(path)

    async def update(self, path, fields):
        if not fields:
            return
        self._check('update', path)
        for key, value in fields.items():
            self._put(f"{path}/{key}", value)
        self.writes.append(('update', path))
        self._notify(path)

    async def delete(self, path):
        self._check('delete', path)
        self._put(path, None)
        self.writes.append(('delete', path))
        self._notify(path)

    async def list(self, path):
        value = await self.read(path)
        return dict(value) if isinstance(value, dict) else {}

    async def query_by_child(self, path, child_key, value, limit=None):
        self._check('query', path)
        matches = {}
        for key, child in (self.get(path) or {}).items():
            node = child
            for part in _parts(child_key):
                node = node.get(part) if isinstance(node, dict) else None
            if node == value:
                matches[key] = child
        if limit:
            matches = dict(list(matches.items())[-limit:])
        return matches

    async def transaction(self, path, fn):
        self._check('transaction', path)
        try:
            new_value = fn(self.get(path))
        except PortalError:
            raise
        except Exception as e:
            raise GatewayError(path, 'transaction', e) from e
        self._put(path, new_value)
        self.writes.append(('transaction', path))
        self._notify(path)
        return copy.deepcopy(new_value)

    async def subscribe(self, path, on_change):
        self._check('subscribe', path)
        entry = None
        subscription = Subscription(path, closer=lambda: self.subscribers.remove(entry))
        entry = (path, on_change, subscription)
        self.subscribers.append(entry)
        self._deliver(on_change, self.get(path))
        return subscription


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def patient_session():
    return Session(uid="user_1", email="pat@example.com", display_name="Pat Doe", id_token="token-1")
