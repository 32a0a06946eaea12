"""Shared fixtures for WDSC tests."""

import posixpath
import threading
import time

import pytest

from wdsc.connection_pool import ConnectionPool
from wdsc.sync_configuration import SyncConfiguration
from wdsc.sync_manager import AutoSyncManager
from wdsc.webdav_client import RemoteStoreError


class FakeRemoteStore:
    """In-memory WebDAV server with the client's method surface.

    Failures are injected per (method, path) with ``fail``; a status of None
    simulates a network error.
    """

    def __init__(self, directories=('/', '/base')):
        self.dirs = set(directories)
        self.files = {}
        self.calls = []
        self.put_times = {}
        self.fail = {}
        self.stat_barrier = None
        self._lock = threading.Lock()

    def _record(self, method, path):
        with self._lock:
            self.calls.append((method, path))
        key = (method, path)
        if key in self.fail:
            raise RemoteStoreError(self.fail[key], 'Injected failure', path)

    def calls_for(self, method):
        return [path for m, path in self.calls if m == method]

    def stat(self, path):
        self._record('stat', path)
        if self.stat_barrier is not None:
            self.stat_barrier.wait(timeout=5)
        with self._lock:
            if path in self.dirs:
                return {'filename': path, 'type': 'directory', 'size': 0}
            if path in self.files:
                return {'filename': path, 'type': 'file', 'size': len(self.files[path])}
        raise RemoteStoreError(404, 'Not Found', path)

    def create_directory(self, path):
        self._record('mkcol', path)
        with self._lock:
            if path in self.dirs or path in self.files:
                raise RemoteStoreError(405, 'Method Not Allowed', path)
            if posixpath.dirname(path) not in self.dirs:
                raise RemoteStoreError(409, 'Conflict', path)
            self.dirs.add(path)

    def put_file_contents(self, path, data, overwrite=True):
        self._record('put', path)
        with self._lock:
            if posixpath.dirname(path) not in self.dirs:
                raise RemoteStoreError(409, 'Conflict', path)
            if not overwrite and path in self.files:
                raise RemoteStoreError(405, 'Method Not Allowed', path)
            self.files[path] = bytes(data)
            self.put_times.setdefault(path, []).append(time.monotonic())

    def delete_file(self, path):
        self._record('delete', path)
        with self._lock:
            if path in self.files:
                del self.files[path]
            elif path in self.dirs:
                self.dirs.discard(path)
            else:
                raise RemoteStoreError(404, 'Not Found', path)

    def get_directory_contents(self, path='/', deep=False):
        self._record('propfind', path)
        prefix = path.rstrip('/') + '/'
        with self._lock:
            names = [p for p in self.dirs | set(self.files) if p.startswith(prefix) and p != prefix]
        if not deep:
            names = [p for p in names if '/' not in p[len(prefix):]]
        return [{'filename': p, 'type': 'directory' if p in self.dirs else 'file'} for p in sorted(names)]


class MemoryStore:
    """Configuration store kept in memory."""

    def __init__(self, records=None):
        self.records = dict(records or {})
        self.saves = 0

    def load(self):
        return {k: dict(v) for k, v in self.records.items()}

    def save(self, records):
        self.saves += 1
        self.records = {r['id']: dict(r) for r in records}


class FakeObserver:
    """Stands in for a watchdog observer."""

    instances = []

    def __init__(self):
        self.scheduled = []
        self.started = False
        self.stopped = False
        FakeObserver.instances.append(self)

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def pool(remote):
    return ConnectionPool(client_factory=lambda base_uri: remote)


@pytest.fixture
def manager(store, pool):
    manager = AutoSyncManager(store, pool, observer_factory=None)
    yield manager
    manager.dispose()


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / 'repo'
    root.mkdir()
    return root


@pytest.fixture
def make_config(local_root):
    def factory(**kwargs):
        kwargs.setdefault('debounce_ms', 50)
        kwargs.setdefault('exclude_patterns', [])
        return SyncConfiguration.create(
            kwargs.pop('name', 'test'),
            kwargs.pop('local_path', str(local_root)),
            kwargs.pop('webdav_url', 'https://dav.example.com/base'),
            **kwargs,
        )
    return factory
