#!/usr/bin/env python3
"""Automatic local -> WebDAV sync for WDSC."""

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from watchdog.events import FileSystemEventHandler, FileSystemEvent
from watchdog.observers import Observer

from .change_queue import ChangeQueue, ChangeType
from .connection_pool import ConnectionPool
from .exceptions import (
    AuthenticationFailed,
    ConfigurationNotFound,
    RemoteOperationFailed,
    SyncDisabled,
    SyncFailed,
)
from .file_operations import FileOperations
from .logging_config import get_sync_logger
from .path_utils import is_excluded, is_within_path, normalize_path, relative_path, to_remote_path
from .sync_configuration import ConfigurationPatch, SyncConfiguration, SyncStatus
from .validators import ValidationError
from .webdav_client import RemoteStoreError, WebDAVClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class ConfigurationEvent:
    """Snapshot sent to listeners after a configuration changed."""

    configuration: SyncConfiguration
    removed: bool = False


Listener = Callable[[ConfigurationEvent], None]


class SyncEventHandler(FileSystemEventHandler):
    """Forwards file system events of one sync root to the manager."""

    def __init__(self, manager: 'AutoSyncManager', config_id: str):
        """Initialize event handler.

        Args:
            manager: Owning sync manager
            config_id: Configuration the watched root belongs to
        """
        self.manager = manager
        self.config_id = config_id

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.manager.queue_change(self.config_id, os.fsdecode(event.src_path), ChangeType.CREATE)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.manager.queue_change(self.config_id, os.fsdecode(event.src_path), ChangeType.CHANGE)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.manager.queue_change(self.config_id, os.fsdecode(event.src_path), ChangeType.DELETE)

    def on_moved(self, event: FileSystemEvent) -> None:
        """A rename is a delete of the old path and a create of the new one."""
        if not event.is_directory:
            self.manager.queue_change(self.config_id, os.fsdecode(event.src_path), ChangeType.DELETE)
            self.manager.queue_change(self.config_id, os.fsdecode(event.dest_path), ChangeType.CREATE)


class AutoSyncManager:
    """Watches local directories and mirrors their changes to WebDAV.

    Each sync configuration gets its own observer, change queue and debounce
    timer. When the timer fires the queued changes are processed as one
    batch: per-file failures are counted and logged but never stop the batch.
    A full sync (:meth:`sync_now`) instead stops at the first failure.
    """

    def __init__(self, store, pool: ConnectionPool, file_ops: Optional[FileOperations] = None,
                 observer_factory: Optional[Callable[[], Any]] = Observer,
                 autoload: bool = True):
        """Initialize sync manager.

        Args:
            store: Durable configuration store (``load()``/``save(records)``)
            pool: Shared clients for configurations without embedded credentials
            file_ops: Remote file operations
            observer_factory: Builds a watchdog-compatible observer. With None no
                observers are started and events arrive only through
                :meth:`queue_change`
            autoload: Load stored configurations and start enabled ones
        """
        self.store = store
        self.pool = pool
        self.file_ops = file_ops or FileOperations()
        self.observer_factory = observer_factory

        self._configurations: Dict[str, SyncConfiguration] = {}
        self._observers: Dict[str, Any] = {}
        self._queues: Dict[str, ChangeQueue] = {}
        self._clients: Dict[str, WebDAVClient] = {}
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

        if autoload:
            self.load_configurations()

    # Configuration lifecycle

    def load_configurations(self, start: bool = True) -> None:
        """Load configurations from the store.

        Args:
            start: Start watching the enabled ones
        """
        records = self.store.load()
        loaded = []
        for config_id, record in records.items():
            record = dict(record)
            record.setdefault('id', config_id)
            try:
                loaded.append(SyncConfiguration.from_dict(record))
            except ValidationError as e:
                logger.error(f"Skipping invalid sync configuration {config_id}: {e}")

        with self._lock:
            for config in loaded:
                self._configurations[config.id] = config

        for config in loaded:
            if start and config.enabled:
                self._start_sync(config.id)

        logger.info(f"Loaded {len(loaded)} sync configurations")

    def _save_configurations(self) -> None:
        with self._lock:
            records = [c.to_dict() for c in self._configurations.values()]
        self.store.save(records)

    def add_configuration(self, data: Union[SyncConfiguration, Dict[str, Any]]) -> SyncConfiguration:
        """Add a sync configuration and start watching it if enabled.

        Args:
            data: Configuration object or persisted record

        Returns:
            The stored configuration
        """
        config = data if isinstance(data, SyncConfiguration) else SyncConfiguration.from_dict(data)

        with self._lock:
            self._configurations[config.id] = config
        self._save_configurations()
        self._notify(config.id)

        if config.enabled:
            self._start_sync(config.id)

        get_sync_logger(logger, config.name).info("Added sync configuration")
        return config

    def remove_configuration(self, config_id: str) -> None:
        """Stop watching and delete a configuration. Unknown ids are ignored."""
        with self._lock:
            config = self._configurations.get(config_id)
        if config is None:
            return

        self._stop_sync(config_id)
        with self._lock:
            self._configurations.pop(config_id, None)
            self._clients.pop(config_id, None)
        self._save_configurations()
        self._notify_snapshot(config, removed=True)

        get_sync_logger(logger, config.name).info("Removed sync configuration")

    def update_configuration(self, config_id: str,
                             patch: Union[ConfigurationPatch, Dict[str, Any]]) -> Optional[SyncConfiguration]:
        """Apply a partial update to a configuration.

        Enabling starts watching and disabling stops it. Other changes take
        effect for subsequent events.

        Returns:
            The new configuration snapshot, or None for unknown ids
        """
        if not isinstance(patch, ConfigurationPatch):
            patch = ConfigurationPatch.from_dict(patch)

        with self._lock:
            old = self._configurations.get(config_id)
            if old is None:
                return None
            new = old.apply_patch(patch)
            self._configurations[config_id] = new
            if (new.webdav_url, new.username, new.password) != (old.webdav_url, old.username, old.password):
                self._clients.pop(config_id, None)

        self._save_configurations()
        self._notify(config_id)

        if old.enabled and not new.enabled:
            self._stop_sync(config_id)
        elif not old.enabled and new.enabled:
            self._start_sync(config_id)
        elif new.enabled and new.local_path != old.local_path:
            # Watch the new root
            self._stop_sync(config_id)
            self._start_sync(config_id)

        return new

    def pause(self, config_id: str) -> Optional[SyncConfiguration]:
        return self.update_configuration(config_id, ConfigurationPatch(enabled=False))

    def resume(self, config_id: str) -> Optional[SyncConfiguration]:
        return self.update_configuration(config_id, ConfigurationPatch(enabled=True))

    # Watching

    def _start_sync(self, config_id: str) -> None:
        """Start watching a configuration's local root."""
        with self._lock:
            config = self._configurations.get(config_id)
            if config is None or config_id in self._queues:
                return
            self._queues[config_id] = ChangeQueue(config.name)

        log = get_sync_logger(logger, config.name)
        if self.observer_factory is None:
            log.info(f"Accepting changes for: {config.local_path}")
            return

        observer = self.observer_factory()
        try:
            observer.schedule(SyncEventHandler(self, config_id), config.local_path, recursive=True)
            observer.start()
        except OSError as e:
            log.error(f"Cannot watch {config.local_path}: {e}")
            with self._lock:
                self._queues.pop(config_id, None)
            self._update_runtime(config_id, status=SyncStatus.ERROR, last_error=str(e))
            return

        with self._lock:
            self._observers[config_id] = observer
        log.info(f"Started watching: {config.local_path}")

    def _stop_sync(self, config_id: str) -> None:
        """Dispose the observer, debounce timer and queue of a configuration.

        A batch that already drained its queue keeps running.
        """
        with self._lock:
            observer = self._observers.pop(config_id, None)
            queue = self._queues.pop(config_id, None)
            config = self._configurations.get(config_id)

        if observer is not None:
            observer.stop()
            if observer is not threading.current_thread():
                observer.join(timeout=5)

        if queue is not None:
            queue.clear()

        if config is not None:
            config.files_in_queue = 0
            get_sync_logger(logger, config.name).info(f"Stopped watching: {config.local_path}")

    def is_watching(self, config_id: str) -> bool:
        with self._lock:
            return config_id in self._queues

    def queue_change(self, config_id: str, file_path: str, change_type: ChangeType) -> bool:
        """Queue a local file event and restart the debounce timer.

        Events are dropped for unknown or paused configurations, paths outside
        the local root, excluded or hidden paths, deletions when deletion sync
        is off, and creations/changes when save sync is off.

        Returns:
            True if the event was queued
        """
        with self._lock:
            config = self._configurations.get(config_id)
            queue = self._queues.get(config_id)
        if config is None or queue is None or not config.enabled:
            return False

        rel = normalize_path(relative_path(config.local_path, file_path))
        if rel == '.' or not is_within_path(config.local_path, file_path):
            return False

        if is_excluded(rel, config.exclude_patterns):
            return False

        if not config.sync_hidden and any(part.startswith('.') for part in rel.split('/')):
            return False

        if change_type == ChangeType.DELETE and not config.sync_on_delete:
            return False

        if change_type != ChangeType.DELETE and not config.sync_on_save:
            return False

        size = queue.put(file_path, change_type)
        self._update_runtime(config_id, files_in_queue=size)

        queue.schedule(config.debounce_ms, lambda: self.process_pending_changes(config_id))
        return True

    def pending_changes(self, config_id: str) -> Dict[str, ChangeType]:
        """Get the currently queued changes of a configuration."""
        with self._lock:
            queue = self._queues.get(config_id)
        if queue is None:
            return {}
        return queue.snapshot()

    # Syncing

    def process_pending_changes(self, config_id: str) -> Tuple[int, int]:
        """Process every queued change of a configuration as one batch.

        Returns:
            Tuple of (succeeded, failed) counts
        """
        with self._lock:
            config = self._configurations.get(config_id)
            queue = self._queues.get(config_id)
        if config is None or queue is None:
            return 0, 0

        with queue.batch_lock:
            changes = queue.drain()
            if not changes:
                return 0, 0

            with self._lock:
                # Pick up patches applied while waiting for the previous batch
                config = self._configurations.get(config_id, config)
            log = get_sync_logger(logger, config.name)

            self._update_runtime(config_id, status=SyncStatus.SYNCING, files_in_queue=len(queue))
            log.info(f"Processing {len(changes)} changes")

            success_count = 0
            error_count = 0
            last_error = None

            for change in changes:
                try:
                    self.sync_file(config, change.path, change.change_type)
                    success_count += 1
                except Exception as e:
                    error_count += 1
                    last_error = str(e)
                    log.error(f"Failed to sync {change.path}: {last_error}")

            runtime = {
                'status': SyncStatus.ERROR if error_count else SyncStatus.IDLE,
                'last_sync_time': datetime.now(),
            }
            if error_count:
                runtime['last_error'] = last_error
            else:
                runtime['last_error'] = None
            self._update_runtime(config_id, **runtime)

            log.info(f"Sync completed: {success_count} succeeded, {error_count} failed")
            return success_count, error_count

    def sync_file(self, config: SyncConfiguration, local_path: str, change_type: ChangeType) -> None:
        """Mirror one local change to the remote store.

        Deleting a file that is already gone remotely succeeds. Uploads
        create missing parent directories and always overwrite.

        Raises:
            RemoteOperationFailed: If the remote operation failed
        """
        log = get_sync_logger(logger, config.name)
        client = self._client_for(config)
        remote_path = to_remote_path(local_path, config.local_path, config.webdav_base_url)

        log.info(f"Syncing: {local_path} → {remote_path}")

        try:
            if change_type == ChangeType.DELETE:
                if self.file_ops.delete_file(client, remote_path):
                    log.info(f"Deleted: {remote_path}")
            else:
                size = self.file_ops.upload_file(client, local_path, remote_path, config.remote_path)
                log.info(f"Uploaded: {remote_path} ({self.file_ops.format_bytes(size)})")
        except RemoteOperationFailed as e:
            self._check_auth_failure(config, e)
            raise

    def sync_now(self, config_id: str, progress: Optional[ProgressCallback] = None) -> int:
        """Upload every file below a configuration's local root.

        Stops at the first failing file.

        Args:
            config_id: Configuration id
            progress: Called with (completed, total, filename) after each upload

        Returns:
            Number of files uploaded

        Raises:
            ConfigurationNotFound: Unknown configuration id
            SyncDisabled: Configuration is paused
            SyncFailed: A file could not be uploaded
        """
        with self._lock:
            config = self._configurations.get(config_id)
        if config is None:
            raise ConfigurationNotFound(config_id)
        if not config.enabled:
            raise SyncDisabled(config.name)

        log = get_sync_logger(logger, config.name)
        self._update_runtime(config_id, status=SyncStatus.SYNCING)

        try:
            client = self._client_for(config)
            files = self.file_ops.walk_directory(config.local_path, config.exclude_patterns,
                                                 config.sync_hidden)
            total = len(files)
            log.info(f"Starting full sync of {total} files")

            completed = 0
            for file_path in files:
                remote_path = to_remote_path(file_path, config.local_path, config.webdav_base_url)
                try:
                    self.file_ops.upload_file(client, file_path, remote_path, config.remote_path)
                except Exception as e:
                    log.error(f"Failed to upload {file_path} → {remote_path}: {e}")
                    if isinstance(e, RemoteOperationFailed):
                        self._check_auth_failure(config, e)
                    raise SyncFailed(completed + 1, total, file_path, e) from e

                completed += 1
                if progress:
                    progress(completed, total, os.path.basename(file_path))

                if completed % 100 == 0:
                    log.info(f"Progress: {completed}/{total} files uploaded")

        except Exception as e:
            self._update_runtime(config_id, status=SyncStatus.ERROR, last_error=str(e))
            log.error(f"Full sync failed: {e}")
            raise

        self._update_runtime(config_id, status=SyncStatus.IDLE, last_sync_time=datetime.now(),
                             last_error=None)
        log.info(f"Full sync completed: {total} files uploaded")
        return total

    # Clients

    def _client_for(self, config: SyncConfiguration) -> WebDAVClient:
        """Get the client for a configuration.

        Embedded credentials get a dedicated client, verified once by listing
        the endpoint root. Verification failures are only logged. Everything
        else shares the pooled client of its endpoint.
        """
        if not config.has_credentials:
            return self.pool.get(config.base_uri)

        with self._lock:
            client = self._clients.get(config.id)
        if client is not None:
            return client

        log = get_sync_logger(logger, config.name)
        log.info(f"Creating client for: {config.webdav_base_url} (user: {config.username})")
        client = WebDAVClient(config.webdav_base_url, username=config.username,
                              password=config.password, auth_type='Basic',
                              timeout=getattr(self.pool.config, 'request_timeout', 30))
        try:
            client.get_directory_contents('/')
            log.info("Authentication successful")
        except RemoteStoreError as e:
            log.error(str(AuthenticationFailed(config.base_uri, e.status, e.message)))

        with self._lock:
            self._clients[config.id] = client
        return client

    def _check_auth_failure(self, config: SyncConfiguration, error: RemoteOperationFailed) -> None:
        """Drop the pooled client of an endpoint that rejected our credentials."""
        if error.status == 401 and not config.has_credentials:
            get_sync_logger(logger, config.name).warning(
                f"Authentication failed for {config.base_uri}, resetting connection")
            self.pool.invalidate(config.base_uri)

    # State and notifications

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for configuration changes.

        Returns:
            Callable that unsubscribes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _update_runtime(self, config_id: str, **fields) -> None:
        with self._lock:
            config = self._configurations.get(config_id)
            if config is None:
                return
            for name, value in fields.items():
                setattr(config, name, value)
        self._notify(config_id)

    def _notify(self, config_id: str) -> None:
        with self._lock:
            config = self._configurations.get(config_id)
        if config is not None:
            self._notify_snapshot(config)

    def _notify_snapshot(self, config: SyncConfiguration, removed: bool = False) -> None:
        with self._lock:
            snapshot = dataclasses.replace(config, exclude_patterns=list(config.exclude_patterns))
            listeners = list(self._listeners)

        event = ConfigurationEvent(snapshot, removed)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Configuration listener failed: {e}", exc_info=True)

    def get_configurations(self) -> List[SyncConfiguration]:
        with self._lock:
            return list(self._configurations.values())

    def get_active_configurations(self) -> List[SyncConfiguration]:
        return [c for c in self.get_configurations() if c.enabled]

    def get_paused_configurations(self) -> List[SyncConfiguration]:
        return [c for c in self.get_configurations() if not c.enabled]

    def get_configuration(self, config_id: str) -> Optional[SyncConfiguration]:
        with self._lock:
            return self._configurations.get(config_id)

    def dispose(self) -> None:
        """Stop every observer and timer and forget all configurations."""
        with self._lock:
            config_ids = set(self._observers) | set(self._queues)
        for config_id in config_ids:
            self._stop_sync(config_id)

        with self._lock:
            self._configurations.clear()
            self._clients.clear()
            self._listeners.clear()
