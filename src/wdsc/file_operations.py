"""Remote file operations used by the sync engine."""

import logging
import os
from typing import List, Sequence

from .exceptions import DirectoryEnsureFailed, RemoteOperationFailed
from .path_utils import all_parents, normalize_path, parent_path, relative_path, is_excluded
from .webdav_client import RemoteStoreError

logger = logging.getLogger(__name__)


def _is_strictly_inside(base: str, path: str) -> bool:
    """Check path-segment containment of path below base."""
    if base in ('', '/'):
        return path not in ('', '/')
    return path.startswith(base + '/')


class FileOperations:
    """Upload, delete and directory helpers on top of a WebDAV client.

    The client only needs ``stat``, ``create_directory``,
    ``put_file_contents`` and ``delete_file``.
    """

    def ensure_remote_directory(self, client, remote_path: str, base_path: str) -> None:
        """Ensure every parent directory of a remote path exists.

        Ancestors at or above the configured base path are assumed to exist.
        A 405 from MKCOL means another writer created the directory first and
        counts as success.

        Args:
            client: WebDAV client
            remote_path: Remote file path
            base_path: Base remote path of the configuration

        Raises:
            DirectoryEnsureFailed: If a directory could not be created
        """
        normalized_base = normalize_path(base_path).rstrip('/')

        for parent in all_parents(remote_path):
            normalized_parent = normalize_path(parent)

            if not _is_strictly_inside(normalized_base, normalized_parent):
                logger.debug(f"Skipping base path directory: {parent}")
                continue

            try:
                client.stat(parent)
                logger.debug(f"Directory exists: {parent}")
                continue
            except RemoteStoreError:
                pass

            try:
                logger.info(f"Creating remote directory: {parent}")
                client.create_directory(parent)
                logger.info(f"Created remote directory: {parent}")
            except RemoteStoreError as e:
                if e.status == 405:
                    logger.debug(f"Directory already exists (created concurrently): {parent}")
                    continue
                logger.error(f"Failed to create directory {parent}: Status {e.status} - {e.message}")
                raise DirectoryEnsureFailed(parent, e.status, e.message) from e

    def upload_file(self, client, local_path: str, remote_path: str, base_path: str) -> int:
        """Upload a single file, creating missing remote parents first.

        Remote content is always overwritten.

        Returns:
            Number of bytes uploaded

        Raises:
            DirectoryEnsureFailed: If a parent directory could not be created
            RemoteOperationFailed: If reading or uploading the file failed
        """
        if parent_path(remote_path) != '/':
            self.ensure_remote_directory(client, remote_path, base_path)

        try:
            with open(local_path, 'rb') as f:
                content = f.read()
        except OSError as e:
            raise RemoteOperationFailed(f"Upload failed for {local_path} → {remote_path}: {e}") from e

        try:
            client.put_file_contents(remote_path, content, overwrite=True)
        except RemoteStoreError as e:
            message = f"Upload failed for {local_path} → {remote_path}: {e.message}"
            if e.status:
                message = f"{message} (HTTP {e.status})"
            raise RemoteOperationFailed(message, e.status) from e

        return len(content)

    def delete_file(self, client, remote_path: str) -> bool:
        """Delete a remote file.

        Returns:
            False if the file was already gone, True otherwise

        Raises:
            RemoteOperationFailed: For any failure other than 404
        """
        try:
            client.delete_file(remote_path)
        except RemoteStoreError as e:
            if e.status == 404:
                logger.debug(f"Already deleted: {remote_path}")
                return False
            raise RemoteOperationFailed(f"Failed to delete {remote_path}: {e.message}", e.status) from e
        return True

    def walk_directory(self, dir_path: str, exclude_patterns: Sequence[str],
                       sync_hidden: bool = False) -> List[str]:
        """Recursively list files below a directory.

        Excluded directories are not descended into.

        Args:
            dir_path: Local root
            exclude_patterns: Glob patterns relative to dir_path
            sync_hidden: Include dot-prefixed files and directories

        Returns:
            Absolute file paths, sorted per directory
        """
        files: List[str] = []

        def walk(current: str) -> None:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)

            for entry in entries:
                if not sync_hidden and entry.name.startswith('.'):
                    continue

                rel = normalize_path(relative_path(dir_path, entry.path))

                if entry.is_dir(follow_symlinks=False):
                    if is_excluded(rel, exclude_patterns) or is_excluded(rel + '/', exclude_patterns):
                        continue
                    walk(entry.path)
                elif entry.is_file():
                    if is_excluded(rel, exclude_patterns):
                        continue
                    files.append(entry.path)

        walk(dir_path)
        return files

    @staticmethod
    def format_bytes(size: int) -> str:
        """Format bytes to a human readable string."""
        if size < 1024:
            return f"{size} B"
        if size < 1024 * 1024:
            return f"{size / 1024:.1f} KB"
        return f"{size / (1024 * 1024):.1f} MB"
