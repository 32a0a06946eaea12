"""Sync configuration model for WDSC.

A sync configuration pairs a local directory with a WebDAV destination.
The persisted record uses these keys:

{
  "id": "3f2a...",                    // Stable identifier (uuid4 hex)
  "name": "Notes",                    // Display name
  "localPath": "/home/me/notes",      // Local root (absolute)
  "webdavUrl": "https://host/dav/notes", // Endpoint URL, its path is the remote base
  "enabled": true,                    // Watching and syncing
  "syncOnSave": true,                 // Upload on create/change events
  "syncOnDelete": false,              // Propagate local deletions
  "syncHidden": false,                // Include dot-prefixed files
  "debounceMs": 1000,                 // Quiet period before a batch runs
  "excludePatterns": ["**/.git/**"],  // Globs matched against the path below localPath
  "username": null,                   // Embedded credentials (optional)
  "password": null
}

Runtime fields (status, last sync time, last error, queue depth) are never
persisted.
"""

import dataclasses
import enum
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any
from urllib.parse import unquote, urlparse, urlunparse

from .validators import validate_sync_field, ValidationError

DEFAULT_DEBOUNCE_MS = 1000
DEFAULT_EXCLUDE_PATTERNS = ['**/.git/**', '**/node_modules/**', '**/__pycache__/**']

# Persisted key -> attribute name
FIELD_MAP = {
    'id': 'id',
    'name': 'name',
    'localPath': 'local_path',
    'webdavUrl': 'webdav_url',
    'enabled': 'enabled',
    'syncOnSave': 'sync_on_save',
    'syncOnDelete': 'sync_on_delete',
    'syncHidden': 'sync_hidden',
    'debounceMs': 'debounce_ms',
    'excludePatterns': 'exclude_patterns',
    'username': 'username',
    'password': 'password',
}


class SyncStatus(str, enum.Enum):
    IDLE = 'idle'
    SYNCING = 'syncing'
    ERROR = 'error'


def generate_id() -> str:
    return uuid.uuid4().hex


def to_http_url(url: str) -> str:
    """Map webdav:// and webdavs:// URLs onto http:// and https://."""
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    if scheme == 'webdav':
        return urlunparse(parsed._replace(scheme='http'))
    if scheme == 'webdavs':
        return urlunparse(parsed._replace(scheme='https'))
    return url


def to_base_uri(url: str) -> str:
    """Reduce an endpoint URL to scheme and authority.

    This is the key under which endpoint clients and auth settings are
    stored, e.g. "webdavs://Host:8443/dav/x?y" -> "https://host:8443".
    """
    parsed = urlparse(to_http_url(url.strip()))
    netloc = parsed.netloc
    # Lowercase the host but leave any userinfo alone
    if '@' in netloc:
        userinfo, host = netloc.rsplit('@', 1)
        netloc = f"{userinfo}@{host.lower()}"
    else:
        netloc = netloc.lower()
    return f"{parsed.scheme.lower()}://{netloc}"


@dataclass
class ConfigurationPatch:
    """Partial update of a sync configuration.

    Every field left as None keeps its current value. Set ``username`` or
    ``password`` to an empty string to clear embedded credentials.
    """

    name: Optional[str] = None
    local_path: Optional[str] = None
    webdav_url: Optional[str] = None
    enabled: Optional[bool] = None
    sync_on_save: Optional[bool] = None
    sync_on_delete: Optional[bool] = None
    sync_hidden: Optional[bool] = None
    debounce_ms: Optional[int] = None
    exclude_patterns: Optional[List[str]] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfigurationPatch':
        """Build a patch from persisted-style or attribute-style keys.

        Raises:
            ValidationError: For unknown keys, the id, or invalid values
        """
        values = {}
        for key, value in data.items():
            if key in FIELD_MAP:
                record_key, attr = key, FIELD_MAP[key]
            elif key in FIELD_MAP.values():
                attr = key
                record_key = next(k for k, v in FIELD_MAP.items() if v == key)
            else:
                raise ValidationError(f"Unknown configuration field: {key}")

            if attr == 'id':
                raise ValidationError("Configuration id cannot be changed")

            values[attr] = validate_sync_field(record_key, value) if value is not None else None
        return cls(**values)

    def changes(self) -> Dict[str, Any]:
        """Get the fields this patch sets."""
        return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)
                if getattr(self, f.name) is not None}


@dataclass
class SyncConfiguration:
    """Declarative and runtime state of one local -> WebDAV sync pair."""

    id: str
    name: str
    local_path: str
    webdav_url: str
    enabled: bool = True
    sync_on_save: bool = True
    sync_on_delete: bool = False
    sync_hidden: bool = False
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    username: Optional[str] = None
    password: Optional[str] = None

    # Runtime state
    status: SyncStatus = field(default=SyncStatus.IDLE, compare=False)
    last_sync_time: Optional[datetime] = field(default=None, compare=False)
    last_error: Optional[str] = field(default=None, compare=False)
    files_in_queue: int = field(default=0, compare=False)

    @classmethod
    def create(cls, name: str, local_path: str, webdav_url: str, **kwargs) -> 'SyncConfiguration':
        """Create a new configuration with a fresh id and validated fields."""
        record = {'id': generate_id(), 'name': name, 'localPath': local_path, 'webdavUrl': webdav_url}
        for attr, value in kwargs.items():
            record_key = next((k for k, v in FIELD_MAP.items() if v == attr), attr)
            record[record_key] = value
        return cls.from_dict(record)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncConfiguration':
        """Build a configuration from its persisted record.

        Raises:
            ValidationError: If a required field is missing or a value is invalid
        """
        missing = [k for k in ('name', 'localPath', 'webdavUrl') if not data.get(k)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        values = {}
        for record_key, attr in FIELD_MAP.items():
            if record_key not in data or data[record_key] is None:
                continue
            values[attr] = validate_sync_field(record_key, data[record_key])

        values.setdefault('id', generate_id())
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the declarative fields to a persisted record."""
        record = {}
        for record_key, attr in FIELD_MAP.items():
            value = getattr(self, attr)
            record[record_key] = list(value) if isinstance(value, list) else value
        return record

    def apply_patch(self, patch: ConfigurationPatch) -> 'SyncConfiguration':
        """Return a new snapshot with the patch applied.

        Runtime state is carried over; this object is left untouched.
        """
        changes = patch.changes()
        for key in ('username', 'password'):
            if changes.get(key) == '':
                changes[key] = None
        if 'exclude_patterns' in changes:
            changes['exclude_patterns'] = list(changes['exclude_patterns'])
        return dataclasses.replace(self, **changes)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def webdav_base_url(self) -> str:
        """Full endpoint URL including the remote base path."""
        return to_http_url(self.webdav_url)

    @property
    def base_uri(self) -> str:
        """Endpoint scheme and authority only."""
        return to_base_uri(self.webdav_url)

    @property
    def remote_path(self) -> str:
        """Base remote path below which the local tree is mirrored."""
        return unquote(urlparse(self.webdav_base_url).path) or '/'

    def status_text(self) -> str:
        """Human readable status line."""
        if not self.enabled:
            return 'Paused'
        if self.status == SyncStatus.SYNCING:
            return f"Syncing... ({self.files_in_queue} files)"
        if self.status == SyncStatus.ERROR:
            return f"Error: {self.last_error}"
        if self.last_sync_time:
            seconds = int(time.time() - self.last_sync_time.timestamp())
            if seconds < 60:
                return f"Synced {seconds}s ago"
            minutes = seconds // 60
            if minutes < 60:
                return f"Synced {minutes}m ago"
            return f"Synced {minutes // 60}h ago"
        return 'Not synced yet'

    def __repr__(self) -> str:
        return (f"SyncConfiguration(id={self.id!r}, name={self.name!r}, "
                f"local_path={self.local_path!r}, webdav_url={self.webdav_url!r}, "
                f"enabled={self.enabled}, status={self.status.value})")
