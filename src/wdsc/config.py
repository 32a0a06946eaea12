#!/usr/bin/env python3
"""Configuration and persistence for WDSC.

Files under the config directory (default ~/.config/wdsc):

config.json
    Global settings:

    {
      "log_level": "INFO",
      "request_timeout": 30,            // Seconds per WebDAV request
      "endpoints": {
        // Authentication per endpoint, keyed by base URI
        "https://dav.example.com": {"auth": "Basic", "user": "me"}
      }
    }

    Endpoint passwords are kept in the system keyring, never in this file.

sync_configurations.json
    Durable store of sync configurations, keyed by configuration id. The
    whole file is rewritten on every add, remove and update. See
    :mod:`wdsc.sync_configuration` for the record layout.

.force_sync/<id>
    Signal files asking a running daemon to perform a full sync.
"""

import json
import logging
import fcntl
from pathlib import Path
from typing import Optional, Dict, Any, List

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .sync_configuration import to_base_uri
from .validators import validate_config_value, AuthTypeValidator, ValidationError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "wdsc"


class ConfigurationStore:
    """JSON file holding every sync configuration record."""

    def __init__(self, store_path: Path):
        self.store_path = store_path

    def load(self) -> Dict[str, Dict[str, Any]]:
        """Load all records with a shared file lock.

        Returns:
            Mapping of configuration id to persisted record
        """
        if not self.store_path.exists():
            return {}

        try:
            with open(self.store_path, 'r') as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = json.load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except json.JSONDecodeError as e:
            logger.error(f"Configuration store corrupted, ignoring: {e}")
            return {}

        configurations = data.get('configurations', {}) if isinstance(data, dict) else {}
        # Older files stored a plain list
        if isinstance(configurations, list):
            configurations = {c['id']: c for c in configurations if isinstance(c, dict) and 'id' in c}
        return configurations

    def save(self, records: List[Dict[str, Any]]) -> None:
        """Rewrite the whole store with an exclusive lock.

        Args:
            records: Persisted records, each carrying its 'id'
        """
        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        data = {'configurations': {r['id']: r for r in records}}

        with open(self.store_path, 'a+') as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.seek(0)
                f.truncate()
                json.dump(data, f, indent=2)
                f.flush()
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

        # Records may embed credentials
        self.store_path.chmod(0o600)
        logger.debug(f"Saved {len(records)} sync configurations to {self.store_path}")


class Config:
    """Manages WDSC configuration."""

    DEFAULT_CONFIG_DIR = Path.home() / ".config" / "wdsc"
    CONFIG_FILE = "config.json"
    STORE_FILE = "sync_configurations.json"
    LOG_FILE = "wdsc.log"
    FORCE_SYNC_DIR = ".force_sync"

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Custom configuration directory path
        """
        self.config_dir = config_dir or self.DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.config_path = self.config_dir / self.CONFIG_FILE
        self.log_path = self.config_dir / self.LOG_FILE
        self.force_sync_dir = self.config_dir / self.FORCE_SYNC_DIR
        self.store = ConfigurationStore(self.config_dir / self.STORE_FILE)

        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from file."""
        if self.config_path.exists():
            with open(self.config_path, 'r') as f:
                self._config = json.load(f)
            logger.debug(f"Loaded config from {self.config_path}")
        else:
            # Initialize with defaults
            self._config = {
                'log_level': 'INFO',
                'request_timeout': 30,
                'endpoints': {},
            }
            self.save()
            logger.debug(f"Created default config at {self.config_path}")

    def save(self) -> None:
        """Save configuration to file."""
        with open(self.config_path, 'w') as f:
            json.dump(self._config, f, indent=2)
        # Secure file permissions (owner read/write only)
        self.config_path.chmod(0o600)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value with validation.

        Args:
            key: Configuration key
            value: Configuration value

        Raises:
            ValueError: If value is invalid for the given key
        """
        try:
            validated_value = validate_config_value(key, value)
        except ValidationError as e:
            raise ValueError(str(e))
        self._config[key] = validated_value
        self.save()

    @property
    def log_level(self) -> str:
        """Get log level."""
        return self._config.get('log_level', 'INFO').upper()

    @property
    def request_timeout(self) -> int:
        """Get WebDAV request timeout in seconds."""
        return self._config.get('request_timeout', 30)

    def get_endpoint_auth(self, base_uri: str) -> Dict[str, Any]:
        """Get authentication settings for an endpoint.

        Args:
            base_uri: Endpoint URL (reduced to its base URI)

        Returns:
            Dict with 'auth', 'user' and 'password' (password from keyring)
        """
        key = to_base_uri(base_uri)
        settings = dict(self._config.get('endpoints', {}).get(key, {}))
        settings.setdefault('auth', 'None')
        settings.setdefault('user', None)
        settings['password'] = None

        if settings['auth'] != 'None' and settings['user']:
            try:
                settings['password'] = keyring.get_password(KEYRING_SERVICE, key)
            except KeyringError as e:
                logger.warning(f"Could not read password for {key} from keyring: {e}")
        return settings

    def set_endpoint_auth(self, base_uri: str, auth: str, user: Optional[str] = None,
                          password: Optional[str] = None) -> None:
        """Store authentication settings for an endpoint.

        Raises:
            ValueError: If the auth type is invalid
        """
        key = to_base_uri(base_uri)
        try:
            auth = AuthTypeValidator().validate(auth)
        except ValidationError as e:
            raise ValueError(str(e))

        endpoints = self._config.setdefault('endpoints', {})
        endpoints[key] = {'auth': auth, 'user': user if auth != 'None' else None}
        self.save()

        if auth != 'None' and password is not None:
            keyring.set_password(KEYRING_SERVICE, key, password)
        else:
            self._delete_endpoint_password(key)
        logger.info(f"Authentication for {key} set to {auth}")

    def clear_endpoint_auth(self, base_uri: str) -> None:
        """Remove stored authentication for an endpoint."""
        key = to_base_uri(base_uri)
        self._config.get('endpoints', {}).pop(key, None)
        self.save()
        self._delete_endpoint_password(key)

    def _delete_endpoint_password(self, key: str) -> None:
        try:
            keyring.delete_password(KEYRING_SERVICE, key)
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            logger.warning(f"Could not remove password for {key} from keyring: {e}")

    def request_force_sync(self, config_id: str) -> None:
        """Ask a running daemon to fully sync a configuration."""
        self.force_sync_dir.mkdir(parents=True, exist_ok=True)
        (self.force_sync_dir / config_id).touch()

    def take_force_sync_requests(self) -> List[str]:
        """Collect and remove pending force-sync signals.

        Returns:
            Configuration ids that were requested
        """
        if not self.force_sync_dir.exists():
            return []

        requested = []
        for signal_file in self.force_sync_dir.iterdir():
            try:
                signal_file.unlink()
                requested.append(signal_file.name)
            except OSError as e:
                logger.warning(f"Failed to remove force sync signal {signal_file}: {e}")
        return requested
