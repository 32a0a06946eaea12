"""WebDAV Sync Client (WDSC) - Mirrors local directories to WebDAV servers."""

__version__ = '0.1.0'
__license__ = 'MIT'

from .config import Config
from .sync_configuration import SyncConfiguration, ConfigurationPatch, SyncStatus
from .sync_manager import AutoSyncManager
from .webdav_client import WebDAVClient

__all__ = ['Config', 'SyncConfiguration', 'ConfigurationPatch', 'SyncStatus',
           'AutoSyncManager', 'WebDAVClient']
