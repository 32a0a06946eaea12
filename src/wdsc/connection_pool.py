"""Shared WebDAV clients keyed by endpoint."""

import logging
import threading
from typing import Callable, Dict, Optional

from .sync_configuration import to_base_uri
from .webdav_client import WebDAVClient

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Lazily created WebDAV clients, one per base URI.

    Clients are authenticated with the globally configured settings for
    their endpoint and shared by every sync configuration pointing at it.
    A client stays cached until :meth:`invalidate` is called, e.g. after
    the server rejected its credentials.
    """

    def __init__(self, config=None, client_factory: Optional[Callable[[str], WebDAVClient]] = None):
        """Initialize pool.

        Args:
            config: Config used to look up endpoint authentication
            client_factory: Override for building a client from a base URI
        """
        self.config = config
        self._client_factory = client_factory or self._create_client
        self._clients: Dict[str, WebDAVClient] = {}
        self._lock = threading.Lock()

    def _create_client(self, base_uri: str) -> WebDAVClient:
        if self.config:
            # Pick up auth changes written by other processes
            self.config.load()
        settings = self.config.get_endpoint_auth(base_uri) if self.config else {'auth': 'None'}
        timeout = self.config.request_timeout if self.config else 30
        logger.info(f"Creating client for {base_uri} (auth: {settings.get('auth')})")
        return WebDAVClient(
            base_uri,
            username=settings.get('user'),
            password=settings.get('password'),
            auth_type=settings.get('auth', 'None'),
            timeout=timeout,
        )

    def get(self, url: str) -> WebDAVClient:
        """Get the shared client for an endpoint, creating it on first use."""
        key = to_base_uri(url)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self._client_factory(key)
                self._clients[key] = client
            return client

    def invalidate(self, url: str) -> None:
        """Drop the cached client for an endpoint.

        Calls already holding the old client finish with it.
        """
        key = to_base_uri(url)
        with self._lock:
            client = self._clients.pop(key, None)
        if client is not None:
            logger.info(f"Invalidated client for {key}")

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return to_base_uri(url) in self._clients

    def clear(self) -> None:
        """Drop every cached client."""
        with self._lock:
            self._clients.clear()
