#!/usr/bin/env python3
"""WebDAV client for WDSC."""

import io
import logging
import posixpath
import re
import ssl
from typing import Optional, List, Dict, Any
from urllib.parse import urlparse

import certifi
import httpx
from webdav4.client import (
    Client,
    ClientError,
    HTTPError,
    ResourceAlreadyExists,
    ResourceNotFound,
)


logger = logging.getLogger(__name__)


class RemoteStoreError(Exception):
    """Raised when the WebDAV server rejects an operation.

    Attributes:
        status: HTTP status code (None for transport errors)
        message: Reason text
    """

    def __init__(self, status: Optional[int], message: str, path: str = ''):
        self.status = status
        self.message = message
        self.path = path
        detail = f"{status} {message}" if status is not None else message
        super().__init__(f"{detail} ({path})" if path else detail)


class WebDAVClient:
    """Client for a single WebDAV endpoint.

    All paths passed to the public methods are decoded absolute paths on the
    server (e.g. "/remote.php/dav/files/John Doe/notes.txt"). Encoding for
    the wire is left to the underlying client. The endpoint's own path is
    not prepended, so callers map local files with
    :func:`wdsc.path_utils.to_remote_path`.
    """

    USER_AGENT = 'WDSC/0.1'

    def __init__(self, base_url: str, username: Optional[str] = None,
                 password: Optional[str] = None, auth_type: str = 'Basic',
                 timeout: int = 30, transport: Optional[httpx.BaseTransport] = None):
        """Initialize WebDAV client.

        Args:
            base_url: Endpoint URL (scheme and authority are used)
            username: Username (optional)
            password: Password (optional)
            auth_type: 'None', 'Basic' or 'Digest'
            timeout: Request timeout in seconds
            transport: Custom httpx transport
        """
        parsed = urlparse(base_url)
        if parsed.scheme.lower() not in ('http', 'https'):
            raise ValueError(f"Unsupported WebDAV URL scheme: {base_url}")

        self.base_url = base_url
        self.origin = f"{parsed.scheme.lower()}://{parsed.netloc}"
        self.username = username
        self.timeout = timeout

        auth = None
        if username and auth_type != 'None':
            if auth_type == 'Digest':
                auth = httpx.DigestAuth(username, password or '')
            else:
                auth = httpx.BasicAuth(username, password or '')
        self.auth = auth

        # Explicit certificate validation
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._http = httpx.Client(
            auth=auth,
            timeout=timeout,
            verify=ssl_context,
            headers={'User-Agent': self.USER_AGENT},
            transport=transport,
        )
        self._client = Client(self.origin, http_client=self._http, retry=False)

    @staticmethod
    def _sanitize_for_log(text: str) -> str:
        """Remove credentials from log output."""
        text = re.sub(r'(Authorization["\']?\s*[:=]\s*["\']?)(Basic|Digest)\s+[^\s"\',]+',
                      r'\1\2 ***REDACTED***', text, flags=re.IGNORECASE)
        text = re.sub(r'(https?://)[^/@\s]+@', r'\1***REDACTED***@', text)
        return text

    def _call(self, operation: str, path: str, func, *args, **kwargs):
        """Run a webdav4 call and translate its failures.

        Raises:
            RemoteStoreError: 404 for missing resources, 405 for existing
                ones, the response status for other HTTP errors and None for
                transport failures
        """
        try:
            result = func(*args, **kwargs)
        except ResourceNotFound as e:
            raise RemoteStoreError(404, 'Not Found', path) from e
        except ResourceAlreadyExists as e:
            raise RemoteStoreError(405, 'Method Not Allowed', path) from e
        except HTTPError as e:
            status = getattr(e, 'status_code', None)
            raise RemoteStoreError(status, self._sanitize_for_log(str(e)) or 'Unknown error', path) from e
        except ClientError as e:
            response = getattr(e, 'response', None)
            status = getattr(response, 'status_code', None)
            raise RemoteStoreError(status, self._sanitize_for_log(str(e)) or 'Unknown error', path) from e
        except httpx.HTTPStatusError as e:
            raise RemoteStoreError(e.response.status_code, e.response.reason_phrase or 'Unknown error',
                                   path) from e
        except httpx.HTTPError as e:
            message = self._sanitize_for_log(str(e)) or type(e).__name__
            logger.debug(f"{operation} {path} failed: {message}")
            raise RemoteStoreError(None, message, path) from e

        logger.debug(f"{operation} {path} ok")
        return result

    @staticmethod
    def _to_stat(info: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a webdav4 info dictionary into a stat dictionary."""
        filename = '/' + (info.get('name') or '').strip('/')
        etag = info.get('etag')
        return {
            'filename': filename,
            'basename': posixpath.basename(filename),
            'type': 'directory' if info.get('type') == 'directory' else 'file',
            'size': info.get('content_length') or 0,
            'lastmod': info.get('modified'),
            'etag': etag.strip('"') if etag else None,
            'mime': info.get('content_type'),
        }

    def stat(self, path: str) -> Dict[str, Any]:
        """Get metadata for a remote file or directory.

        Raises:
            RemoteStoreError: 404 if the path does not exist
        """
        return self._to_stat(self._call('PROPFIND', path, self._client.info, path))

    def get_directory_contents(self, path: str = '/', deep: bool = False) -> List[Dict[str, Any]]:
        """List a remote directory.

        Args:
            path: Directory path
            deep: Also list every subdirectory

        Returns:
            Stat dictionaries for the directory's children
        """
        own = '/' + path.strip('/')
        entries = self._call('PROPFIND', path, self._client.ls, path, detail=True)
        items = [s for s in (self._to_stat(e) for e in entries) if s['filename'] != own]

        if deep:
            for item in list(items):
                if item['type'] == 'directory':
                    items.extend(self.get_directory_contents(item['filename'], deep=True))

        logger.debug(f"Listed {len(items)} items from {path}")
        return items

    def create_directory(self, path: str) -> None:
        """Create a remote directory (MKCOL).

        Raises:
            RemoteStoreError: 405 if the directory already exists
        """
        self._call('MKCOL', path, self._client.mkdir, path)
        logger.debug(f"Created directory: {path}")

    def put_file_contents(self, path: str, data: bytes, overwrite: bool = True) -> None:
        """Upload file content.

        Args:
            path: Remote file path
            data: File content
            overwrite: Replace existing content (otherwise fails with 405)
        """
        self._call('PUT', path, self._client.upload_fileobj, io.BytesIO(data), path,
                   overwrite=overwrite)

    def delete_file(self, path: str) -> None:
        """Delete a remote file or directory.

        Raises:
            RemoteStoreError: 404 if the path does not exist
        """
        self._call('DELETE', path, self._client.remove, path)
        logger.debug(f"Deleted: {path}")

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._http.close()
