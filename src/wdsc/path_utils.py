#!/usr/bin/env python3
"""Path utilities for mapping local files onto a WebDAV tree."""

import logging
import os
import posixpath
from functools import lru_cache
from typing import List, Sequence, Tuple
from urllib.parse import unquote, urlparse

from wcmatch import glob

logger = logging.getLogger(__name__)

# Globstar and brace expansion; '*' never crosses '/' or matches a leading dot
GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE | glob.EXTGLOB | glob.CASE


def relative_path(base_path: str, target_path: str) -> str:
    """Get relative path from base to target.

    Never raises for unrelated paths; the result may contain '..' segments.

    Args:
        base_path: Base directory
        target_path: Target path

    Returns:
        Relative path using the platform separator
    """
    try:
        return os.path.relpath(target_path, base_path)
    except ValueError:
        # Different drives on Windows
        return normalize_path(target_path)


def normalize_path(path: str) -> str:
    """Normalize path separators to forward slashes."""
    return path.replace('\\', '/')


def join_paths(*parts: str) -> str:
    """Join path parts with forward slashes and collapse redundant segments."""
    joined = posixpath.normpath(posixpath.join(*[normalize_path(p) for p in parts]))
    # normpath keeps a leading '//' per POSIX
    if joined.startswith('//'):
        joined = '/' + joined.lstrip('/')
    return joined


@lru_cache(maxsize=256)
def _compile_patterns(patterns: Tuple[str, ...]):
    valid = []
    for pattern in patterns:
        try:
            glob.compile(pattern, flags=GLOB_FLAGS)
        except ValueError as e:
            logger.warning(f"Ignoring invalid exclude pattern {pattern!r}: {e}")
            continue
        valid.append(pattern)
    return glob.compile(valid, flags=GLOB_FLAGS) if valid else None


def is_excluded(rel_path: str, exclude_patterns: Sequence[str]) -> bool:
    """Check if a path matches any exclude pattern.

    Patterns are matched against the whole relative path: '*' stays within
    one segment, '**' spans any depth and matching is case sensitive. A bare
    name such as 'build' therefore only matches at the top level.

    Args:
        rel_path: Path relative to the sync root
        exclude_patterns: Ordered glob patterns

    Returns:
        True if any pattern matches
    """
    if not exclude_patterns:
        return False

    matcher = _compile_patterns(tuple(exclude_patterns))
    return matcher is not None and matcher.match(normalize_path(rel_path))


def is_within_path(base_path: str, target_path: str) -> bool:
    """Check if target is base_path itself or somewhere below it."""
    rel = normalize_path(relative_path(base_path, target_path))
    return not (rel == '..' or rel.startswith('../') or posixpath.isabs(rel))


def to_remote_path(local_path: str, local_base: str, webdav_url: str) -> str:
    """Convert a local path to its remote WebDAV path.

    Args:
        local_path: Absolute local file path
        local_base: Local sync root
        webdav_url: Full WebDAV URL (its path is the remote base) or a bare path

    Returns:
        Absolute remote path, always starting with '/'
    """
    rel = relative_path(local_base, local_path)

    parsed = urlparse(webdav_url)
    if parsed.scheme and parsed.netloc:
        base = unquote(parsed.path) or '/'
    else:
        # Not a URL, treat as a literal path prefix
        base = webdav_url

    remote_path = join_paths(base, rel)
    return remote_path if remote_path.startswith('/') else '/' + remote_path


def parent_path(path: str) -> str:
    """Get parent directory path."""
    return normalize_path(posixpath.dirname(normalize_path(path))) or '.'


def all_parents(path: str) -> List[str]:
    """Get every ancestor directory of a path, root first.

    The filesystem root itself is excluded.

    Args:
        path: File path

    Returns:
        Directories from the top-most down to the immediate parent
    """
    parents = []
    current = parent_path(path)
    while current not in ('/', '.', ''):
        parents.append(current)
        current = parent_path(current)
    parents.reverse()
    return parents
