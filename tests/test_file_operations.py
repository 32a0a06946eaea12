#!/usr/bin/env python3
"""Tests for remote directory creation, uploads, deletes and local walks."""

import threading

import pytest

from wdsc.exceptions import DirectoryEnsureFailed, RemoteOperationFailed
from wdsc.file_operations import FileOperations

from conftest import FakeRemoteStore


@pytest.fixture
def ops():
    return FileOperations()


def test_ensure_creates_missing_directories_top_down(ops, remote):
    ops.ensure_remote_directory(remote, '/base/a/b/c/file.txt', '/base')

    assert remote.calls_for('mkcol') == ['/base/a', '/base/a/b', '/base/a/b/c']
    assert {'/base/a', '/base/a/b', '/base/a/b/c'} <= remote.dirs


def test_ensure_skips_base_and_its_ancestors(ops):
    remote = FakeRemoteStore(directories=('/', '/dav', '/dav/files', '/dav/files/me'))
    ops.ensure_remote_directory(remote, '/dav/files/me/x/file.txt', '/dav/files/me/')

    assert remote.calls_for('stat') == ['/dav/files/me/x']
    assert remote.calls_for('mkcol') == ['/dav/files/me/x']


def test_ensure_does_not_treat_prefix_sibling_as_base(ops):
    """'/sync2' shares a prefix with '/sync' but is not below it."""
    remote = FakeRemoteStore(directories=('/', '/sync'))
    ops.ensure_remote_directory(remote, '/sync/sub/file.txt', '/sync')
    assert remote.calls_for('mkcol') == ['/sync/sub']

    remote = FakeRemoteStore(directories=('/', '/sync', '/sync2'))
    ops.ensure_remote_directory(remote, '/sync2/sub/file.txt', '/sync')
    assert remote.calls_for('mkcol') == []


def test_ensure_skips_existing_directories(ops, remote):
    remote.dirs.add('/base/a')
    ops.ensure_remote_directory(remote, '/base/a/b/file.txt', '/base')

    assert remote.calls_for('mkcol') == ['/base/a/b']


def test_ensure_is_idempotent(ops, remote):
    ops.ensure_remote_directory(remote, '/base/a/b/file.txt', '/base')
    dirs = set(remote.dirs)
    ops.ensure_remote_directory(remote, '/base/a/b/file.txt', '/base')

    assert remote.dirs == dirs
    assert remote.calls_for('mkcol') == ['/base/a', '/base/a/b']


def test_ensure_tolerates_concurrent_creators(ops, remote):
    """Two writers racing on a new nested path both succeed."""
    remote.stat_barrier = threading.Barrier(2)
    errors = []

    def run():
        try:
            ops.ensure_remote_directory(remote, '/base/new/nested/file.txt', '/base')
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert errors == []
    assert remote.dirs == {'/', '/base', '/base/new', '/base/new/nested'}
    # Both writers tried each directory, one of them hit 405
    assert sorted(remote.calls_for('mkcol')) == ['/base/new', '/base/new',
                                                 '/base/new/nested', '/base/new/nested']


def test_ensure_tolerates_method_not_allowed(ops, remote):
    remote.fail[('stat', '/base/a')] = 500
    remote.dirs.add('/base/a')

    ops.ensure_remote_directory(remote, '/base/a/file.txt', '/base')

    assert remote.calls_for('mkcol') == ['/base/a']


def test_ensure_propagates_other_creation_failures(ops, remote):
    remote.fail[('mkcol', '/base/a')] = 403

    with pytest.raises(DirectoryEnsureFailed) as exc_info:
        ops.ensure_remote_directory(remote, '/base/a/b/file.txt', '/base')

    assert exc_info.value.status == 403
    assert exc_info.value.path == '/base/a'
    # Chain aborted before the nested directory
    assert '/base/a/b' not in remote.calls_for('stat')


def test_upload_creates_parents_and_overwrites(ops, remote, tmp_path):
    local = tmp_path / 'file.txt'
    local.write_bytes(b'first')
    ops.upload_file(remote, str(local), '/base/docs/file.txt', '/base')

    local.write_bytes(b'second')
    size = ops.upload_file(remote, str(local), '/base/docs/file.txt', '/base')

    assert size == 6
    assert remote.files['/base/docs/file.txt'] == b'second'


def test_upload_to_root_skips_directory_check(ops, remote, tmp_path):
    local = tmp_path / 'file.txt'
    local.write_bytes(b'x')
    ops.upload_file(remote, str(local), '/file.txt', '/')

    assert remote.calls_for('stat') == []
    assert remote.files['/file.txt'] == b'x'


def test_upload_fails_when_directory_cannot_be_created(ops, remote, tmp_path):
    local = tmp_path / 'file.txt'
    local.write_bytes(b'x')
    remote.fail[('mkcol', '/base/docs')] = 507

    with pytest.raises(DirectoryEnsureFailed):
        ops.upload_file(remote, str(local), '/base/docs/file.txt', '/base')
    assert remote.calls_for('put') == []


def test_upload_wraps_remote_errors(ops, remote, tmp_path):
    local = tmp_path / 'file.txt'
    local.write_bytes(b'x')
    remote.fail[('put', '/base/file.txt')] = 500

    with pytest.raises(RemoteOperationFailed) as exc_info:
        ops.upload_file(remote, str(local), '/base/file.txt', '/base')

    assert exc_info.value.status == 500
    assert 'HTTP 500' in str(exc_info.value)


def test_upload_of_missing_local_file_fails(ops, remote, tmp_path):
    with pytest.raises(RemoteOperationFailed):
        ops.upload_file(remote, str(tmp_path / 'gone.txt'), '/base/gone.txt', '/base')


def test_delete_missing_remote_file_succeeds(ops, remote):
    assert ops.delete_file(remote, '/base/never-existed.txt') is False


def test_delete_existing_file(ops, remote):
    remote.files['/base/a.txt'] = b'x'
    assert ops.delete_file(remote, '/base/a.txt') is True
    assert '/base/a.txt' not in remote.files


def test_delete_propagates_other_errors(ops, remote):
    remote.fail[('delete', '/base/a.txt')] = 403
    with pytest.raises(RemoteOperationFailed) as exc_info:
        ops.delete_file(remote, '/base/a.txt')
    assert exc_info.value.status == 403


def _make_tree(root):
    for rel in ('a.txt', 'src/b.py', 'src/deep/c.py', 'debug.log', 'logs/app.log',
                '.env', '.git/config', 'src/.git/HEAD', '.hidden/x.txt'):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(rel)


def test_walk_respects_exclusions_and_hidden_policy(ops, tmp_path):
    _make_tree(tmp_path)

    files = ops.walk_directory(str(tmp_path), ['**/*.log'], sync_hidden=False)
    rel = sorted(str(f)[len(str(tmp_path)) + 1:] for f in files)

    assert rel == ['a.txt', 'src/b.py', 'src/deep/c.py']


def test_walk_with_hidden_files_and_git_pattern(ops, tmp_path):
    _make_tree(tmp_path)

    files = ops.walk_directory(str(tmp_path), ['**/.git/**'], sync_hidden=True)
    rel = sorted(str(f)[len(str(tmp_path)) + 1:] for f in files)

    assert rel == ['.env', '.hidden/x.txt', 'a.txt', 'debug.log', 'logs/app.log',
                   'src/b.py', 'src/deep/c.py']


def test_walk_prunes_directory_named_by_bare_pattern(ops, tmp_path):
    _make_tree(tmp_path)
    for rel in ('logs/keep.txt', 'src/logs/nested.txt'):
        (tmp_path / rel).parent.mkdir(parents=True, exist_ok=True)
        (tmp_path / rel).write_text(rel)

    files = ops.walk_directory(str(tmp_path), ['logs', '*.log'], sync_hidden=False)
    rel = sorted(str(f)[len(str(tmp_path)) + 1:] for f in files)

    assert rel == ['a.txt', 'src/b.py', 'src/deep/c.py', 'src/logs/nested.txt']


def test_format_bytes():
    assert FileOperations.format_bytes(512) == '512 B'
    assert FileOperations.format_bytes(2048) == '2.0 KB'
    assert FileOperations.format_bytes(5 * 1024 * 1024) == '5.0 MB'
