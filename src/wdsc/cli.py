#!/usr/bin/env python3
"""Command-line utility for WDSC."""

import argparse
import getpass
import sys
from pathlib import Path

from wdsc.config import Config
from wdsc.connection_pool import ConnectionPool
from wdsc.exceptions import WDSCError
from wdsc.file_operations import FileOperations
from wdsc.logging_config import setup_logging
from wdsc.sync_configuration import SyncConfiguration, DEFAULT_DEBOUNCE_MS, DEFAULT_EXCLUDE_PATTERNS
from wdsc.sync_manager import AutoSyncManager
from wdsc.validators import ValidationError
from wdsc.webdav_client import RemoteStoreError


def _open_manager(config: Config) -> AutoSyncManager:
    """Build a manager for one-shot commands (no file system observers)."""
    manager = AutoSyncManager(config.store, ConnectionPool(config), observer_factory=None,
                              autoload=False)
    manager.load_configurations(start=False)
    return manager


def _find_configuration(manager: AutoSyncManager, ref: str):
    """Resolve a configuration by id, id prefix or name."""
    configs = manager.get_configurations()
    for config in configs:
        if config.id == ref or config.name == ref:
            return config

    matches = [c for c in configs if c.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    return None


def cmd_add(args):
    """Add a sync configuration."""
    config = Config()
    manager = _open_manager(config)

    password = None
    if args.user:
        password = getpass.getpass(f"Password for {args.user}: ")

    try:
        sync_config = SyncConfiguration.create(
            args.name or Path(args.local_path).name,
            str(Path(args.local_path).expanduser().resolve()),
            args.url,
            enabled=not args.paused,
            sync_on_save=not args.no_sync_on_save,
            sync_on_delete=args.sync_on_delete,
            sync_hidden=args.sync_hidden,
            debounce_ms=args.debounce_ms,
            exclude_patterns=args.exclude if args.exclude is not None else list(DEFAULT_EXCLUDE_PATTERNS),
            username=args.user,
            password=password,
        )
    except ValidationError as e:
        print(f"✗ Invalid configuration: {e}")
        return 1

    manager.add_configuration(sync_config)
    manager.dispose()
    print(f"✓ Added sync configuration '{sync_config.name}' ({sync_config.id})")
    print(f"  {sync_config.local_path} → {sync_config.webdav_base_url}")
    return 0


def cmd_remove(args):
    """Remove a sync configuration."""
    config = Config()
    manager = _open_manager(config)

    sync_config = _find_configuration(manager, args.id)
    if not sync_config:
        print(f"✗ Sync configuration not found: {args.id}")
        return 1

    manager.remove_configuration(sync_config.id)
    manager.dispose()
    print(f"✓ Removed sync configuration '{sync_config.name}'")
    return 0


def _set_enabled(args, enabled: bool):
    config = Config()
    manager = _open_manager(config)

    sync_config = _find_configuration(manager, args.id)
    if not sync_config:
        print(f"✗ Sync configuration not found: {args.id}")
        return 1

    if enabled:
        manager.resume(sync_config.id)
    else:
        manager.pause(sync_config.id)
    manager.dispose()
    print(f"✓ {'Resumed' if enabled else 'Paused'} '{sync_config.name}'")
    print("  Restart the daemon to apply: systemctl --user restart wdsc")
    return 0


def cmd_pause(args):
    """Pause a sync configuration."""
    return _set_enabled(args, False)


def cmd_resume(args):
    """Resume a sync configuration."""
    return _set_enabled(args, True)


def cmd_edit(args):
    """Change fields of a sync configuration."""
    config = Config()
    manager = _open_manager(config)

    sync_config = _find_configuration(manager, args.id)
    if not sync_config:
        print(f"✗ Sync configuration not found: {args.id}")
        return 1

    patch = {}
    for item in args.set or []:
        if '=' not in item:
            print(f"Error: Invalid format '{item}'. Use key=value")
            return 1
        key, value = item.split('=', 1)
        patch[key] = value

    if not patch:
        print("Use --set key=value to change a field (e.g. debounceMs=500)")
        return 1

    try:
        manager.update_configuration(sync_config.id, patch)
    except ValidationError as e:
        print(f"✗ {e}")
        return 1
    finally:
        manager.dispose()

    for key, value in patch.items():
        print(f"✓ Set {key} = {value}")
    return 0


def cmd_list(args):
    """List sync configurations."""
    config = Config()
    manager = _open_manager(config)
    configs = manager.get_configurations()
    manager.dispose()

    if not configs:
        print("No sync configurations. Add one with 'wdsc add'.")
        return 0

    print(f"Sync Configurations ({len(configs)} total):")
    print("=" * 60)
    for sync_config in configs:
        state = 'active' if sync_config.enabled else 'paused'
        print(f"{sync_config.id[:8]}  {sync_config.name} [{state}]")
        print(f"          {sync_config.local_path} → {sync_config.webdav_base_url}")
        if sync_config.exclude_patterns:
            print(f"          exclude: {', '.join(sync_config.exclude_patterns)}")
    return 0


def cmd_status(args):
    """Show sync status."""
    config = Config()
    manager = _open_manager(config)

    print("WebDAV Sync Client Status")
    print("=" * 40)
    print(f"Config Directory: {config.config_dir}")
    print(f"Active: {len(manager.get_active_configurations())}")
    print(f"Paused: {len(manager.get_paused_configurations())}")

    endpoints = config.get('endpoints', {})
    for base_uri, settings in endpoints.items():
        print(f"Endpoint {base_uri}: {settings.get('auth', 'None')} ({settings.get('user') or 'anonymous'})")

    manager.dispose()
    return 0


def cmd_sync(args):
    """Upload every file of a sync configuration now."""
    config = Config()

    if args.daemon:
        manager = _open_manager(config)
        sync_config = _find_configuration(manager, args.id)
        manager.dispose()
        if not sync_config:
            print(f"✗ Sync configuration not found: {args.id}")
            return 1
        config.request_force_sync(sync_config.id)
        print(f"✓ Requested full sync of '{sync_config.name}' from the daemon")
        return 0

    setup_logging(level='DEBUG' if args.verbose else 'WARNING', log_file=config.log_path)
    manager = _open_manager(config)
    sync_config = _find_configuration(manager, args.id)
    if not sync_config:
        print(f"✗ Sync configuration not found: {args.id}")
        return 1

    def progress(completed, total, filename):
        print(f"\r  {completed}/{total}: {filename[:50]:50s}", end='', flush=True)

    print(f"Syncing to {sync_config.name}...")
    try:
        count = manager.sync_now(sync_config.id, progress)
    except (WDSCError, OSError) as e:
        print(f"\n✗ {e}")
        return 1
    finally:
        manager.dispose()

    print(f"\n✓ Synced {count} files to {sync_config.name}")
    return 0


def cmd_auth(args):
    """Configure authentication for a WebDAV endpoint."""
    config = Config()

    if args.clear:
        config.clear_endpoint_auth(args.url)
        print(f"✓ Cleared authentication for {args.url}")
        return 0

    password = None
    if args.type != 'None':
        if not args.user:
            print("Error: --user is required for Basic and Digest authentication")
            return 1
        password = getpass.getpass(f"Password for {args.user}: ")

    try:
        config.set_endpoint_auth(args.url, args.type, args.user, password)
    except ValueError as e:
        print(f"✗ {e}")
        return 1

    pool = ConnectionPool(config)
    client = pool.get(args.url)
    try:
        client.get_directory_contents('/')
        print("✓ Authentication successful!")
    except RemoteStoreError as e:
        print(f"✗ Authentication check failed: {e}")
        return 1
    return 0


def cmd_ls(args):
    """List a remote WebDAV directory."""
    config = Config()
    pool = ConnectionPool(config)
    client = pool.get(args.url)

    try:
        items = client.get_directory_contents(args.path, deep=args.recursive)
    except RemoteStoreError as e:
        print(f"Error: {e}")
        return 1

    print(f"\n{args.path} ({len(items)} items):")
    print("=" * 60)
    for item in items:
        if item['type'] == 'directory':
            size_str = '<dir>'
        else:
            size_str = FileOperations.format_bytes(item['size'])
        print(f"{item['filename']:45s} {size_str:>14s}")
    return 0


def cmd_config(args):
    """Configure WDSC."""
    config = Config()

    if args.list:
        print("Current Configuration:")
        print("=" * 40)
        print(f"log_level = {config.log_level}")
        print(f"request_timeout = {config.request_timeout}")
        return 0

    if args.set:
        for item in args.set:
            if '=' not in item:
                print(f"Error: Invalid format '{item}'. Use key=value")
                continue

            key, value = item.split('=', 1)
            try:
                config.set(key, value)
            except ValueError as e:
                print(f"✗ {e}")
                return 1
            print(f"✓ Set {key} = {value}")

        return 0

    print("Use --list to view config or --set key=value to change config")
    return 0


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='WebDAV Sync Client (WDSC) - Command-line utility'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    add_parser = subparsers.add_parser('add', help='Add a sync configuration')
    add_parser.add_argument('local_path', help='Local directory to watch')
    add_parser.add_argument('url', help='WebDAV URL, its path is the remote base directory')
    add_parser.add_argument('--name', help='Display name (default: local directory name)')
    add_parser.add_argument('--user', help='Embedded username (prompts for password)')
    add_parser.add_argument('--exclude', action='append',
                            help=f"Exclude glob, repeatable (default: {' '.join(DEFAULT_EXCLUDE_PATTERNS)})")
    add_parser.add_argument('--debounce-ms', type=int, default=DEFAULT_DEBOUNCE_MS,
                            help='Quiet period before uploading changes')
    add_parser.add_argument('--sync-on-delete', action='store_true', help='Delete remote files on local delete')
    add_parser.add_argument('--sync-hidden', action='store_true', help='Include dot files')
    add_parser.add_argument('--no-sync-on-save', action='store_true', help='Do not upload on change')
    add_parser.add_argument('--paused', action='store_true', help='Add without enabling')
    add_parser.set_defaults(func=cmd_add)

    remove_parser = subparsers.add_parser('remove', help='Remove a sync configuration')
    remove_parser.add_argument('id', help='Configuration id, id prefix or name')
    remove_parser.set_defaults(func=cmd_remove)

    pause_parser = subparsers.add_parser('pause', help='Pause a sync configuration')
    pause_parser.add_argument('id', help='Configuration id, id prefix or name')
    pause_parser.set_defaults(func=cmd_pause)

    resume_parser = subparsers.add_parser('resume', help='Resume a sync configuration')
    resume_parser.add_argument('id', help='Configuration id, id prefix or name')
    resume_parser.set_defaults(func=cmd_resume)

    edit_parser = subparsers.add_parser('edit', help='Change a sync configuration')
    edit_parser.add_argument('id', help='Configuration id, id prefix or name')
    edit_parser.add_argument('--set', nargs='+', help='Set field (key=value)')
    edit_parser.set_defaults(func=cmd_edit)

    list_parser = subparsers.add_parser('list', help='List sync configurations')
    list_parser.set_defaults(func=cmd_list)

    status_parser = subparsers.add_parser('status', help='Show sync status')
    status_parser.set_defaults(func=cmd_status)

    sync_parser = subparsers.add_parser('sync', help='Upload all files of a configuration now')
    sync_parser.add_argument('id', help='Configuration id, id prefix or name')
    sync_parser.add_argument('--daemon', action='store_true', help='Ask the running daemon instead')
    sync_parser.add_argument('-v', '--verbose', action='store_true', help='Verbose logging')
    sync_parser.set_defaults(func=cmd_sync)

    auth_parser = subparsers.add_parser('auth', help='Configure endpoint authentication')
    auth_parser.add_argument('url', help='WebDAV endpoint URL')
    auth_parser.add_argument('--type', default='Basic', choices=['None', 'Basic', 'Digest'])
    auth_parser.add_argument('--user', help='Username')
    auth_parser.add_argument('--clear', action='store_true', help='Forget stored authentication')
    auth_parser.set_defaults(func=cmd_auth)

    ls_parser = subparsers.add_parser('ls', help='List a remote directory')
    ls_parser.add_argument('url', help='WebDAV endpoint URL')
    ls_parser.add_argument('path', nargs='?', default='/', help='Remote directory')
    ls_parser.add_argument('-r', '--recursive', action='store_true', help='List recursively')
    ls_parser.set_defaults(func=cmd_ls)

    config_parser = subparsers.add_parser('config', help='Configure WDSC')
    config_parser.add_argument('--list', action='store_true', help='List configuration')
    config_parser.add_argument('--set', nargs='+', help='Set config (key=value)')
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
