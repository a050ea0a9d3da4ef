"""sessguard CLI - Main Entry Point.

Commands:
    list     - List stored sessions
    inspect  - Show one session's metadata and values
    delete   - Delete one session record
    purge    - Remove sessions idle for longer than a ttl
    keygen   - Generate an encryption key for the file store
"""

import json
import logging
import sys
from datetime import timedelta
from typing import Optional

import click

from . import __version__, __cli_name__
from .colors import success, error, warning, dim, kv, table
from ..config import ConfigError, ConfigLoader
from ..crypto import RecordEncryptor
from ..faults import Fault
from ..store import FileStore


def _open_store(ctx: click.Context) -> FileStore:
    """Build the FileStore described by the global options."""
    opts = ctx.obj
    overrides = {"store": "file"}
    if opts.get("directory"):
        overrides["store_dir"] = opts["directory"]
    if opts.get("key"):
        overrides["encryption_key"] = opts["key"]

    try:
        config = ConfigLoader.load(
            paths=list(opts.get("config") or []),
            env_file=opts.get("env_file"),
            overrides=overrides,
        ).session_config()
    except ConfigError as e:
        error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        encryptor = RecordEncryptor(config.encryption_key) if config.encryption_key else None
        return FileStore(config.store_dir, encryptor=encryptor)
    except ValueError as e:
        error(f"Invalid encryption key: {e}")
        sys.exit(2)
    except Fault as e:
        error(str(e))
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--config', '-c', multiple=True, type=click.Path(dir_okay=False), help='YAML/JSON config file')
@click.option('--env-file', type=click.Path(dir_okay=False), help='.env file with SESSGUARD_* settings')
@click.option('--dir', 'directory', type=click.Path(file_okay=False), help='Session store directory')
@click.option('--key', help='Fernet key for encrypted stores')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, config: tuple, env_file: Optional[str], directory: Optional[str], key: Optional[str], verbose: bool):
    """Inspect and maintain file-backed session stores."""
    ctx.ensure_object(dict)
    ctx.obj.update(config=config, env_file=env_file, directory=directory, key=key, verbose=verbose)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command('list')
@click.pass_context
def list_sessions(ctx):
    """List stored sessions."""
    store = _open_store(ctx)
    rows = []
    unreadable = 0

    for session_id in store.ids():
        try:
            record = store.fetch(session_id)
        except Fault:
            unreadable += 1
            continue
        if record is None:
            continue
        rows.append([
            session_id[:20] + "...",
            str(record.get("requests_counter", "?")),
            str(record.get("last_trace") or "-"),
        ])

    if not rows:
        dim("No sessions stored.")
    else:
        table(["Session", "Requests", "Last trace"], rows)

    if unreadable:
        warning(f"{unreadable} session file(s) could not be read")


@cli.command()
@click.argument('session_id')
@click.pass_context
def inspect(ctx, session_id: str):
    """Show one session's metadata and values."""
    store = _open_store(ctx)
    try:
        record = store.fetch(session_id)
    except Fault as e:
        error(str(e))
        sys.exit(1)

    if record is None:
        error(f"Session not found: {session_id}")
        sys.exit(1)

    kv("requests", record.get("requests_counter", "?"))
    kv("first trace", record.get("first_trace") or "-")
    kv("last trace", record.get("last_trace") or "-")
    kv("regenerated", record.get("regeneration_trace") or "-")
    kv("fingerprint", (record.get("fingerprint") or "-")[:16])
    click.echo(json.dumps(record.get("values", {}), indent=2, sort_keys=True, default=str))


@cli.command()
@click.argument('session_id')
@click.pass_context
def delete(ctx, session_id: str):
    """Delete one session record."""
    store = _open_store(ctx)
    try:
        store.delete(session_id)
    except Fault as e:
        error(str(e))
        sys.exit(1)
    success(f"Deleted {session_id}")


@cli.command()
@click.option('--idle-ttl', type=click.IntRange(min=1), required=True, help='Max idle time in seconds')
@click.pass_context
def purge(ctx, idle_ttl: int):
    """Remove sessions idle for longer than --idle-ttl."""
    store = _open_store(ctx)
    try:
        removed = store.cleanup_expired(timedelta(seconds=idle_ttl))
    except Fault as e:
        error(str(e))
        sys.exit(1)
    success(f"Removed {removed} idle session(s)")


@cli.command()
def keygen():
    """Generate an encryption key for the file store."""
    click.echo(RecordEncryptor.generate_key())


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
