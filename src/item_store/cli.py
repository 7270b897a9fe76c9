"""
Command-line maintenance of a store directory.

Usage:
    item-store put ./report.pdf --ttl 3600
    item-store get 3xQ9aB
    item-store cat 3xQ9aB -o report.pdf
    item-store sweep
"""

from __future__ import annotations

import argparse
import mimetypes
import shutil
import sys
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from item_store.config import get_safe_config
from item_store.core.exceptions import NotFoundError
from item_store.schemas import Item, utc_now

if TYPE_CHECKING:
    from item_store.config import Settings
    from item_store.store import Store

# Data goes to stdout; messages go to stderr so `cat` output stays clean
console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="item-store",
        description="Manage a local item store directory",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    put = commands.add_parser("put", help="Store a file and print its ID")
    put.add_argument("file", type=Path, help="File to store")
    put.add_argument(
        "--ttl",
        type=int,
        default=None,
        help="Seconds until the Item expires (default: store.default_ttl_seconds)",
    )
    put.add_argument(
        "--content-type",
        type=str,
        default=None,
        help="MIME type (default: guessed from the file name)",
    )

    get = commands.add_parser("get", help="Show an Item's metadata")
    get.add_argument("id", help="Item ID")

    cat = commands.add_parser("cat", help="Write an Item's file to stdout or a path")
    cat.add_argument("id", help="Item ID")
    cat.add_argument("-o", "--output", type=Path, default=None, help="Write to this path instead of stdout")

    delete = commands.add_parser("delete", help="Delete an Item and its file")
    delete.add_argument("id", help="Item ID")

    commands.add_parser("sweep", help="Delete all expired Items now")
    commands.add_parser("reconcile", help="Remove orphan files and records without a file")
    commands.add_parser("info", help="Show configuration and store counts")

    return parser


def cmd_put(store: Store, settings: Settings, args: argparse.Namespace) -> int:
    path: Path = args.file
    if not path.is_file():
        console.print(f"[red]Error: File not found: {path}[/red]")
        return 1

    ttl = args.ttl if args.ttl is not None else settings.store.default_ttl_seconds
    if ttl <= 0:
        console.print("[red]Error: --ttl must be positive[/red]")
        return 1

    content_type = args.content_type
    if content_type is None:
        content_type, _ = mimetypes.guess_type(path.name)

    item = Item(
        expires=utc_now() + timedelta(seconds=ttl),
        filename=path.name,
        content_type=content_type,
    )
    item_id = store.put(item, path.open("rb"))

    print(item_id)
    return 0


def cmd_get(store: Store, args: argparse.Namespace) -> int:
    item = store.get(args.id)

    table = Table(title=f"Item {item.id}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("created", item.created.isoformat())
    table.add_row("expires", item.expires.isoformat())
    table.add_row("filename", item.filename or "-")
    table.add_row("content_type", item.content_type or "-")
    for key, value in sorted(item.metadata.items()):
        table.add_row(f"metadata.{key}", value)

    Console().print(table)
    return 0


def cmd_cat(store: Store, args: argparse.Namespace) -> int:
    # get first, so expired Items are not served
    store.get(args.id)

    with store.get_file(args.id) as blob:
        if args.output is None:
            shutil.copyfileobj(blob, sys.stdout.buffer)
            sys.stdout.buffer.flush()
        else:
            with args.output.open("wb") as out:
                shutil.copyfileobj(blob, out)
            console.print(f"[green]✓ Wrote {args.output}[/green]")
    return 0


def cmd_delete(store: Store, args: argparse.Namespace) -> int:
    if not store.delete(args.id):
        raise NotFoundError(args.id)
    console.print(f"[green]✓ Deleted {args.id}[/green]")
    return 0


def cmd_sweep(store: Store) -> int:
    deleted = store.sweep()
    console.print(f"[green]✓ Deleted {deleted} expired Items[/green]")
    return 0


def cmd_reconcile(store: Store) -> int:
    report = store.reconcile()
    if not report.total:
        console.print("[green]✓ Store is consistent[/green]")
        return 0

    for item_id in report.orphan_blobs:
        console.print(f"[yellow]Removed orphan file {item_id}[/yellow]")
    for item_id in report.dangling_records:
        console.print(f"[yellow]Removed record without file {item_id}[/yellow]")
    console.print(f"[green]✓ Repaired {report.total} entries[/green]")
    return 0


def cmd_info(store: Store) -> int:
    table = Table(title="Item Store", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")

    for section, values in get_safe_config().items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", str(value))
    table.add_row("records", str(store.index.count()))
    table.add_row("files", str(store.blobs.count()))

    Console().print(table)
    return 0


def run(store: Store, settings: Settings, args: argparse.Namespace) -> int:
    """Dispatch a parsed command against an open store."""
    if args.command == "put":
        return cmd_put(store, settings, args)
    if args.command == "get":
        return cmd_get(store, args)
    if args.command == "cat":
        return cmd_cat(store, args)
    if args.command == "delete":
        return cmd_delete(store, args)
    if args.command == "sweep":
        return cmd_sweep(store)
    if args.command == "reconcile":
        return cmd_reconcile(store)
    if args.command == "info":
        return cmd_info(store)
    raise ValueError(f"Unknown command: {args.command}")
