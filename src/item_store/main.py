"""
Command-line entry point.
"""

from __future__ import annotations

import sys

from item_store.cli import build_parser, console, run
from item_store.config import ConfigurationError, get_settings
from item_store.core.exceptions import NotFoundError, StoreError
from item_store.logging import setup_logging
from item_store.store import Store


def main(argv: list[str] | None = None) -> int:
    """Load settings, open the configured store and run one command."""
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"FATAL: Configuration error\n{e}", file=sys.stderr)
        return 1

    setup_logging(settings.logging.level, log_format=settings.logging.format, stream=sys.stderr)

    try:
        store = Store.open(
            settings.store.path,
            settings.store.auto_cleanup,
            sweep_interval=settings.store.sweep_interval_seconds,
            reconcile_on_open=settings.store.reconcile_on_open,
        )
    except StoreError as e:
        console.print(f"[red]Error: Cannot open store at {settings.store.path}: {e.message}[/red]")
        return 1

    try:
        return run(store, settings, args)
    except NotFoundError as e:
        console.print(f"[yellow]Not found: {e.item_id}[/yellow]")
        return 1
    except StoreError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
