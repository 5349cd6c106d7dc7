"""Command-line interface for metasync."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .logging_config import setup_logging_from_config
from .models.config import SyncConfig
from .models.records import Category
from .models.results import ScanStatus
from .scan import JsonWatermarkStore
from .service import SyncService


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="metasync",
        description="Cache Paperless-ngx reference data and scan for changed documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Refresh tags, correspondents and document types and show cache stats
  metasync refresh

  # Scan documents changed since the last successful scan
  metasync scan --fields id title modified

  # Force the next scan to be a full scan
  metasync watermark --reset

  # Run the cache-refresh and document-scan timers
  metasync serve --config metasync.yaml

Environment:
  PAPERLESS_API_URL, PAPERLESS_API_TOKEN, METADATA_CACHE_TTL (ms),
  CACHE_REFRESH_INTERVAL, SCAN_INTERVAL, ENABLE_INCREMENTAL_SCAN, LOG_LEVEL
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        metavar="FILE",
        help="YAML config file (environment variables override it)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser("refresh", help="Refresh all metadata caches and print statistics")

    scan_parser = subparsers.add_parser("scan", help="Run one document scan")
    scan_parser.add_argument(
        "--fields",
        nargs="+",
        metavar="FIELD",
        help="Document fields to request (default: from config)",
    )
    scan_parser.add_argument(
        "--full",
        action="store_true",
        help="Ignore the watermark and scan every document",
    )

    watermark_parser = subparsers.add_parser("watermark", help="Show or reset the scan watermark")
    watermark_parser.add_argument(
        "--reset",
        action="store_true",
        help="Forget the watermark so the next scan is a full scan",
    )

    subparsers.add_parser("serve", help="Run the cache-refresh and document-scan timers")

    return parser


def load_config(args: argparse.Namespace) -> SyncConfig:
    """Layer environment variables and CLI flags over the optional YAML file."""
    base: dict[str, Any] = {}
    if args.config:
        base = SyncConfig.from_yaml_file(args.config).model_dump(exclude_none=True)
    config = SyncConfig.from_env(base=base)
    if args.log_level:
        config.log_level = args.log_level
    return config


def render_stats(stats: dict[str, Any]) -> Table:
    """Render MetadataCache.get_stats() output as a table."""
    table = Table(title="Metadata cache")
    for column in ("category", "size", "age", "valid", "hits", "misses", "refreshes", "failures"):
        table.add_column(column, justify="left" if column == "category" else "right")

    for category in Category:
        row = stats[category.value]
        table.add_row(
            category.label,
            str(row["size"]),
            row["age"],
            "yes" if row["is_valid"] else "no",
            str(row["hits"]),
            str(row["misses"]),
            str(row["refreshes"]),
            str(row["failures"]),
        )

    overall = stats["overall"]
    table.caption = (
        f"hit rate {overall['hit_rate']}% of {overall['total_requests']} requests, TTL {overall['cache_ttl']}"
    )
    return table


async def _run_command(args: argparse.Namespace, config: SyncConfig, console: Console) -> int:
    async with SyncService(config) as service:
        if args.command == "refresh":
            summary = await service.refresh_cache()
            console.print(f"[green]Refreshed in {summary.duration_seconds * 1000:.0f}ms[/green]")
            console.print(render_stats(service.stats()))
            return 0

        if args.command == "scan":
            result = await service.scan(fields=args.fields, full=args.full)
            color = "green" if result.status == ScanStatus.COMPLETED else "yellow"
            console.print(f"[{color}]Scan {result.status.value}[/{color}]")
            for key, value in result.to_dict().items():
                console.print(f"  {key}: {value}")
            return 0 if result.status != ScanStatus.FAILED else 1

        # serve
        await service.serve()
        return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    console = Console()

    try:
        config = load_config(args)
    except Exception as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 1

    setup_logging_from_config(config)

    if args.command == "watermark":
        store = JsonWatermarkStore(config.scan.watermark_file)
        if args.reset:
            store.clear()
            console.print("Watermark cleared; next scan will be a full scan")
        else:
            console.print(f"Last scan: {store.get_last_scan_timestamp() or 'never'}")
        return 0

    try:
        return asyncio.run(_run_command(args, config, console))
    except KeyboardInterrupt:
        console.print("Interrupted")
        return 130
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
