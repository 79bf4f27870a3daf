"""Minimal CLI entry point for manual runs of the IMAP Indexer."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from imap_indexer.config.settings import ImapIndexerSettings
from imap_indexer.core.exceptions import CrawlTimeoutError
from imap_indexer.core.imap_store import ImapStore
from imap_indexer.core.models import CrawlProgress
from imap_indexer.index.store_index import StoreIndex
from imap_indexer.pipeline.indexer import StoreIndexer


def setup_logging(level: str) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def on_progress(progress: CrawlProgress) -> None:
    """Print progress updates to stdout."""
    print(
        f"folders={progress.folders} "
        f"indexed={progress.indexed} "
        f"skipped={progress.skipped} "
        f"failures={progress.failures}",
        end="\r",
        flush=True,
    )


def _add_crawl_args(subparser: argparse.ArgumentParser) -> None:
    """Add --threads and --batch-size flags to a subparser."""
    subparser.add_argument(
        "--threads",
        type=int,
        default=None,
        help="Number of crawler threads (default: from settings)",
    )
    subparser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        dest="batch_size",
        help="Messages fetched per crawl task (default: from settings)",
    )


def _validate_crawl_args(args: argparse.Namespace) -> None:
    """Reject non-positive overrides."""
    if getattr(args, "threads", None) is not None and args.threads <= 0:
        print("Error: --threads must be positive", file=sys.stderr)
        sys.exit(1)
    if getattr(args, "batch_size", None) is not None and args.batch_size <= 0:
        print("Error: --batch-size must be positive", file=sys.stderr)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="IMAP Indexer - Index every folder and message of an IMAP account"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    index_parser = subparsers.add_parser("index", help="Crawl the account and print a summary")
    _add_crawl_args(index_parser)

    folders_parser = subparsers.add_parser(
        "folders", help="Crawl the account and list folders with message counts"
    )
    _add_crawl_args(folders_parser)

    return parser


def print_summary(index: StoreIndex) -> None:
    print("\n\nIndex complete:")
    print(f"  separator: {index.folder_separator!r}")
    print(f"  inbox:     {index.inbox}")
    print(f"  folders:   {len(index.folders)}")
    print(f"  indexed:   {index.indexed_message_count}")
    print(f"  skipped:   {index.skipped_message_count}")


def print_folders(index: StoreIndex) -> None:
    folders = sorted(index.folders)
    print(f"\n\nFound {len(folders)} folders:\n")
    for name in folders:
        print(f"  {len(index.folder_messages(name)):8d}  {name}")


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    _validate_crawl_args(args)

    settings = ImapIndexerSettings()
    setup_logging(settings.log_level)

    store = ImapStore.from_settings(settings)
    indexer = StoreIndexer(
        store,
        settings,
        threads=args.threads,
        batch_size=args.batch_size,
        on_progress=on_progress,
    )

    try:
        index = indexer.run()
        if args.command == "index":
            print_summary(index)
        elif args.command == "folders":
            print_folders(index)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except CrawlTimeoutError as e:
        # Pool threads stuck in network I/O would keep the interpreter alive
        print(f"\nError: {e}", file=sys.stderr, flush=True)
        sys.stdout.flush()
        store.close()
        os._exit(1)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
