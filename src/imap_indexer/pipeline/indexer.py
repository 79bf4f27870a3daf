"""Crawl orchestrator: walk → parallel fetch → drain → verdict."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

from imap_indexer.config.settings import ImapIndexerSettings
from imap_indexer.core.exceptions import CrawlTimeoutError, ImapIndexerError
from imap_indexer.core.models import CrawlProgress
from imap_indexer.core.store import MailStore
from imap_indexer.index.store_index import StoreIndex
from imap_indexer.pipeline.crawler import FolderCrawler
from imap_indexer.pipeline.walker import TreeWalker

logger = logging.getLogger(__name__)


class StoreIndexer:
    """Populates a StoreIndex from a MailStore using a bounded thread pool.

    The folder tree is walked on the calling thread while FolderCrawler tasks
    run on ``threads`` pool workers. The caller gets back either a complete
    index or a single exception:

    - the error that stopped the walk at the root, if any;
    - otherwise the first failure recorded by the walk or a worker;
    - CrawlTimeoutError if the pool did not drain in time.
    """

    def __init__(
        self,
        store: MailStore,
        settings: ImapIndexerSettings | None = None,
        *,
        threads: int | None = None,
        batch_size: int | None = None,
        drain_timeout_seconds: float | None = None,
        progress_interval_seconds: float | None = None,
        on_progress: Callable[[CrawlProgress], None] | None = None,
    ) -> None:
        settings = settings or ImapIndexerSettings()
        self._store = store
        self._threads = threads if threads is not None else settings.threads
        self._batch_size = batch_size if batch_size is not None else settings.batch_size
        self._drain_timeout = (
            drain_timeout_seconds
            if drain_timeout_seconds is not None
            else settings.drain_timeout_seconds
        )
        self._progress_interval = (
            progress_interval_seconds
            if progress_interval_seconds is not None
            else settings.progress_interval_seconds
        )
        self._on_progress = on_progress

        if self._threads < 1:
            raise ValueError(f"threads must be positive, got {self._threads}")
        if self._batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self._batch_size}")

    @property
    def on_progress(self) -> Callable[[CrawlProgress], None] | None:
        return self._on_progress

    @on_progress.setter
    def on_progress(self, callback: Callable[[CrawlProgress], None] | None) -> None:
        self._on_progress = callback

    def run(self, index: StoreIndex | None = None) -> StoreIndex:
        """Crawl the whole store into ``index`` (a fresh one by default).

        Raises:
            StoreConnectionError: The store root could not be opened.
            CrawlTimeoutError: Workers were still running at the deadline. Tasks
                already running are not interrupted; their non-daemon pool threads
                keep the process alive until their I/O returns.
            ImapIndexerError: The walk-level or first recorded crawl failure.
        """
        index = index if index is not None else StoreIndex()
        futures: list[Future[None]] = []
        walk_error: ImapIndexerError | None = None

        executor = ThreadPoolExecutor(
            max_workers=self._threads, thread_name_prefix="folder-crawler"
        )

        def submit(task: FolderCrawler) -> None:
            futures.append(executor.submit(task))

        started = time.monotonic()
        try:
            TreeWalker(self._store, index, submit, self._batch_size).walk()
        except ImapIndexerError as e:
            logger.error("Walk aborted: %s", e)
            walk_error = e
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        # No more work: queued tasks still run to completion
        executor.shutdown(wait=False)
        try:
            self._drain(futures, index)
        except CrawlTimeoutError:
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        elapsed = time.monotonic() - started
        progress = index.progress()
        self._notify(progress)

        if walk_error is not None:
            raise walk_error
        if index.has_crawl_exception():
            failures = index.crawl_exceptions
            logger.error(
                "Crawl finished with %d failure(s) in %.1fs; first: %s",
                len(failures), elapsed, failures[0],
            )
            raise failures[0]

        logger.info(
            "Indexed %d messages (%d skipped) in %d folders in %.1fs",
            progress.indexed, progress.skipped, progress.folders, elapsed,
        )
        return index

    def _drain(self, futures: list[Future[None]], index: StoreIndex) -> None:
        """Wait for every submitted task, reporting progress meanwhile."""
        deadline = time.monotonic() + self._drain_timeout
        pending = set(futures)
        while pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CrawlTimeoutError(
                    f"{len(pending)} of {len(futures)} crawl tasks still running "
                    f"after {self._drain_timeout:.0f}s"
                )
            _, pending = wait(pending, timeout=min(self._progress_interval, remaining))
            self._notify(index.progress())

    def _notify(self, progress: CrawlProgress) -> None:
        if self._on_progress:
            self._on_progress(progress)


def populate_from_store(
    store: MailStore,
    threads: int,
    batch_size: int,
    index: StoreIndex | None = None,
) -> StoreIndex:
    """Populate ``index`` (or a new one) with every folder and message in ``store``."""
    indexer = StoreIndexer(store, threads=threads, batch_size=batch_size)
    return indexer.run(index)
