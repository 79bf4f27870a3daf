"""Sequential folder-tree discovery feeding crawl tasks to a worker pool."""

from __future__ import annotations

import logging
from collections.abc import Callable

from imap_indexer.core.exceptions import FolderAccessError, ImapIndexerError
from imap_indexer.core.models import FolderKind
from imap_indexer.core.store import Folder, MailStore
from imap_indexer.index.store_index import StoreIndex
from imap_indexer.pipeline.crawler import FolderCrawler

logger = logging.getLogger(__name__)


def batch_ranges(message_count: int, batch_size: int) -> list[tuple[int, int]]:
    """Split ``[1, message_count]`` into consecutive inclusive ranges.

    Every range holds ``batch_size`` messages except possibly the last one.
    An empty folder yields no range at all.

    >>> batch_ranges(250, 100)
    [(1, 100), (101, 200), (201, 250)]
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if message_count < 0:
        raise ValueError(f"message_count must be non-negative, got {message_count}")
    return [
        (start, min(start + batch_size - 1, message_count))
        for start in range(1, message_count + 1, batch_size)
    ]


class TreeWalker:
    """Walks the folder hierarchy depth-first on the calling thread.

    Each message-holding folder is counted and split into batches; one
    FolderCrawler per batch is handed to ``submit`` without waiting for it.
    Failures below the root are recorded in the index and the walk moves on
    to the next sibling. Failures at the root propagate to the caller.
    """

    def __init__(
        self,
        store: MailStore,
        index: StoreIndex,
        submit: Callable[[FolderCrawler], object],
        batch_size: int,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._store = store
        self._index = index
        self._submit = submit
        self._batch_size = batch_size
        self._dispatched = 0

    @property
    def dispatched_tasks(self) -> int:
        return self._dispatched

    def walk(self) -> None:
        """Discover the whole tree starting from the store root.

        Raises:
            StoreConnectionError: If the root folder cannot be opened.
            ImapIndexerError: If the root folder itself cannot be read.
        """
        root = self._store.open_root()
        self._index.set_folder_separator(root.separator())
        logger.info("Walking store (separator %r)", self._index.folder_separator)
        self._crawl(root, is_root=True)
        logger.info(
            "Walk complete: %d folders, %d tasks dispatched",
            len(self._index.folders), self._dispatched,
        )

    def _crawl(self, folder: Folder, *, is_root: bool = False) -> None:
        name = folder.full_name
        # The root is only an index entry when it can hold messages itself
        if not is_root:
            self._index.add_folder(name)
        try:
            kind = folder.kind()
            if FolderKind.HOLDS_MESSAGES in kind:
                if is_root:
                    self._index.add_folder(name)
                self._dispatch(name, self._count_messages(folder))
            children = folder.list_children() if FolderKind.HOLDS_FOLDERS in kind else []
        except ImapIndexerError as e:
            if is_root:
                raise
            error = e
            if not isinstance(error, FolderAccessError):
                error = FolderAccessError(f"Failed to read folder {name}: {e}")
                error.__cause__ = e
            logger.warning("Recording failure for folder %s: %s", name, error)
            self._index.add_crawl_exception(error)
            return

        for child in children:
            self._crawl(child)

    def _count_messages(self, folder: Folder) -> int:
        folder.open_read_only()
        try:
            if not folder.is_read_only():
                folder.expunge()
            return folder.message_count()
        finally:
            folder.close(expunge=False)

    def _dispatch(self, folder_name: str, message_count: int) -> None:
        if self._index.has_crawl_exception():
            logger.debug("Index already failed, not dispatching %s", folder_name)
            return
        ranges = batch_ranges(message_count, self._batch_size)
        for start, end in ranges:
            self._submit(FolderCrawler(self._store, folder_name, start, end, self._index))
            self._dispatched += 1
        logger.debug(
            "Folder %s: %d messages in %d batches", folder_name, message_count, len(ranges)
        )
