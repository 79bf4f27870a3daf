"""Worker task indexing one message range of one folder."""

from __future__ import annotations

import logging

from imap_indexer.core.exceptions import (
    FetchError,
    FolderAccessError,
    ImapIndexerError,
    MalformedMessageError,
)
from imap_indexer.core.models import MessageIdentity
from imap_indexer.core.store import Folder, MailStore
from imap_indexer.index.store_index import StoreIndex

logger = logging.getLogger(__name__)


class FolderCrawler:
    """Fetches messages ``start`` to ``end`` (inclusive) of a folder into the index.

    Runs on a pool thread. Errors are recorded in the index, never raised.
    """

    def __init__(
        self,
        store: MailStore,
        folder_name: str,
        start: int,
        end: int,
        index: StoreIndex,
    ) -> None:
        self._store = store
        self._folder_name = folder_name
        self._start = start
        self._end = end
        self._index = index

    @property
    def folder_name(self) -> str:
        return self._folder_name

    @property
    def range(self) -> tuple[int, int]:
        return self._start, self._end

    def __repr__(self) -> str:
        return f"FolderCrawler({self._folder_name!r}, {self._start}, {self._end})"

    def __call__(self) -> None:
        self.run()

    def run(self) -> None:
        # Another worker already failed; the index is unusable anyway
        if self._index.has_crawl_exception():
            return
        if self._start > self._end:
            return

        folder: Folder | None = None
        opened = False
        failed = False
        try:
            folder = self._store.get_folder(self._folder_name)
            folder.open_read_only()
            opened = True
            self._index_messages(folder)
        except ImapIndexerError as e:
            failed = True
            self._record(e)
        except Exception as e:
            failed = True
            error = FetchError(
                f"Unexpected error crawling {self._folder_name} "
                f"[{self._start}:{self._end}]: {e}"
            )
            error.__cause__ = e
            self._record(error)
        finally:
            if opened and folder is not None:
                self._close(folder, record=not failed)

    def _index_messages(self, folder: Folder) -> None:
        messages = folder.fetch_range(self._start, self._end)

        identities: list[MessageIdentity] = []
        skipped = 0
        for message in messages:
            try:
                identities.append(MessageIdentity.from_message(message))
            except MalformedMessageError as e:
                logger.warning("Skipping message in %s: %s", self._folder_name, e)
                skipped += 1

        # Numbers the store returned nothing for were deleted mid-flight
        missing = (self._end - self._start + 1) - len(messages)
        if missing > 0:
            logger.warning(
                "Skipping %d messages missing from %s [%d:%d]",
                missing, self._folder_name, self._start, self._end,
            )
            skipped += missing

        self._index.add_messages(self._folder_name, identities)
        self._index.update_indexed_message_count(len(identities))
        if skipped:
            self._index.update_skipped_message_count(skipped)
        logger.debug(
            "Indexed %s [%d:%d]: %d messages, %d skipped",
            self._folder_name, self._start, self._end, len(identities), skipped,
        )

    def _close(self, folder: Folder, *, record: bool) -> None:
        try:
            folder.close(expunge=False)
        except Exception as e:
            logger.warning("Failed to close %s: %s", self._folder_name, e)
            if record:
                self._record(FolderAccessError(f"Failed to close {self._folder_name}: {e}"))

    def _record(self, error: ImapIndexerError) -> None:
        logger.warning("%r failed: %s", self, error)
        self._index.add_crawl_exception(error)
