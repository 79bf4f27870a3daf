"""Thread-safe in-memory index of the folders and messages of a store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from imap_indexer.core.exceptions import ImapIndexerError
from imap_indexer.core.models import INBOX_MAILBOX, CrawlProgress, MessageIdentity

logger = logging.getLogger(__name__)


class _MessageSet:
    """A set of identities paired with the lock guarding it."""

    __slots__ = ("lock", "items")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.items: set[MessageIdentity] = set()


class StoreIndex:
    """Aggregate filled concurrently by crawl workers.

    Every mutation goes through a method of this class; workers never touch
    the underlying collections directly. A non-empty list of crawl exceptions
    means the index must not be trusted.
    """

    def __init__(self) -> None:
        self._folder_separator: str | None = None
        self._inbox: str | None = None
        self._meta_lock = threading.Lock()

        self._folders: set[str] = set()
        self._folders_lock = threading.Lock()

        self._folder_messages: dict[str, _MessageSet] = {}
        self._folder_messages_lock = threading.Lock()

        self._indexed_message_count = 0
        self._indexed_lock = threading.Lock()
        self._skipped_message_count = 0
        self._skipped_lock = threading.Lock()

        self._crawl_exceptions: list[ImapIndexerError] = []
        self._exceptions_lock = threading.Lock()

    # ---------- separator & inbox ----------

    @property
    def folder_separator(self) -> str | None:
        return self._folder_separator

    def set_folder_separator(self, separator: str) -> None:
        """Record the hierarchy delimiter. Only the first call has effect."""
        with self._meta_lock:
            if self._folder_separator is None:
                self._folder_separator = separator
            elif separator != self._folder_separator:
                logger.debug(
                    "Ignoring separator %r, already set to %r",
                    separator, self._folder_separator,
                )

    @property
    def inbox(self) -> str | None:
        return self._inbox

    # ---------- folders ----------

    def add_folder(self, folder_full_name: str) -> None:
        """Record a folder; the first name matching INBOX becomes the inbox."""
        if folder_full_name.upper() == INBOX_MAILBOX:
            with self._meta_lock:
                if self._inbox is None:
                    self._inbox = folder_full_name
        with self._folders_lock:
            self._folders.add(folder_full_name)

    def contains_folder(self, folder_full_name: str) -> bool:
        with self._folders_lock:
            return folder_full_name in self._folders

    @property
    def folders(self) -> frozenset[str]:
        with self._folders_lock:
            return frozenset(self._folders)

    # ---------- messages ----------

    def _message_set(self, folder: str) -> _MessageSet:
        with self._folder_messages_lock:
            message_set = self._folder_messages.get(folder)
            if message_set is None:
                message_set = _MessageSet()
                self._folder_messages[folder] = message_set
            return message_set

    def folder_messages(self, folder: str) -> set[MessageIdentity]:
        """Return the message set of ``folder``, creating it on first access.

        Concurrent callers always receive the same set instance. Use
        add_messages() to insert while workers are running. Iterating the
        returned set is only safe once the crawl has finished; use
        messages_snapshot() to read while workers may still be inserting.
        """
        return self._message_set(folder).items

    def messages_snapshot(self, folder: str) -> frozenset[MessageIdentity]:
        """Copy of the message set of ``folder`` taken under its lock."""
        message_set = self._message_set(folder)
        with message_set.lock:
            return frozenset(message_set.items)

    def add_messages(self, folder: str, identities: Iterable[MessageIdentity]) -> None:
        """Insert identities into the message set of ``folder``."""
        message_set = self._message_set(folder)
        with message_set.lock:
            message_set.items.update(identities)

    # ---------- counters ----------

    def update_indexed_message_count(self, delta: int) -> None:
        with self._indexed_lock:
            self._indexed_message_count += delta

    def update_skipped_message_count(self, delta: int) -> None:
        with self._skipped_lock:
            self._skipped_message_count += delta

    @property
    def indexed_message_count(self) -> int:
        return self._indexed_message_count

    @property
    def skipped_message_count(self) -> int:
        return self._skipped_message_count

    # ---------- failures ----------

    def add_crawl_exception(self, error: ImapIndexerError) -> None:
        with self._exceptions_lock:
            self._crawl_exceptions.append(error)

    def has_crawl_exception(self) -> bool:
        with self._exceptions_lock:
            return bool(self._crawl_exceptions)

    @property
    def crawl_exceptions(self) -> tuple[ImapIndexerError, ...]:
        """Recorded failures in insertion order."""
        with self._exceptions_lock:
            return tuple(self._crawl_exceptions)

    def progress(self) -> CrawlProgress:
        """Snapshot the counters for progress reporting."""
        with self._folders_lock:
            folder_count = len(self._folders)
        with self._exceptions_lock:
            failure_count = len(self._crawl_exceptions)
        return CrawlProgress(
            folders=folder_count,
            indexed=self._indexed_message_count,
            skipped=self._skipped_message_count,
            failures=failure_count,
        )
