"""Shared fixtures for IMAP Indexer tests."""

from __future__ import annotations

import threading
import time

import pytest

from imap_indexer.core.exceptions import StoreConnectionError
from imap_indexer.core.models import FetchedMessage, FolderKind
from imap_indexer.core.store import Folder, MailStore
from imap_indexer.index.store_index import StoreIndex


def make_message(folder: str, number: int) -> FetchedMessage:
    """A well-formed fetched message unique to ``folder`` and ``number``."""
    raw = (
        f"Message-ID: <{number}.{folder.replace('/', '.')}@example.com>\r\n"
        f"From: sender@example.com\r\n"
        f"To: recipient@example.com\r\n"
        f"Subject: Message {number} in {folder}\r\n"
        f"Date: Mon, 15 Jan 2024 10:30:00 +0000\r\n"
        "\r\n"
    ).encode()
    return FetchedMessage(number=number, raw_headers=raw)


class FakeFolder(Folder):
    """In-memory folder. Open/close bookkeeping lives on the owning store."""

    def __init__(
        self,
        store: FakeStore,
        name: str,
        kind: FolderKind,
        messages: list[FetchedMessage],
        *,
        open_error: Exception | None = None,
        list_error: Exception | None = None,
        fetch_error: Exception | None = None,
        read_write: bool = False,
    ) -> None:
        self._store = store
        self._name = name
        self._kind = kind
        self.messages = messages
        self.open_error = open_error
        self.list_error = list_error
        self.fetch_error = fetch_error
        self.read_write = read_write
        self.expunged = 0

    @property
    def full_name(self) -> str:
        return self._name

    def separator(self) -> str:
        return self._store.separator

    def kind(self) -> FolderKind:
        return self._kind

    def open_read_only(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self._store.track_open(self._name, +1)

    def is_read_only(self) -> bool:
        return not self.read_write

    def expunge(self) -> None:
        self.expunged += 1

    def close(self, expunge: bool = False) -> None:
        self._store.track_open(self._name, -1)

    def message_count(self) -> int:
        return len(self.messages)

    def list_children(self) -> list[Folder]:
        if self.list_error is not None:
            raise self.list_error
        return self._store.children_of(self._name)

    def fetch_range(self, start: int, end: int) -> list[FetchedMessage]:
        self._store.record_fetch(self._name, start, end)
        if self._store.fetch_delay:
            time.sleep(self._store.fetch_delay)
        if self.fetch_error is not None:
            raise self.fetch_error
        return [m for m in self.messages if start <= m.number <= end]


class FakeStore(MailStore):
    """In-memory MailStore whose hierarchy is built with add_folder()."""

    def __init__(
        self,
        separator: str = "/",
        *,
        root_kind: FolderKind = FolderKind.HOLDS_FOLDERS,
        root_error: Exception | None = None,
        fetch_delay: float = 0.0,
    ) -> None:
        self.separator = separator
        self.root_error = root_error
        self.fetch_delay = fetch_delay
        self.folders: dict[str, FakeFolder] = {}
        self.root = FakeFolder(self, "", root_kind, [])
        self.fetch_calls: list[tuple[str, int, int]] = []
        self.open_counts: dict[str, int] = {}
        self.opens = 0
        self._lock = threading.Lock()

    def add_folder(
        self,
        name: str,
        message_count: int = 0,
        kind: FolderKind = FolderKind.BOTH,
        **options: object,
    ) -> FakeFolder:
        messages = [make_message(name, n) for n in range(1, message_count + 1)]
        folder = FakeFolder(self, name, kind, messages, **options)  # type: ignore[arg-type]
        self.folders[name] = folder
        return folder

    def open_root(self) -> Folder:
        if self.root_error is not None:
            raise self.root_error
        return self.root

    def get_folder(self, full_name: str) -> Folder:
        if full_name == "":
            return self.root
        return self.folders[full_name]

    def children_of(self, parent: str) -> list[Folder]:
        children: list[Folder] = []
        for name, folder in self.folders.items():
            head, sep, _ = name.rpartition(self.separator)
            if (head if sep else "") == parent:
                children.append(folder)
        return children

    def track_open(self, name: str, delta: int) -> None:
        with self._lock:
            self.open_counts[name] = self.open_counts.get(name, 0) + delta
            if delta > 0:
                self.opens += 1

    def record_fetch(self, name: str, start: int, end: int) -> None:
        with self._lock:
            self.fetch_calls.append((name, start, end))

    @property
    def leaked_folders(self) -> dict[str, int]:
        return {name: count for name, count in self.open_counts.items() if count}


@pytest.fixture
def store() -> FakeStore:
    """An empty in-memory store with '/' as separator."""
    return FakeStore()


@pytest.fixture
def nested_store() -> FakeStore:
    """A small realistic hierarchy.

    INBOX (250)
    Archive (holds folders only)
      Archive/2023 (40)
      Archive/2024 (0)
    Sent (5, no subfolders)
    """
    store = FakeStore()
    store.add_folder("INBOX", 250)
    store.add_folder("Archive", kind=FolderKind.HOLDS_FOLDERS)
    store.add_folder("Archive/2023", 40)
    store.add_folder("Archive/2024", 0)
    store.add_folder("Sent", 5, kind=FolderKind.HOLDS_MESSAGES)
    return store


@pytest.fixture
def index() -> StoreIndex:
    return StoreIndex()


@pytest.fixture
def unreachable_store() -> FakeStore:
    return FakeStore(root_error=StoreConnectionError("connection refused"))
