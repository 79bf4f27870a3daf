"""Abstract mail-store capability consumed by the indexer.

Implementations must allow several folders to be opened concurrently from
different threads; each open folder is used by a single thread only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from imap_indexer.core.models import FetchedMessage, FolderKind


class Folder(ABC):
    """A named container in the store hierarchy."""

    @property
    @abstractmethod
    def full_name(self) -> str:
        """Full hierarchical name, using the store separator."""

    @abstractmethod
    def separator(self) -> str:
        """Hierarchy delimiter of the store."""

    @abstractmethod
    def kind(self) -> FolderKind:
        """Whether the folder holds messages, subfolders, both or neither."""

    @abstractmethod
    def open_read_only(self) -> None:
        """Open the folder for reading.

        Raises:
            FolderAccessError: If the folder cannot be opened.
        """

    @abstractmethod
    def is_read_only(self) -> bool:
        """True when the folder is currently open in read-only mode."""

    @abstractmethod
    def expunge(self) -> None:
        """Permanently remove messages flagged for deletion."""

    @abstractmethod
    def close(self, expunge: bool = False) -> None:
        """Close the folder, releasing any resource held for it."""

    @abstractmethod
    def message_count(self) -> int:
        """Number of messages in the open folder."""

    @abstractmethod
    def list_children(self) -> list[Folder]:
        """Immediate subfolders, in server order.

        Raises:
            FolderAccessError: If the folder cannot be listed.
        """

    @abstractmethod
    def fetch_range(self, start: int, end: int) -> list[FetchedMessage]:
        """Fetch messages numbered ``start`` to ``end`` inclusive.

        Numbers that no longer exist may be left out of the result.

        Raises:
            FetchError: If the range cannot be fetched.
        """


class MailStore(ABC):
    """An authenticated handle on a remote mail account."""

    @abstractmethod
    def open_root(self) -> Folder:
        """Return the root (default) folder.

        Raises:
            StoreConnectionError: If the store or its root is unreachable.
        """

    @abstractmethod
    def get_folder(self, full_name: str) -> Folder:
        """Return a handle on the folder named ``full_name``."""

    def close(self) -> None:
        """Release store-wide resources."""

    def __enter__(self) -> MailStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
