"""Frozen dataclasses and enums for the IMAP indexer domain model."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from email.parser import BytesHeaderParser

from imap_indexer.core.exceptions import MalformedMessageError

INBOX_MAILBOX = "INBOX"

# Headers whose values identify a message independently of the store holding it
IDENTITY_HEADERS = ("Message-ID", "From", "To", "In-Reply-To", "Subject", "Date")

_header_parser = BytesHeaderParser()


class FolderKind(enum.Flag):
    """What a folder is able to contain. The empty flag means neither."""

    HOLDS_MESSAGES = enum.auto()
    HOLDS_FOLDERS = enum.auto()
    BOTH = HOLDS_MESSAGES | HOLDS_FOLDERS


@dataclass(frozen=True)
class FetchedMessage:
    """A message as returned by a range fetch, before identification."""

    number: int
    raw_headers: bytes | None = None


def _normalize(value: object) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


@dataclass(frozen=True)
class MessageIdentity:
    """Header-derived key recognizing the same message across stores."""

    message_id: str = ""
    sender: str = ""
    to: str = ""
    in_reply_to: str = ""
    subject: str = ""
    date: str = ""

    @classmethod
    def from_message(cls, message: FetchedMessage) -> MessageIdentity:
        """Derive the identity of a fetched message from its headers.

        Raises:
            MalformedMessageError: If the message has no headers, they cannot
                be parsed, or none of the identifying headers is present.
        """
        if not message.raw_headers:
            raise MalformedMessageError(f"Message {message.number} returned no headers")
        try:
            headers = _header_parser.parsebytes(message.raw_headers)
            values = [_normalize(headers.get(name)) for name in IDENTITY_HEADERS]
        except Exception as e:
            raise MalformedMessageError(
                f"Failed to parse headers of message {message.number}: {e}"
            ) from e

        if not any(values):
            raise MalformedMessageError(
                f"Message {message.number} has no identifying headers"
            )
        return cls(*values)


@dataclass(frozen=True)
class CrawlProgress:
    """Point-in-time snapshot of the index counters."""

    folders: int = 0
    indexed: int = 0
    skipped: int = 0
    failures: int = 0

    @property
    def processed(self) -> int:
        return self.indexed + self.skipped
