"""MailStore implementation on top of imaplib.

imaplib connections are not thread-safe, so the store keeps one connection for
listing (used by the walker only) and every opened folder gets a connection of
its own, logged out when the folder is closed.
"""

from __future__ import annotations

import imaplib
import logging
import re
import threading

from imap_indexer.config.settings import ImapIndexerSettings
from imap_indexer.core.exceptions import FetchError, FolderAccessError, StoreConnectionError
from imap_indexer.core.models import IDENTITY_HEADERS, FetchedMessage, FolderKind
from imap_indexer.core.store import Folder, MailStore

logger = logging.getLogger(__name__)

FETCH_ITEMS = f"(BODY.PEEK[HEADER.FIELDS ({' '.join(h.upper() for h in IDENTITY_HEADERS)})])"

# b'(\\HasNoChildren) "/" "INBOX"' or b'(\\Noselect) NIL ""'
_LIST_RE = re.compile(rb'\((?P<flags>[^)]*)\)\s+(?P<delim>"(?:[^"\\]|\\.)*"|NIL)\s*(?P<name>.*)$')
_FETCH_NUMBER_RE = re.compile(rb"^\s*(\d+)\s")

_IMAP_ERRORS = (imaplib.IMAP4.error, OSError)


def _quote(name: str) -> str:
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _unquote(raw: bytes) -> str:
    value = raw.strip()
    if value.startswith(b'"') and value.endswith(b'"') and len(value) >= 2:
        value = re.sub(rb"\\(.)", rb"\1", value[1:-1])
    return value.decode("utf-8", errors="replace")


def parse_list_response(
    data: list[bytes | tuple[bytes, bytes] | None],
) -> list[tuple[set[str], str, str]]:
    """Parse LIST response lines into ``(flags, delimiter, name)`` tuples.

    Flags are lower-cased. A NIL delimiter becomes an empty string. Names sent
    as literals arrive from imaplib as ``(line, literal)`` tuples.
    """
    entries: list[tuple[set[str], str, str]] = []
    for item in data:
        if item is None:
            continue
        literal: bytes | None = None
        if isinstance(item, tuple):
            item, literal = item[0], item[1]
        match = _LIST_RE.match(item)
        if not match:
            logger.debug("Ignoring unparseable LIST line: %r", item)
            continue
        flags = {f.lower() for f in match.group("flags").decode().split()}
        delim_raw = match.group("delim")
        delimiter = "" if delim_raw == b"NIL" else _unquote(delim_raw)
        name = literal.decode("utf-8", errors="replace") if literal is not None else _unquote(
            match.group("name")
        )
        entries.append((flags, delimiter, name))
    return entries


def kind_from_flags(flags: set[str]) -> FolderKind:
    """Translate LIST attributes into a FolderKind."""
    if "\\nonexistent" in flags:
        return FolderKind(0)
    kind = FolderKind.BOTH
    if "\\noselect" in flags:
        kind &= ~FolderKind.HOLDS_MESSAGES
    if "\\noinferiors" in flags:
        kind &= ~FolderKind.HOLDS_FOLDERS
    return kind


class ImapStore(MailStore):
    """An IMAP account reachable with a username and password."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        port: int = 993,
        use_ssl: bool = True,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_ssl = use_ssl
        self._separator: str | None = None
        self._list_conn: imaplib.IMAP4 | None = None
        self._list_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: ImapIndexerSettings) -> ImapStore:
        return cls(
            settings.host,
            settings.username,
            settings.password.get_secret_value(),
            port=settings.port,
            use_ssl=settings.use_ssl,
        )

    @property
    def separator(self) -> str | None:
        return self._separator

    def connect(self) -> imaplib.IMAP4:
        """Open and authenticate a new connection.

        Raises:
            StoreConnectionError: If the server cannot be reached or login fails.
        """
        try:
            if self._use_ssl:
                conn = imaplib.IMAP4_SSL(self._host, self._port)
            else:
                conn = imaplib.IMAP4(self._host, self._port)
            conn.login(self._username, self._password)
        except _IMAP_ERRORS as e:
            raise StoreConnectionError(
                f"Failed to connect to {self._host}:{self._port}: {e}"
            ) from e
        logger.debug("Connected to %s:%d as %s", self._host, self._port, self._username)
        return conn

    def open_root(self) -> ImapFolder:
        try:
            entries = self._list("")
        except FolderAccessError as e:
            raise StoreConnectionError(f"Failed to read root folder: {e}") from e
        if not entries:
            raise StoreConnectionError("Server returned no root folder")
        _, delimiter, _ = entries[0]
        self._separator = delimiter
        return ImapFolder(self, "", FolderKind.HOLDS_FOLDERS)

    def get_folder(self, full_name: str) -> ImapFolder:
        return ImapFolder(self, full_name)

    def list_folders(self, pattern: str) -> list[tuple[set[str], str, str]]:
        """Run LIST with ``pattern`` on the shared listing connection."""
        return self._list(pattern)

    def _list(self, pattern: str) -> list[tuple[set[str], str, str]]:
        with self._list_lock:
            if self._list_conn is None:
                self._list_conn = self.connect()
            try:
                typ, data = self._list_conn.list('""', _quote(pattern))
            except _IMAP_ERRORS as e:
                raise FolderAccessError(f"LIST {pattern!r} failed: {e}") from e
        if typ != "OK":
            raise FolderAccessError(f"LIST {pattern!r} failed: {data}")
        return parse_list_response(data)

    def close(self) -> None:
        with self._list_lock:
            if self._list_conn is not None:
                try:
                    self._list_conn.logout()
                except _IMAP_ERRORS as e:
                    logger.debug("Logout failed: %s", e)
                self._list_conn = None


class ImapFolder(Folder):
    """An IMAP mailbox. Opening it takes a dedicated connection."""

    def __init__(
        self,
        store: ImapStore,
        full_name: str,
        kind: FolderKind | None = None,
    ) -> None:
        self._store = store
        self._full_name = full_name
        self._kind = kind
        self._conn: imaplib.IMAP4 | None = None
        self._message_count = 0

    def __repr__(self) -> str:
        return f"ImapFolder({self._full_name!r})"

    @property
    def full_name(self) -> str:
        return self._full_name

    def separator(self) -> str:
        return self._store.separator or ""

    def kind(self) -> FolderKind:
        if self._kind is None:
            entries = self._store.list_folders(self._full_name)
            self._kind = kind_from_flags(entries[0][0]) if entries else FolderKind(0)
        return self._kind

    @property
    def conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise FolderAccessError(f"Folder {self._full_name} is not open")
        return self._conn

    def open_read_only(self) -> None:
        conn = self._store.connect()
        try:
            typ, data = conn.select(_quote(self._full_name), readonly=True)
            if typ != "OK":
                raise FolderAccessError(f"Failed to open {self._full_name}: {data}")
            self._message_count = int(data[0] or 0)
        except (*_IMAP_ERRORS, ValueError) as e:
            self._logout(conn)
            raise FolderAccessError(f"Failed to open {self._full_name}: {e}") from e
        except FolderAccessError:
            self._logout(conn)
            raise
        self._conn = conn

    def is_read_only(self) -> bool:
        return bool(getattr(self.conn, "is_readonly", False))

    def expunge(self) -> None:
        try:
            self.conn.expunge()
        except _IMAP_ERRORS as e:
            raise FolderAccessError(f"Failed to expunge {self._full_name}: {e}") from e

    def close(self, expunge: bool = False) -> None:
        # LOGOUT never expunges, unlike CLOSE on a read-write mailbox
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            if expunge:
                conn.expunge()
        except _IMAP_ERRORS as e:
            raise FolderAccessError(f"Failed to expunge {self._full_name}: {e}") from e
        finally:
            self._logout(conn)

    def message_count(self) -> int:
        if self._conn is None:
            raise FolderAccessError(f"Folder {self._full_name} is not open")
        return self._message_count

    def list_children(self) -> list[ImapFolder]:
        delimiter = self.separator()
        # A NIL delimiter means a flat namespace: "Foo%" would match sibling "Foobar"
        if not delimiter and self._full_name:
            return []
        prefix = f"{self._full_name}{delimiter}" if self._full_name else ""
        children = []
        for flags, _, name in self._store.list_folders(f"{prefix}%"):
            if name == self._full_name:
                continue
            children.append(ImapFolder(self._store, name, kind_from_flags(flags)))
        return children

    def fetch_range(self, start: int, end: int) -> list[FetchedMessage]:
        try:
            typ, data = self.conn.fetch(f"{start}:{end}", FETCH_ITEMS)
        except (*_IMAP_ERRORS, FolderAccessError) as e:
            raise FetchError(f"FETCH {start}:{end} in {self._full_name} failed: {e}") from e
        if typ != "OK":
            raise FetchError(f"FETCH {start}:{end} in {self._full_name} failed: {data}")

        headers: dict[int, bytes] = {}
        for item in data:
            if not isinstance(item, tuple):
                continue
            match = _FETCH_NUMBER_RE.match(item[0])
            if match:
                headers[int(match.group(1))] = item[1]
        return [FetchedMessage(number, headers.get(number)) for number in range(start, end + 1)]

    @staticmethod
    def _logout(conn: imaplib.IMAP4) -> None:
        try:
            conn.logout()
        except _IMAP_ERRORS as e:
            logger.debug("Logout failed: %s", e)
