"""Custom exceptions for the IMAP indexer."""


class ImapIndexerError(Exception):
    """Base exception for all IMAP indexer errors."""


class StoreConnectionError(ImapIndexerError):
    """Failed to reach the store or open its root folder."""


class FolderAccessError(ImapIndexerError):
    """Failed to open, list or count a specific folder."""


class FetchError(ImapIndexerError):
    """A message range could not be fetched from a folder."""


class MalformedMessageError(ImapIndexerError):
    """A single message could not be read well enough to identify it."""


class CrawlTimeoutError(ImapIndexerError):
    """The worker pool did not drain before the configured deadline."""
