"""IMAP Indexer - Crawl a mail store into a concurrent in-memory folder/message index."""

from imap_indexer.core.models import CrawlProgress, FetchedMessage, FolderKind, MessageIdentity
from imap_indexer.index.store_index import StoreIndex
from imap_indexer.pipeline.indexer import StoreIndexer, populate_from_store

__all__ = [
    "CrawlProgress",
    "FetchedMessage",
    "FolderKind",
    "MessageIdentity",
    "StoreIndex",
    "StoreIndexer",
    "populate_from_store",
]
