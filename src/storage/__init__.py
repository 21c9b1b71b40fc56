"""Storage layer for archive persistence, search and response caching."""

from src.storage.cache import ResponseCache
from src.storage.database import Database, get_database
from src.storage.repository import ArchiveRepository, BatchOutcome
from src.storage.search import ArchiveSearch, SearchQueryBuilder, SearchResults

__all__ = [
    "ArchiveRepository",
    "ArchiveSearch",
    "BatchOutcome",
    "Database",
    "ResponseCache",
    "SearchQueryBuilder",
    "SearchResults",
    "get_database",
]
