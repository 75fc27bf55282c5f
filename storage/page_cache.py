"""Cache of raw activity pages, keyed by source and configuration name."""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class PageCache(ABC):
    """Store for the last page fetched per (source, configuration)."""

    @abstractmethod
    def get_cached_contents(
        self,
        source_name: str,
        config_name: str,
        boundary_time: datetime
    ) -> Optional[str]:
        """
        Return the cached page if it was fetched at or after boundary_time.

        Args:
            source_name: Name of the event source (e.g. "Redmine")
            config_name: Name of the source configuration
            boundary_time: Naive local time the page must not be older than

        Returns:
            Page contents, or None if missing or too old
        """

    @abstractmethod
    def write_to_cache(self, source_name: str, config_name: str, contents: str) -> None:
        """Store a freshly fetched page, stamped with the current time."""


class InMemoryPageCache(PageCache):
    """Process local page cache, safe to share between threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pages: Dict[Tuple[str, str], Tuple[datetime, str]] = {}

    def get_cached_contents(
        self,
        source_name: str,
        config_name: str,
        boundary_time: datetime
    ) -> Optional[str]:
        with self._lock:
            entry = self._pages.get((source_name, config_name))
        if entry is None:
            return None
        fetched_at, contents = entry
        if fetched_at < boundary_time:
            logger.debug(
                f"Cached page for {source_name}/{config_name} fetched at "
                f"{fetched_at} is older than {boundary_time}"
            )
            return None
        return contents

    def write_to_cache(self, source_name: str, config_name: str, contents: str) -> None:
        with self._lock:
            self._pages[(source_name, config_name)] = (datetime.now(), contents)
