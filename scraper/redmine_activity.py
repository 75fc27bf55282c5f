"""Daily activity events scraped from a Redmine activity feed."""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Mapping, Tuple, Union

from processor.models import Event, SourceConfig
from scraper import activity_parser
from scraper.activity_parser import Done, PageSchema, REDMINE_SCHEMA
from scraper.errors import ConfigError, PaginationLimitError
from scraper.redmine_session import DEFAULT_TIMEOUT, RedmineSession, Timeout, fetch, login
from storage.page_cache import PageCache

logger = logging.getLogger(__name__)

SERVER_URL_KEY = 'Server URL'
USERNAME_KEY = 'Username'
PASSWORD_KEY = 'Password'

# roughly one year of feed pages
DEFAULT_MAX_PAGES = 366


@dataclass(frozen=True)
class NoSession:
    """No login happened yet; the next live fetch has to log in first."""


@dataclass(frozen=True)
class ActiveSession:
    session: RedmineSession


SessionState = Union[NoSession, ActiveSession]


def cache_boundary(day: date) -> datetime:
    """Local midnight after the given day; pages fetched later cover the whole day."""
    return datetime.combine(day + timedelta(days=1), time.min)


class RedmineActivitySource:
    """Event source reading a user's activity from Redmine."""

    name = activity_parser.SOURCE_NAME
    default_icon = activity_parser.DEFAULT_ICON

    def __init__(
        self,
        cache: PageCache,
        timeout: Timeout = DEFAULT_TIMEOUT,
        max_pages: int = DEFAULT_MAX_PAGES,
        schema: PageSchema = REDMINE_SCHEMA
    ):
        """
        Initialize the event source.

        Args:
            cache: Store for raw activity pages
            timeout: Connect and read timeout for every request (default: 30s each)
            max_pages: Maximum number of feed pages walked per call
            schema: Selectors for the feed markup
        """
        self.cache = cache
        self.timeout = timeout
        self.max_pages = max_pages
        self.schema = schema

    def get_events(self, config: SourceConfig, config_name: str, day: date) -> List[Event]:
        """
        Fetch the events of one day.

        Args:
            config: Server URL and credentials
            config_name: Name the configuration is stored under
            day: Day to collect events for

        Returns:
            Events of that day, in feed order

        Raises:
            EventSourceError: On any network, login, parsing or cache failure
        """
        logger.info(f"Getting Redmine events for '{config_name}' on {day}")
        state, page = self.fetch_first_page(config, config_name, cache_boundary(day))
        pages_seen = 1
        try:
            while True:
                result = activity_parser.parse(config, day, page, self.schema)
                # Target day found on this page
                if isinstance(result, Done):
                    events = result.events
                    break
                # Feed exhausted or the day had no activity
                if result.url is None:
                    events = []
                    break
                if pages_seen >= self.max_pages:
                    raise PaginationLimitError(
                        f"Gave up looking for {day} after {pages_seen} activity pages"
                    )
                state, page = self.next_page(config, state, result.url)
                pages_seen += 1
        finally:
            if isinstance(state, ActiveSession):
                state.session.close()

        logger.info(f"Found {len(events)} Redmine events for '{config_name}' on {day}")
        return events

    def fetch_first_page(
        self,
        config: SourceConfig,
        config_name: str,
        boundary: datetime
    ) -> Tuple[SessionState, str]:
        """
        Get the first activity page, from the cache when possible.

        Args:
            config: Server URL and credentials
            config_name: Name the configuration is stored under
            boundary: Time after which a cached page covers the target day

        Returns:
            Tuple of (session state, page HTML); NoSession on a cache hit
        """
        # Check the cache before logging in
        cached = self.cache.get_cached_contents(self.name, config_name, boundary)
        if cached is not None:
            logger.info(f"Using cached activity page for '{config_name}'")
            return NoSession(), cached

        # Log in and fetch the first page of the user's activity
        session = login(config, timeout=self.timeout)
        try:
            page = fetch(session, config.url_for('activity'), params={'user_id': session.user_id})
            self.cache.write_to_cache(self.name, config_name, page)
        except Exception:
            session.close()
            raise
        return ActiveSession(session), page

    def fetch_page(self, session: RedmineSession, url: str) -> str:
        logger.info(f"Fetching {url}")
        return fetch(session, url)

    def next_page(
        self,
        config: SourceConfig,
        state: SessionState,
        url: str
    ) -> Tuple[SessionState, str]:
        """
        Fetch a previous feed page, logging in first if there is no session.

        Returns:
            Tuple of (session state to use for the next step, page HTML)
        """
        if isinstance(state, ActiveSession):
            return state, self.fetch_page(state.session, url)

        session = login(config, timeout=self.timeout)
        try:
            page = self.fetch_page(session, url)
        except Exception:
            session.close()
            raise
        return ActiveSession(session), page

    @staticmethod
    def config_fields() -> List[Tuple[str, str]]:
        """Return the configuration fields as (label, kind) pairs."""
        return [
            (SERVER_URL_KEY, 'text'),
            (USERNAME_KEY, 'text'),
            (PASSWORD_KEY, 'password')
        ]

    @staticmethod
    def config_values(config: SourceConfig) -> Dict[str, str]:
        return {
            SERVER_URL_KEY: config.server_url,
            USERNAME_KEY: config.username,
            PASSWORD_KEY: config.password
        }

    @staticmethod
    def config_from_values(values: Mapping[str, str]) -> SourceConfig:
        """
        Build a configuration from values keyed by field label.

        Raises:
            ConfigError: If a field is missing
        """
        missing = [
            label for label, _ in RedmineActivitySource.config_fields()
            if label not in values
        ]
        if missing:
            raise ConfigError(f"Missing Redmine settings: {', '.join(missing)}")
        return SourceConfig(
            server_url=values[SERVER_URL_KEY],
            username=values[USERNAME_KEY],
            password=values[PASSWORD_KEY]
        )
