"""Parser for one page of the Redmine activity feed."""
import html
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from processor.models import BodyKind, Event, EventBody, SourceConfig, WordWrapMode
from scraper import locales
from scraper.date_parsing import parse_date, parse_time
from scraper.errors import MissingLocaleError, ScrapeError

logger = logging.getLogger(__name__)

SOURCE_NAME = 'Redmine'
DEFAULT_ICON = 'fontawesome-tasks'


@dataclass(frozen=True)
class PageSchema:
    """CSS selectors describing where the feed keeps its data."""
    day_header: str
    day_block: str
    time: str
    description: str
    link: str
    previous_page: str


REDMINE_SCHEMA = PageSchema(
    day_header='div#content div#activity h3',
    day_block='div#content div#activity h3 + dl',
    time='span.time',
    description='span.description',
    link='dt.icon a',
    previous_page='li.previous.page a'
)


@dataclass
class Done:
    """The page settled the target day."""
    events: List[Event] = field(default_factory=list)


@dataclass
class NeedsPreviousPage:
    """The target day is older than this page; url is None on the last page."""
    url: Optional[str]


ActivityData = Union[Done, NeedsPreviousPage]


def absolute_url(config: SourceConfig, href: str) -> str:
    """Resolve an href found in a page against the server URL."""
    return urljoin(config.server_url.rstrip('/') + '/', href)


def parse(
    config: SourceConfig,
    target_day: date,
    page: str,
    schema: PageSchema = REDMINE_SCHEMA
) -> ActivityData:
    """
    Look for the target day on one page of the activity feed.

    Days are listed most recent first, so a day older than the target
    proves the target has no activity.

    Args:
        config: Source the page was fetched from
        target_day: Day to collect events for
        page: HTML of the feed page
        schema: Selectors for the feed markup

    Returns:
        Done with the day's events, or NeedsPreviousPage with the URL of
        the previous page (None once the feed is exhausted)

    Raises:
        MissingLocaleError: If the page has no lang attribute
        UnknownLocaleError: If the page language is not supported
        DateParseError, TimeParseError, ScrapeError: On unexpected markup
    """
    soup = BeautifulSoup(page, 'html.parser')

    root = soup.find('html')
    locale_tag = root.get('lang') if root is not None else None
    if not locale_tag:
        raise MissingLocaleError("Can't find the language in the HTML")
    logger.debug(f"Page locale: {locale_tag}")
    locale = locales.lookup(locale_tag)

    for header, block in zip(soup.select(schema.day_header), soup.select(schema.day_block)):
        current_day = parse_date(locale, header.get_text(strip=True))
        if current_day < target_day:
            logger.debug(f"Reached {current_day}, no activity on {target_day}")
            return Done([])
        if current_day == target_day:
            return Done(extract_day_events(config, block, schema))

    previous_link = soup.select_one(schema.previous_page)
    previous_href = previous_link.get('href') if previous_link is not None else None
    if not previous_href:
        logger.debug(f"No previous page, {target_day} not found")
        return NeedsPreviousPage(None)
    return NeedsPreviousPage(absolute_url(config, previous_href))


def extract_day_events(
    config: SourceConfig,
    block: Tag,
    schema: PageSchema = REDMINE_SCHEMA
) -> List[Event]:
    """
    Build events from one day's block of the feed.

    Times, descriptions and links are matched by position.

    Raises:
        ScrapeError: If a time has no matching description or link
        TimeParseError: If a time can't be parsed
    """
    descriptions = iter(block.select(schema.description))
    links = iter(block.select(schema.link))
    events = []

    for time_elem in block.select(schema.time):
        event_time = parse_time(time_elem.get_text(strip=True))
        description_elem = next(descriptions, None)
        if description_elem is None:
            raise ScrapeError("Redmine event: no description")
        link_elem = next(links, None)
        if link_elem is None:
            raise ScrapeError("Redmine event: no link")

        title = link_elem.get_text(strip=True)
        deep_link = absolute_url(config, link_elem.get('href', ''))
        markup = (
            f'<a href="{html.escape(deep_link)}">Open in the browser</a>\n'
            f'{html.escape(description_elem.get_text(strip=True))}'
        )
        events.append(Event(
            source_name=SOURCE_NAME,
            icon=DEFAULT_ICON,
            time=event_time,
            title=title,
            short_title=title,
            body=EventBody(BodyKind.MARKUP, markup, WordWrapMode.WRAP)
        ))

    logger.debug(f"Extracted {len(events)} events")
    return events
