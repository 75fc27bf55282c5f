"""Parsing of the localized dates and times shown in the activity feed."""
import logging
import re
from datetime import date, datetime, time

from processor.models import LocaleInfo
from scraper.errors import DateParseError, TimeParseError

logger = logging.getLogger(__name__)

ISO_DATE_FORMAT = '%Y-%m-%d'
ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

TIME_12H_FORMAT = '%I:%M %p'
TIME_24H_FORMAT = '%H:%M'


def parse_date(locale: LocaleInfo, text: str) -> date:
    """
    Parse a day header of the activity feed.

    Some Redmine deployments print ISO dates whatever locale is configured,
    so an ISO date is accepted before trying the locale's own format.

    Args:
        locale: Locale the page is rendered in
        text: Header text (e.g. "Today", "03/23/2020", "2020-03-23")

    Returns:
        The parsed calendar date

    Raises:
        DateParseError: If the text matches no known pattern, or the date
            has no single local midnight
    """
    logger.debug(f"Parsing date '{text}' with locale {locale}")
    text = text.strip()

    if text.casefold() == locale.today_word.casefold():
        return date.today()

    if ISO_DATE_PATTERN.match(text):
        date_format = ISO_DATE_FORMAT
    else:
        # strptime has no %e (space padded day); %d accepts unpadded days
        date_format = locale.date_format.replace('%e', '%d')
        logger.debug(f"Using locale-specific format {date_format}")

    try:
        parsed = datetime.strptime(text, date_format).date()
    except ValueError as e:
        raise DateParseError(
            f"Can't parse date '{text}' with format {date_format}: {e}"
        ) from e

    _check_local_midnight(parsed)
    return parsed


def _check_local_midnight(day: date) -> None:
    """
    Make sure the start of the day maps to exactly one local instant.

    Raises:
        DateParseError: If midnight falls in a DST gap or overlap
    """
    midnight = datetime.combine(day, time.min)
    timestamp = midnight.timestamp()
    if datetime.fromtimestamp(timestamp) != midnight:
        raise DateParseError(f"Can't convert {day} to local time")
    if midnight.replace(fold=1).timestamp() != timestamp:
        raise DateParseError(f"{day} is ambiguous in local time")


def parse_time(text: str) -> time:
    """
    Parse an event time, either "01:30 PM" or "13:30".

    Args:
        text: Time text from the feed

    Returns:
        The parsed local time of day

    Raises:
        TimeParseError: If the text matches neither format
    """
    logger.debug(f"Parsing time '{text}'")
    text = text.strip()
    time_format = TIME_12H_FORMAT if ' ' in text else TIME_24H_FORMAT

    try:
        return datetime.strptime(text, time_format).time()
    except ValueError as e:
        raise TimeParseError(
            f"Can't parse time '{text}' with format {time_format}: {e}"
        ) from e
