"""Date formats and "today" words of the locales Redmine ships with."""
import logging
from functools import lru_cache
from types import MappingProxyType
from typing import List, Mapping

from processor.models import LocaleInfo
from scraper.errors import UnknownLocaleError

logger = logging.getLogger(__name__)

# (locale tag, date format, lowercased "today")
_REDMINE_LOCALES = (
    ('lv', '%d.%m.%Y', 'šodien'),
    ('th', '%Y-%m-%d', 'วันนี้'),
    ('zh', '%Y-%m-%d', '今天'),
    ('da', '%d.%m.%Y', 'i dag'),
    ('pt', '%d/%m/%Y', 'hoje'),
    ('ja', '%Y/%m/%d', '今日'),
    ('pl', '%Y-%m-%d', 'dzisiaj'),
    ('lt', '%m/%d/%Y', 'šiandien'),
    ('fa', '%Y/%m/%d', 'امروز'),
    ('gl', '%e/%m/%Y', 'hoxe'),
    ('uk', '%Y-%m-%d', 'сьогодні'),
    ('vi', '%d-%m-%Y', 'hôm nay'),
    ('mn', '%Y/%m/%d', 'өнөөдөр'),
    ('cs', '%Y-%m-%d', 'dnes'),
    ('en-GB', '%d/%m/%Y', 'today'),
    ('fr', '%d/%m/%Y', "aujourd'hui"),
    ('sr', '%d.%m.%Y.', 'данас'),
    ('fi', '%e. %Bta %Y', 'tänään'),
    ('no', '%d.%m.%Y', 'idag'),
    ('mk', '%d/%m/%Y', 'денес'),
    ('hu', '%Y.%m.%d.', 'ma'),
    ('ro', '%d-%m-%Y', 'astăzi'),
    ('it', '%d-%m-%Y', 'oggi'),
    ('he', '%d/%m/%Y', 'היום'),
    ('es', '%Y-%m-%d', 'hoy'),
    ('en', '%m/%d/%Y', 'today'),
    ('sq', '%m/%d/%Y', 'sot'),
    ('eu', '%Y/%m/%d', 'gaur'),
    ('id', '%d-%m-%Y', 'hari ini'),
    ('de', '%d.%m.%Y', 'heute'),
    ('bg', '%d-%m-%Y', 'днес'),
    ('sv', '%Y-%m-%d', 'idag'),
    ('sk', '%Y-%m-%d', 'dnes'),
    ('ko', '%Y/%m/%d', '오늘'),
    ('et', '%d.%m.%Y', 'täna'),
    ('hr', '%m/%d/%Y', 'danas'),
    ('el', '%m/%d/%Y', 'σήμερα'),
    ('zh-TW', '%Y-%m-%d', '今天'),
    ('sr-YU', '%d.%m.%Y.', 'danas'),
    ('bs', '%d.%m.%Y', 'danas'),
    ('tr', '%d.%m.%Y', 'bugün'),
    ('ru', '%d.%m.%Y', 'сегодня'),
    ('es-PA', '%Y-%m-%d', 'hoy'),
    ('ar', '%m/%d/%Y', 'اليوم'),
    ('sl', '%d.%m.%Y', 'danes'),
    ('az', '%d.%m.%Y', 'bu gün'),
    ('ca', '%d-%m-%Y', 'avui'),
    ('pt-BR', '%d/%m/%Y', 'hoje'),
    ('nl', '%d-%m-%Y', 'vandaag'),
)


@lru_cache(maxsize=None)
def locale_table() -> Mapping[str, LocaleInfo]:
    """
    Return the read-only locale table, building it on first use.

    Returns:
        Mapping of locale tag to LocaleInfo
    """
    table = {
        tag: LocaleInfo(date_format=date_format, today_word=today_word)
        for tag, date_format, today_word in _REDMINE_LOCALES
    }
    logger.debug(f"Loaded {len(table)} Redmine locales")
    return MappingProxyType(table)


def lookup(tag: str) -> LocaleInfo:
    """
    Resolve a page language tag to its locale info.

    Args:
        tag: Locale tag as found in the page's lang attribute (e.g. "en-GB")

    Returns:
        LocaleInfo for the tag

    Raises:
        UnknownLocaleError: If the tag is not in the table
    """
    try:
        return locale_table()[tag]
    except KeyError:
        raise UnknownLocaleError(f"Unknown locale {tag}") from None


def supported_locales() -> List[str]:
    return sorted(locale_table())
