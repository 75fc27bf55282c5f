"""Exceptions raised while retrieving activity events."""


class EventSourceError(Exception):
    """Base class for every failure surfaced by an event source."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NetworkError(EventSourceError):
    """Transport failure or non-2xx HTTP status."""


class AuthError(EventSourceError):
    """Login page malformed, token missing or credentials rejected."""


class ScrapeError(EventSourceError):
    """An expected HTML element or attribute is missing from a page."""


class MissingAuthTokenError(AuthError, ScrapeError):
    """The login page carries no anti-forgery token."""


class PaginationLimitError(ScrapeError):
    """The activity feed kept offering previous pages past the page limit."""


class DateParseError(EventSourceError, ValueError):
    """A day header did not match any known date pattern."""


class TimeParseError(EventSourceError, ValueError):
    """An event time did not match the 12h or 24h pattern."""


class UnknownLocaleError(EventSourceError):
    """The page language is not in the locale table."""


class MissingLocaleError(EventSourceError):
    """The page does not declare its language."""


class CacheError(EventSourceError):
    """The page cache could not be read or written."""


class ConfigError(EventSourceError):
    """A source configuration is unknown or incomplete."""
