"""Data models for activity events."""
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Any, Dict, Optional


class BodyKind(Enum):
    """How the body text of an event should be rendered."""
    PLAIN = 'plain'
    MARKUP = 'markup'


class WordWrapMode(Enum):
    WRAP = 'wrap'
    NO_WRAP = 'no-wrap'


@dataclass(frozen=True)
class EventBody:
    """Rich text body of an event."""
    kind: BodyKind
    text: str
    word_wrap: WordWrapMode = WordWrapMode.WRAP


@dataclass(frozen=True)
class Event:
    """One entry of a user's daily activity timeline."""
    source_name: str
    icon: str
    time: time
    title: str
    short_title: str
    body: EventBody
    extra_data: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the event to a JSON serializable dictionary.

        Returns:
            Dictionary with the time rendered as HH:MM
        """
        return {
            'source_name': self.source_name,
            'icon': self.icon,
            'time': self.time.strftime('%H:%M'),
            'title': self.title,
            'short_title': self.short_title,
            'body': {
                'kind': self.body.kind.value,
                'text': self.body.text,
                'word_wrap': self.body.word_wrap.value
            },
            'extra_data': self.extra_data
        }


@dataclass(frozen=True)
class SourceConfig:
    """Connection settings for one configured Redmine server."""
    server_url: str
    username: str
    password: str = field(repr=False)

    def url_for(self, path: str) -> str:
        """
        Build an absolute URL for a path below the server URL.

        Args:
            path: Path relative to the server root (e.g. "login")

        Returns:
            Server URL and path joined by exactly one slash
        """
        return f"{self.server_url.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class LocaleInfo:
    """Date format and "today" word used by one Redmine locale."""
    date_format: str
    today_word: str
