"""Tests for the Redmine event source: page fetching and pagination."""
from datetime import date, datetime, time, timedelta
from unittest.mock import Mock, patch

import pytest
import responses

from scraper.errors import (
    AuthError,
    ConfigError,
    NetworkError,
    PaginationLimitError,
    UnknownLocaleError,
)
from scraper.redmine_activity import (
    ActiveSession,
    NoSession,
    RedmineActivitySource,
    cache_boundary,
)
from storage.page_cache import InMemoryPageCache
from redmine_pages import LOGGED_IN_PAGE, LOGIN_PAGE, SERVER_URL

TARGET_DAY = date(2020, 3, 23)
ACTIVITY_URL = f"{SERVER_URL}/activity?user_id=5"
PREVIOUS_URL = f"{SERVER_URL}/activity?from=2020-03-23&user_id=5"


def add_login_responses():
    responses.add(responses.GET, SERVER_URL, body=LOGIN_PAGE, status=200)
    responses.add(responses.POST, f"{SERVER_URL}/login", body=LOGGED_IN_PAGE, status=200)


def login_calls():
    return [call for call in responses.calls if call.request.method == 'POST']


@pytest.fixture
def cache():
    return InMemoryPageCache()


@pytest.fixture
def source(cache):
    return RedmineActivitySource(cache)


@pytest.fixture
def newer_page(activity_page):
    """First feed page: only days after the target, with a previous link."""
    return activity_page([
        ('03/25/2020', [('10:00', 'Later work', 'Bug #125', '/issues/125')]),
        ('03/24/2020', [('11:00', 'Later work', 'Bug #124', '/issues/124')]),
    ], previous_href='/activity?from=2020-03-23&amp;user_id=5')


@pytest.fixture
def target_page(activity_page):
    """Second feed page: contains the target day."""
    return activity_page([
        ('03/23/2020', [('09:00', 'Fixed bug #123', 'Bug #123', '/issues/123')]),
        ('03/22/2020', [('15:00', 'Older work', 'Bug #122', '/issues/122')]),
    ], previous_href='/activity?from=2020-03-21&amp;user_id=5')


def test_cache_boundary_is_next_midnight():
    """Test that the boundary is the start of the following day."""
    assert cache_boundary(date(2020, 3, 23)) == datetime(2020, 3, 24, 0, 0)
    assert cache_boundary(date(2020, 12, 31)) == datetime(2021, 1, 1, 0, 0)


class TestGetEvents:
    """Test cases for RedmineActivitySource.get_events."""

    @responses.activate
    def test_two_page_walk(self, source, source_config, newer_page, target_page):
        """Test walking back one page to find the target day."""
        add_login_responses()
        responses.add(responses.GET, ACTIVITY_URL, body=newer_page, status=200)
        responses.add(responses.GET, PREVIOUS_URL, body=target_page, status=200)

        events = source.get_events(source_config, 'work', TARGET_DAY)

        assert len(events) == 1
        event = events[0]
        assert event.time == time(9, 0)
        assert event.title == 'Bug #123'
        assert f"{SERVER_URL}/issues/123" in event.body.text
        # the session from the first page is reused for the second one
        assert len(login_calls()) == 1

    @responses.activate
    def test_first_page_match(self, source, source_config, target_page):
        add_login_responses()
        responses.add(responses.GET, ACTIVITY_URL, body=target_page, status=200)

        events = source.get_events(source_config, 'work', TARGET_DAY)

        assert [event.title for event in events] == ['Bug #123']
        assert len(responses.calls) == 3

    @responses.activate
    def test_feed_exhausted(self, source, source_config, activity_page):
        """Test that a feed without the day and without previous page gives no events."""
        add_login_responses()
        responses.add(
            responses.GET,
            ACTIVITY_URL,
            body=activity_page([('03/24/2020', [('10:00', 'Work', 'Bug #124', '/issues/124')])]),
            status=200
        )

        assert source.get_events(source_config, 'work', TARGET_DAY) == []

    @responses.activate
    def test_day_without_activity(self, source, source_config, activity_page):
        """Test that reaching an older day stops without following the previous link."""
        add_login_responses()
        responses.add(
            responses.GET,
            ACTIVITY_URL,
            body=activity_page(
                [('03/20/2020', [('10:00', 'Work', 'Bug #100', '/issues/100')])],
                previous_href='/activity?from=2020-03-19'
            ),
            status=200
        )

        assert source.get_events(source_config, 'work', TARGET_DAY) == []
        assert len(responses.calls) == 3

    @responses.activate
    def test_first_page_is_cached(self, source, cache, source_config, target_page):
        """Test that a freshly fetched first page is written to the cache."""
        add_login_responses()
        responses.add(responses.GET, ACTIVITY_URL, body=target_page, status=200)

        source.get_events(source_config, 'work', TARGET_DAY)

        boundary = datetime.now() - timedelta(minutes=1)
        assert cache.get_cached_contents('Redmine', 'work', boundary) == target_page

    @responses.activate
    def test_cache_hit_skips_login(self, source, cache, source_config, target_page):
        """Test that a cached page for an elapsed day needs no login at all."""
        cache.write_to_cache('Redmine', 'work', target_page)

        events = source.get_events(source_config, 'work', TARGET_DAY)

        assert [event.title for event in events] == ['Bug #123']
        assert len(responses.calls) == 0

    @responses.activate
    def test_cache_hit_then_pagination_logs_in(
        self, source, cache, source_config, newer_page, target_page
    ):
        """Test that paging from a cached page creates a session on demand."""
        cache.write_to_cache('Redmine', 'work', newer_page)
        add_login_responses()
        responses.add(responses.GET, PREVIOUS_URL, body=target_page, status=200)

        events = source.get_events(source_config, 'work', TARGET_DAY)

        assert [event.title for event in events] == ['Bug #123']
        assert len(login_calls()) == 1
        assert responses.calls[-1].request.url == PREVIOUS_URL

    @responses.activate
    def test_cache_is_not_used_for_open_day(self, source, cache, source_config, target_page):
        """Test that today's page is fetched live even when a cached page exists."""
        cache.write_to_cache('Redmine', 'work', 'stale')
        add_login_responses()
        responses.add(responses.GET, ACTIVITY_URL, body=target_page, status=200)

        source.get_events(source_config, 'work', date.today())

        assert len(login_calls()) == 1

    @responses.activate
    def test_login_failure_propagates(self, source, source_config):
        responses.add(responses.GET, SERVER_URL, body=LOGIN_PAGE, status=200)
        responses.add(
            responses.POST,
            f"{SERVER_URL}/login",
            body='<html><div id="flash_error">Invalid user or password</div></html>',
            status=200
        )

        with pytest.raises(AuthError):
            source.get_events(source_config, 'work', TARGET_DAY)

    @responses.activate
    def test_previous_page_failure_propagates(self, source, source_config, newer_page):
        """Test that no partial result is returned when a later page fails."""
        add_login_responses()
        responses.add(responses.GET, ACTIVITY_URL, body=newer_page, status=200)
        responses.add(responses.GET, PREVIOUS_URL, body='Server Error', status=500)

        with pytest.raises(NetworkError):
            source.get_events(source_config, 'work', TARGET_DAY)

    @responses.activate
    def test_parse_failure_propagates(self, source, source_config, activity_page):
        add_login_responses()
        responses.add(responses.GET, ACTIVITY_URL, body=activity_page([], lang='tlh'), status=200)

        with pytest.raises(UnknownLocaleError):
            source.get_events(source_config, 'work', TARGET_DAY)

    @responses.activate
    def test_previous_link_cycle_is_bounded(self, cache, source_config, activity_page):
        """Test that a page linking to itself stops at the page limit."""
        looping_page = activity_page(
            [('03/24/2020', [('10:00', 'Work', 'Bug #124', '/issues/124')])],
            previous_href='/activity?user_id=5'
        )
        add_login_responses()
        responses.add(responses.GET, ACTIVITY_URL, body=looping_page, status=200)
        source = RedmineActivitySource(cache, max_pages=3)

        with pytest.raises(PaginationLimitError, match='3 activity pages'):
            source.get_events(source_config, 'work', TARGET_DAY)

        assert len([c for c in responses.calls if c.request.url == ACTIVITY_URL]) == 3


class TestSessionHandling:
    """Test cases for session reuse and cleanup."""

    def test_cache_hit_returns_no_session(self, source, cache, source_config, target_page):
        cache.write_to_cache('Redmine', 'work', target_page)

        with patch('scraper.redmine_activity.login') as mock_login:
            state, page = source.fetch_first_page(
                source_config, 'work', cache_boundary(TARGET_DAY)
            )

        assert state == NoSession()
        assert page == target_page
        mock_login.assert_not_called()

    def test_next_page_reuses_active_session(self, source, source_config):
        session = Mock()
        state = ActiveSession(session)

        with patch('scraper.redmine_activity.login') as mock_login, \
                patch('scraper.redmine_activity.fetch', return_value='<html></html>') as mock_fetch:
            new_state, page = source.next_page(source_config, state, PREVIOUS_URL)

        assert new_state is state
        assert page == '<html></html>'
        mock_login.assert_not_called()
        mock_fetch.assert_called_once_with(session, PREVIOUS_URL)

    def test_next_page_logs_in_without_session(self, source, source_config):
        session = Mock()

        with patch('scraper.redmine_activity.login', return_value=session) as mock_login, \
                patch('scraper.redmine_activity.fetch', return_value='<html></html>'):
            new_state, _ = source.next_page(source_config, NoSession(), PREVIOUS_URL)

        assert new_state == ActiveSession(session)
        mock_login.assert_called_once_with(source_config, timeout=source.timeout)

    def test_next_page_closes_new_session_on_failure(self, source, source_config):
        session = Mock()

        with patch('scraper.redmine_activity.login', return_value=session), \
                patch('scraper.redmine_activity.fetch', side_effect=NetworkError('boom')):
            with pytest.raises(NetworkError):
                source.next_page(source_config, NoSession(), PREVIOUS_URL)

        session.close.assert_called_once()

    def test_session_closed_after_walk(self, source, cache, source_config, newer_page, target_page):
        """Test that a session opened while paging is closed at the end of the call."""
        cache.write_to_cache('Redmine', 'work', newer_page)
        session = Mock()

        with patch('scraper.redmine_activity.login', return_value=session), \
                patch('scraper.redmine_activity.fetch', return_value=target_page):
            events = source.get_events(source_config, 'work', TARGET_DAY)

        assert len(events) == 1
        session.close.assert_called_once()


class TestConfigValues:
    """Test cases for the configuration helpers."""

    def test_config_fields(self):
        assert RedmineActivitySource.config_fields() == [
            ('Server URL', 'text'),
            ('Username', 'text'),
            ('Password', 'password'),
        ]

    def test_config_values_round_trip(self, source_config):
        values = RedmineActivitySource.config_values(source_config)

        assert values['Server URL'] == SERVER_URL
        assert RedmineActivitySource.config_from_values(values) == source_config

    def test_config_from_incomplete_values(self):
        with pytest.raises(ConfigError, match='Password'):
            RedmineActivitySource.config_from_values({'Server URL': SERVER_URL, 'Username': 'x'})


@responses.activate
def test_page_without_charset_is_read_as_utf8(source, source_config, activity_page):
    """Test that a page served without a charset is decoded as UTF-8."""
    russian_page = activity_page(
        [('Сегодня', [('09:00', 'Исправлена ошибка', 'Ошибка #123', '/issues/123')])],
        lang='ru'
    )
    add_login_responses()
    responses.add(
        responses.GET,
        ACTIVITY_URL,
        body=russian_page.encode('utf-8'),
        content_type='text/html',
        status=200
    )

    events = source.get_events(source_config, 'work', date.today())

    assert [event.title for event in events] == ['Ошибка #123']
    assert 'Исправлена ошибка' in events[0].body.text
