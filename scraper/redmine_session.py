"""Form based login against a Redmine server."""
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple, Union

import requests
from bs4 import BeautifulSoup

from processor.models import SourceConfig
from scraper.errors import AuthError, MissingAuthTokenError, NetworkError, ScrapeError

logger = logging.getLogger(__name__)

# (connect, read) timeouts in seconds
DEFAULT_TIMEOUT = (30, 30)

Timeout = Union[float, Tuple[float, float]]

AUTH_TOKEN_SELECTOR = 'input[name=authenticity_token]'
ACTIVE_USER_SELECTOR = 'a.user.active'
LOGIN_ERROR_SELECTOR = '#flash_error'
USER_PATH_MARKER = '/users/'


@dataclass
class RedmineSession:
    """An authenticated cookie session bound to one Redmine server."""
    http: requests.Session
    user_id: str
    timeout: Timeout = DEFAULT_TIMEOUT

    def close(self) -> None:
        self.http.close()


def login(config: SourceConfig, timeout: Timeout = DEFAULT_TIMEOUT) -> RedmineSession:
    """
    Log into Redmine through its HTML login form.

    Redmine has no activity API, so the feed is scraped with the same
    cookies a browser would get.

    Args:
        config: Server URL and credentials
        timeout: Connect and read timeout for every request

    Returns:
        RedmineSession holding the session cookies and the user id

    Raises:
        NetworkError: If a request fails or returns a non-2xx status
        AuthError: If the token is missing or the credentials are rejected
        ScrapeError: If the user id can't be found after login
    """
    logger.info(f"Logging into {config.server_url} as {config.username}")
    http = requests.Session()
    try:
        # Get the anti-forgery token from the login form
        html = _request(http, 'GET', config.server_url, timeout=timeout)
        auth_token = _extract_auth_token(html)

        # Submit the credentials
        html = _request(
            http,
            'POST',
            config.url_for('login'),
            timeout=timeout,
            data={
                'username': config.username,
                'password': config.password,
                'login': 'Login',
                'utf8': '✓',
                'back_url': config.server_url,
                'authenticity_token': auth_token
            }
        )
        user_id = _extract_user_id(html)
    except Exception:
        http.close()
        raise

    logger.info(f"Logged into {config.server_url}, user id {user_id}")
    return RedmineSession(http=http, user_id=user_id, timeout=timeout)


def fetch(
    session: RedmineSession,
    url: str,
    params: Optional[Mapping[str, str]] = None
) -> str:
    """
    Perform an authenticated GET and return the response body.

    Raises:
        NetworkError: If the request fails or returns a non-2xx status
    """
    return _request(session.http, 'GET', url, timeout=session.timeout, params=params)


def _request(http: requests.Session, method: str, url: str, **kwargs) -> str:
    try:
        response = http.request(method, url, **kwargs)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"{method} {url} failed: {e}")
        raise NetworkError(f"{method} {url} failed: {e}") from e

    # Without a charset requests falls back to ISO-8859-1; Redmine serves UTF-8
    if 'charset' not in response.headers.get('content-type', '').lower():
        response.encoding = 'utf-8'
    return response.text


def _extract_auth_token(html: str) -> str:
    soup = BeautifulSoup(html, 'html.parser')
    token_input = soup.select_one(AUTH_TOKEN_SELECTOR)
    if token_input is None or not token_input.get('value'):
        raise MissingAuthTokenError("missing auth token")
    return token_input['value']


def _extract_user_id(html: str) -> str:
    """
    Read the logged in user's id from the account link ("/users/5").

    Raises:
        AuthError: If Redmine answered with its login error message
        ScrapeError: If the link is missing or its target is malformed
    """
    soup = BeautifulSoup(html, 'html.parser')
    user_link = soup.select_one(ACTIVE_USER_SELECTOR)
    if user_link is None:
        login_error = soup.select_one(LOGIN_ERROR_SELECTOR)
        if login_error is not None:
            raise AuthError(f"Login rejected: {login_error.get_text(strip=True)}")
        raise ScrapeError("Failed getting the user id: no active user link")

    href = user_link.get('href') or ''
    if USER_PATH_MARKER not in href:
        raise ScrapeError(f"Failed getting the user id: unexpected link {href!r}")
    user_id = href.rsplit(USER_PATH_MARKER, 1)[1].strip('/')
    if not user_id:
        raise ScrapeError(f"Failed getting the user id: unexpected link {href!r}")
    return user_id
