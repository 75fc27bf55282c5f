"""Shared fixtures for the Redmine tests."""
import pytest

from processor.models import SourceConfig
from redmine_pages import SERVER_URL, build_activity_page


@pytest.fixture
def source_config():
    """Configuration of the fake Redmine server."""
    return SourceConfig(server_url=SERVER_URL, username='jdoe', password='s3cret')


@pytest.fixture
def activity_page():
    return build_activity_page
