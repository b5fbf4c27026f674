from typing import Callable, List, Optional

import pytest

from keybridge.core.models import Database, Entry, Group
from keybridge.core.settings import BrowserSettings
from keybridge.browser.matcher import CredentialMatcher


@pytest.fixture
def db() -> Database:
    return Database()


@pytest.fixture
def settings() -> BrowserSettings:
    return BrowserSettings(match_url_scheme=False, best_match_only=False)


@pytest.fixture
def matcher(settings: BrowserSettings) -> CredentialMatcher:
    return CredentialMatcher(settings)


@pytest.fixture
def make_entries(db: Database) -> Callable[..., List[Entry]]:
    """Add one entry per URL, named "User <i>" in list order."""

    def _make(urls: List[str], group: Optional[Group] = None) -> List[Entry]:
        return [
            db.add_entry(group, title=f"Entry {i}", username=f"User {i}", url=url)
            for i, url in enumerate(urls)
        ]

    return _make
