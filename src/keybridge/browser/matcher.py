"""
Decides which stored credentials are offered for a page, and in what order.

Eligibility (handle_url / handle_entry):
  - ``<scheme>://by-uuid/<hex>`` page URLs select exactly the entry with that
    uuid and skip every domain rule.
  - ``file://`` pages match entries whose URL equals the submit URL.
  - Otherwise an entry URL is eligible when it is valid, shares the page's base
    domain, its host equals the page host or is a subdomain/parent of it, the
    ports agree when both are explicit, and (with match_url_scheme) the
    schemes agree.

Ranking (sort_priority) walks PRIORITY_RULES in order; the first rule whose
predicate holds gives the score.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from ..core.models import Database, Entry
from ..core.settings import BrowserSettings
from . import urls

logger = logging.getLogger(__name__)

UUID_URL_SCHEME = "keybridge"
UUID_URL_PREFIX = f"{UUID_URL_SCHEME}://by-uuid/"


@dataclass(frozen=True)
class PriorityContext:
    """The page a candidate URL is being ranked against."""
    host: str
    submit_url: str
    base_submit_url: str
    full_url: str

    @property
    def scheme(self) -> str:
        target = urls.parse(self.full_url or self.submit_url)
        return target.scheme


@dataclass(frozen=True)
class PriorityRule:
    name: str
    score: int
    applies: Callable[[urls.ParsedUrl, PriorityContext], bool]


def _is_foreign(candidate: urls.ParsedUrl, ctx: PriorityContext) -> bool:
    if not candidate.explicit_scheme or candidate.scheme != ctx.scheme:
        return True
    if not urls.validate(candidate.raw):
        return True
    if candidate.scheme == "file":
        return False
    return not urls.same_site(candidate.host, ctx.host)


def _is_exact(candidate: urls.ParsedUrl, ctx: PriorityContext) -> bool:
    return candidate.raw in (ctx.submit_url, ctx.full_url)


def _is_site_root(candidate: urls.ParsedUrl, ctx: PriorityContext) -> bool:
    return urls.strip_trailing_slash(candidate.raw) == ctx.base_submit_url


def _is_page_without_query(candidate: urls.ParsedUrl, ctx: PriorityContext) -> bool:
    return candidate.raw in (urls.strip_query(ctx.submit_url), urls.strip_query(ctx.full_url))


def _is_same_host(candidate: urls.ParsedUrl, ctx: PriorityContext) -> bool:
    return candidate.host == ctx.host and candidate.scheme == ctx.scheme


PRIORITY_RULES: Tuple[PriorityRule, ...] = (
    PriorityRule("foreign", 0, _is_foreign),
    PriorityRule("exact", 100, _is_exact),
    PriorityRule("site-root", 90, _is_site_root),
    PriorityRule("page-without-query", 70, _is_page_without_query),
    PriorityRule("same-host", 40, _is_same_host),
)

DEFAULT_PRIORITY = 0


def url_priority(entry_url: str, ctx: PriorityContext) -> int:
    candidate = urls.parse(entry_url)
    for rule in PRIORITY_RULES:
        if rule.applies(candidate, ctx):
            return rule.score
    return DEFAULT_PRIORITY


def is_uuid_url(url: str) -> bool:
    return isinstance(url, str) and url.startswith(UUID_URL_PREFIX)


class CredentialMatcher:
    """Matching, scoring and sorting of entries against a page URL.

    The matcher only reads the database; it is safe to share between sessions.
    """

    def __init__(self, settings: Optional[BrowserSettings] = None,
                 database: Optional[Database] = None):
        self.settings = settings or BrowserSettings()
        self.database = database

    def handle_url(self, entry_url: str, url: str, submit_url: str) -> bool:
        """Whether a single entry URL is eligible for the page ``url``."""
        if not entry_url:
            return False

        # Local files are compared verbatim against the real page location
        if urls.is_local_file(url):
            return entry_url == submit_url

        if not urls.validate(url):
            return False
        if not urls.validate(entry_url):
            return False

        candidate = urls.parse(entry_url)
        site = urls.parse(url)
        if not candidate.host:
            return False

        if candidate.port is not None and site.port is not None and candidate.port != site.port:
            return False

        if self.settings.match_url_scheme and candidate.scheme != site.scheme:
            return False

        return urls.same_site(candidate.host, site.host)

    def handle_entry(self, entry: Entry, url: str, submit_url: str) -> bool:
        """Whether any URL of ``entry`` is eligible, or the uuid lookup selects it."""
        if is_uuid_url(url):
            return url == UUID_URL_PREFIX + entry.uuid_hex
        return any(self.handle_url(entry_url, url, submit_url) for entry_url in entry.urls)

    def search_entries(self, db: Database, url: str, submit_url: str) -> List[Entry]:
        """Eligible entries of ``db`` for the page, best first."""
        if is_uuid_url(url):
            return [
                entry for entry in db.entries_recursive()
                if not db.is_recycled(entry) and self.handle_entry(entry, url, submit_url)
            ]

        if not urls.validate(url):
            logger.debug("Rejected page URL that failed validation")
            return []

        entries = [
            entry for entry in db.entries_recursive()
            if db.is_searchable(entry) and self.handle_entry(entry, url, submit_url)
        ]
        host = urls.parse(url).host
        return self.sort_entries(entries, host, submit_url or url, url)

    def find_matching_entries(self, url: str, submit_url: str = "") -> List[Entry]:
        """search_entries() against the attached database."""
        if self.database is None:
            return []
        results = self.search_entries(self.database, url, submit_url)
        logger.info(f"Found {len(results)} matching credential(s)")
        return results

    def sort_priority(self, entry: Entry, host: str, submit_url: str,
                      base_submit_url: str, full_url: str) -> int:
        """Score of an entry: the best score over all of its URLs."""
        ctx = PriorityContext(host, submit_url, base_submit_url, full_url)
        return max((url_priority(u, ctx) for u in entry.urls if u), default=DEFAULT_PRIORITY)

    def ranked(self, entries: Iterable[Entry], host: str, submit_url: str,
               full_url: str) -> List[Tuple[int, Entry]]:
        """(score, entry) pairs, highest score first, store order kept on ties."""
        base_submit_url = urls.origin(submit_url) if submit_url else urls.origin(full_url)
        scored = [
            (self.sort_priority(entry, host, submit_url, base_submit_url, full_url), entry)
            for entry in entries
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        if self.settings.best_match_only and scored:
            top = scored[0][0]
            scored = [pair for pair in scored if pair[0] == top]
        return scored

    def sort_entries(self, entries: Iterable[Entry], host: str, submit_url: str,
                     full_url: str) -> List[Entry]:
        return [entry for _, entry in self.ranked(entries, host, submit_url, full_url)]
