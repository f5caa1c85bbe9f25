##########################################################################################
#
# Script name: providers.py
#
# Description: News providers that turn RSS feeds into grouped raw candidates.
#
##########################################################################################

import asyncio
import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

import feedparser
import requests
from dateutil import parser as date_parser
from fuzzywuzzy import fuzz

from .config import FeedSource
from .models import Locale, RawCandidate, SourceItem
from .utils import stable_id, strip_html, utc_now


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)
USER_AGENT = 'report-pipeline-bot/1.0 (+https://github.com/)'
REQUEST_TIMEOUT_SECONDS = 20
DEFAULT_CLUSTER_THRESHOLD = 70
DEFAULT_MAX_AGE_HOURS = 24


# ****************************************************************************************
# Functions
# ****************************************************************************************


def parse_published(entry: dict) -> datetime | None:
    candidates = [
        entry.get('published'),
        entry.get('updated'),
        entry.get('created'),
    ]
    for candidate in candidates:
        if not candidate:
            continue
        try:
            parsed = date_parser.parse(candidate)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (ValueError, TypeError, OverflowError):
            continue
    return None


def _normalize_headline(title: str) -> str:
    # Aggregators append " - Publisher" to headlines.
    title = re.sub(r'\s+[-|]\s+[^-|]{2,60}$', '', title or '')
    return re.sub(r'[^\w\s]', '', title.lower()).strip()


def _entry_domain(entry: dict, link: str) -> str:
    source = entry.get('source')
    href = source.get('href') if isinstance(source, dict) else ''
    raw_domain = urlparse(href or link).netloc
    return raw_domain.lower().removeprefix('www.')


def entry_to_item(entry: dict) -> SourceItem | None:
    title = strip_html(entry.get('title', ''))
    link = (entry.get('link') or '').strip()
    if not title or not link:
        return None
    guid = entry.get('id') or link
    return SourceItem(
        id=stable_id(guid, link),
        headline=title,
        published_at=parse_published(entry),
        url=link,
        domain=_entry_domain(entry, link),
    )


def group_items(items: list[SourceItem], threshold: int = DEFAULT_CLUSTER_THRESHOLD) -> list[RawCandidate]:
    """Group items whose headlines describe the same event.

    Greedy scan in input order: each unclaimed item seeds a group and absorbs every later
    item whose normalized headline scores at least ``threshold`` on token_sort_ratio against
    the seed. An item repeated across feeds (same id) joins the group once.
    """
    groups: list[RawCandidate] = []
    claimed: set[int] = set()
    normalized = [_normalize_headline(item.headline) for item in items]
    for i, seed in enumerate(items):
        if i in claimed:
            continue
        members = [seed]
        member_ids = {seed.id}
        for j in range(i + 1, len(items)):
            if j in claimed:
                continue
            if fuzz.token_sort_ratio(normalized[i], normalized[j]) >= threshold:
                claimed.add(j)
                if items[j].id not in member_ids:
                    members.append(items[j])
                    member_ids.add(items[j].id)
        groups.append(RawCandidate(items=members))
    return groups


# ****************************************************************************************
# Classes
# ****************************************************************************************


class RssNewsProvider:
    def __init__(
        self,
        feeds: list[FeedSource],
        cluster_threshold: int = DEFAULT_CLUSTER_THRESHOLD,
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self._feeds = feeds
        self._cluster_threshold = cluster_threshold
        self._max_age = timedelta(hours=max_age_hours)
        self._session_factory = session_factory

    def _fetch_feed(self, feed: FeedSource) -> list[SourceItem]:
        # Runs in a worker thread; each fetch gets its own session.
        with self._session_factory() as session:
            response = session.get(
                feed.url,
                headers={'User-Agent': USER_AGENT},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        response.raise_for_status()
        parsed = feedparser.parse(response.content)
        if getattr(parsed, 'bozo', False):
            log.warning('RSS parse warning for %s', feed.name)
        items: list[SourceItem] = []
        for entry in parsed.entries[: feed.max_items]:
            item = entry_to_item(entry)
            if item is not None:
                items.append(item)
        return items

    async def fetch_candidates(self, locale: Locale) -> list[RawCandidate]:
        feeds = [feed for feed in self._feeds if feed.locale == locale]
        if not feeds:
            log.warning('No feeds configured for %s.', locale)
            return []

        results = await asyncio.gather(
            *(asyncio.to_thread(self._fetch_feed, feed) for feed in feeds),
            return_exceptions=True,
        )
        items: list[SourceItem] = []
        failures = 0
        for feed, result in zip(feeds, results):
            if isinstance(result, Exception):
                failures += 1
                log.warning('Feed fetch failed for %s: %s', feed.name, result)
                continue
            if isinstance(result, BaseException):
                raise result
            items.extend(result)
        if failures == len(feeds):
            raise RuntimeError(f'All {failures} feed(s) failed for {locale}')

        cutoff = utc_now() - self._max_age
        fresh = [item for item in items if item.published_at is None or item.published_at >= cutoff]
        candidates = group_items(fresh, threshold=self._cluster_threshold)
        log.info(
            'Fetched %d item(s) for %s (%d fresh) grouped into %d candidate(s).',
            len(items),
            locale,
            len(fresh),
            len(candidates),
        )
        return candidates


class SampleNewsProvider:
    """Offline provider with deterministic candidates, for dry runs without network access."""

    TEMPLATES = [
        ('Central bank holds interest rates steady amid cooling inflation', 18),
        ('Wildfire forces evacuation of coastal towns', 12),
        ('Parliament passes landmark data privacy bill', 9),
        ('Researchers report breakthrough in solid-state batteries', 6),
        ('Local football club wins regional cup', 3),
    ]

    async def fetch_candidates(self, locale: Locale) -> list[RawCandidate]:
        now = utc_now()
        candidates: list[RawCandidate] = []
        for idx, (headline, source_count) in enumerate(self.TEMPLATES):
            items = [
                SourceItem(
                    id=stable_id(str(locale), headline, str(n)),
                    headline=f'{headline} ({n + 1})',
                    published_at=now - timedelta(hours=idx),
                    url=f'https://example.com/{locale.country.lower()}/story-{idx}-{n}',
                    domain='example.com',
                )
                for n in range(source_count)
            ]
            candidates.append(RawCandidate(items=items))
        return candidates
