##########################################################################################
#
# Script name: test_providers.py
#
# Description: RSS entry normalization and headline grouping into candidates.
#
##########################################################################################

from datetime import datetime, timezone

import pytest

from fakes import EN_US, FR_FR

from report_pipeline.config import FeedSource
from report_pipeline.models import SourceItem
from report_pipeline.providers import RssNewsProvider, entry_to_item, group_items, parse_published


def _item(source_id: str, headline: str) -> SourceItem:
    return SourceItem(id=source_id, headline=headline)


def test_group_items_clusters_similar_headlines() -> None:
    items = [
        _item('1', 'Central bank holds interest rates steady - Reuters'),
        _item('2', 'Wildfire forces evacuation of coastal towns'),
        _item('3', 'Central bank holds interest rates steady - BBC News'),
        _item('4', 'Interest rates held steady by central bank'),
    ]
    groups = group_items(items, threshold=70)
    assert [group.source_ids for group in groups] == [['1', '3', '4'], ['2']]


def test_group_items_counts_repeated_items_once() -> None:
    items = [_item('1', 'Same story'), _item('1', 'Same story')]
    groups = group_items(items)
    assert len(groups) == 1
    assert groups[0].evidence_weight == 1


def test_entry_to_item_uses_source_domain_and_parses_date() -> None:
    entry = {
        'title': '<b>Bill passes</b>',
        'link': 'https://news.example.com/articles/1',
        'id': 'guid-1',
        'published': 'Sun, 01 Mar 2026 10:00:00 GMT',
        'source': {'href': 'https://www.publisher.org', 'title': 'Publisher'},
    }
    item = entry_to_item(entry)
    assert item.headline == 'Bill passes'
    assert item.domain == 'publisher.org'
    assert item.published_at == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert entry_to_item({'title': '', 'link': 'x'}) is None


def test_parse_published_skips_garbage() -> None:
    assert parse_published({'published': 'not a date'}) is None
    assert parse_published({}) is None


class _Response:
    def __init__(self, content: bytes) -> None:
        self.content = content

    def raise_for_status(self) -> None:
        return None


class _Session:
    def __init__(self, payloads: dict) -> None:
        self.payloads = payloads
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.closed = True

    def get(self, url, headers=None, timeout=None):
        payload = self.payloads[url]
        if isinstance(payload, Exception):
            raise payload
        return _Response(payload)


class _SessionFactory:
    def __init__(self, payloads: dict) -> None:
        self.payloads = payloads
        self.sessions: list[_Session] = []

    def __call__(self) -> _Session:
        session = _Session(self.payloads)
        self.sessions.append(session)
        return session


RSS = b'''<?xml version="1.0"?>
<rss version="2.0"><channel><title>t</title>
<item><title>Storm hits the coast - Outlet A</title><link>https://a.example/1</link><guid>a1</guid></item>
<item><title>Storm hits the coast - Outlet B</title><link>https://b.example/1</link><guid>b1</guid></item>
</channel></rss>'''


@pytest.mark.asyncio
async def test_rss_provider_groups_feed_entries() -> None:
    feed = FeedSource(locale=EN_US, url='https://feeds.example/us', name='US')
    provider = RssNewsProvider([feed], session_factory=_SessionFactory({feed.url: RSS}))
    candidates = await provider.fetch_candidates(EN_US)
    assert len(candidates) == 1
    assert candidates[0].evidence_weight == 2
    assert await provider.fetch_candidates(FR_FR) == []


@pytest.mark.asyncio
async def test_rss_provider_raises_when_every_feed_fails() -> None:
    feeds = [
        FeedSource(locale=EN_US, url='https://feeds.example/1', name='one'),
        FeedSource(locale=EN_US, url='https://feeds.example/2', name='two'),
    ]
    session_factory = _SessionFactory({feeds[0].url: ConnectionError('x'), feeds[1].url: ConnectionError('y')})
    with pytest.raises(RuntimeError):
        await RssNewsProvider(feeds, session_factory=session_factory).fetch_candidates(EN_US)


@pytest.mark.asyncio
async def test_rss_provider_tolerates_a_single_failing_feed() -> None:
    feeds = [
        FeedSource(locale=EN_US, url='https://feeds.example/1', name='one'),
        FeedSource(locale=EN_US, url='https://feeds.example/2', name='two'),
    ]
    session_factory = _SessionFactory({feeds[0].url: ConnectionError('x'), feeds[1].url: RSS})
    candidates = await RssNewsProvider(feeds, session_factory=session_factory).fetch_candidates(EN_US)
    assert sum(candidate.evidence_weight for candidate in candidates) == 2


@pytest.mark.asyncio
async def test_rss_provider_opens_a_session_per_feed_fetch() -> None:
    feeds = [
        FeedSource(locale=EN_US, url='https://feeds.example/1', name='one'),
        FeedSource(locale=EN_US, url='https://feeds.example/2', name='two'),
    ]
    session_factory = _SessionFactory({feeds[0].url: RSS, feeds[1].url: RSS})
    await RssNewsProvider(feeds, session_factory=session_factory).fetch_candidates(EN_US)
    assert len(session_factory.sessions) == 2
    assert all(session.closed for session in session_factory.sessions)
