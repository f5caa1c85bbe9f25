##########################################################################################
#
# Script name: store.py
#
# Description: In-memory report and article stores with JSON snapshot persistence.
#
##########################################################################################

import json
import logging
import os
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from .lifecycle import apply_patch, is_eligible_for_composition, is_pending_classification
from .models import (
    Article,
    ArticleFrame,
    Authenticity,
    ClassificationState,
    DeduplicationState,
    Locale,
    Report,
    ReportAngle,
    ReportTraits,
    Tier,
)
from .utils import parse_iso, utc_now


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)

STAGE_DEDUPLICATION = 'deduplication'
STAGE_CLASSIFICATION = 'classification'
SNAPSHOT_VERSION = 1


# ****************************************************************************************
# Stores
# ****************************************************************************************


class InMemoryArticleStore:
    def __init__(self) -> None:
        self._articles: dict[str, Article] = {}

    async def create_many(self, articles: list[Article]) -> None:
        for article in articles:
            if article.id in self._articles:
                raise KeyError(f'Article {article.id} already exists')
        for article in articles:
            self._articles[article.id] = article

    async def report_ids_with_articles(self) -> set[str]:
        return {article.report_id for article in self._articles.values()}

    def all(self) -> list[Article]:
        return list(self._articles.values())


class InMemoryReportStore:
    """Report storage keyed by id, in creation order.

    ``find_eligible_without_article`` consults the paired article store so a report is
    composed at most once.
    """

    def __init__(self, articles: InMemoryArticleStore) -> None:
        self._reports: dict[str, Report] = {}
        self._articles = articles

    async def count_accepted_since(self, locale: Locale, since: datetime) -> int:
        return sum(
            1
            for report in self._reports.values()
            if report.locale == locale
            and report.created_at >= since
            and report.deduplication_state is not DeduplicationState.DUPLICATE
        )

    async def all_seen_source_references(self, locale: Locale) -> set[str]:
        seen: set[str] = set()
        for report in self._reports.values():
            if report.locale == locale:
                seen.update(report.source_references)
        return seen

    async def create(self, report: Report) -> Report:
        if report.id in self._reports:
            raise KeyError(f'Report {report.id} already exists')
        self._reports[report.id] = report
        return report

    async def get(self, report_id: str) -> Report | None:
        return self._reports.get(report_id)

    async def find_pending(self, stage: str, limit: int) -> list[Report]:
        if stage == STAGE_DEDUPLICATION:
            matches = [r for r in self._reports.values() if r.deduplication_state is DeduplicationState.PENDING]
        elif stage == STAGE_CLASSIFICATION:
            matches = [r for r in self._reports.values() if is_pending_classification(r)]
        else:
            raise ValueError(f'Unknown pipeline stage: {stage!r}')
        return matches[:limit]

    async def find_recent_unique(self, locale: Locale, since: datetime) -> list[Report]:
        return [
            report
            for report in self._reports.values()
            if report.locale == locale
            and report.dateline >= since
            and report.deduplication_state is DeduplicationState.UNIQUE
        ]

    async def find_eligible_without_article(self, locale: Locale, limit: int) -> list[Report]:
        composed = await self._articles.report_ids_with_articles()
        matches = [
            report
            for report in self._reports.values()
            if report.locale == locale and report.id not in composed and is_eligible_for_composition(report)
        ]
        return matches[:limit]

    async def update(self, report_id: str, patch: dict[str, Any]) -> Report:
        current = self._reports.get(report_id)
        if current is None:
            raise KeyError(f'Report {report_id} not found')
        updated = apply_patch(current, patch)
        self._reports[report_id] = updated
        return updated

    async def add_source_references(self, report_id: str, references: Sequence[str]) -> Report:
        current = self._reports.get(report_id)
        if current is None:
            raise KeyError(f'Report {report_id} not found')
        merged = list(dict.fromkeys([*current.source_references, *references]))
        return await self.update(report_id, {'source_references': merged, 'updated_at': utc_now()})

    def all(self) -> list[Report]:
        return list(self._reports.values())


# ****************************************************************************************
# Snapshot serialization
# ****************************************************************************************


def _locale_to_json(locale: Locale) -> dict:
    return {'language': locale.language, 'country': locale.country}


def _report_to_json(report: Report) -> dict:
    return {
        'id': report.id,
        'locale': _locale_to_json(report.locale),
        'source_references': list(report.source_references),
        'dateline': report.dateline.isoformat(),
        'core': report.core,
        'background': report.background,
        'categories': list(report.categories),
        'angles': [
            {'text': angle.text, 'discourse': angle.discourse, 'stance': angle.stance}
            for angle in report.angles
        ],
        'deduplication_state': report.deduplication_state.value,
        'duplicate_of': report.duplicate_of,
        'classification_state': report.classification_state.value,
        'tier': report.tier.value if report.tier else None,
        'traits': (
            {'smart': report.traits.smart, 'uplifting': report.traits.uplifting} if report.traits else None
        ),
        'created_at': report.created_at.isoformat(),
        'updated_at': report.updated_at.isoformat(),
    }


def _report_from_json(payload: dict) -> Report:
    traits = payload.get('traits')
    return Report(
        id=payload['id'],
        locale=Locale(**payload['locale']),
        source_references=list(payload.get('source_references', [])),
        dateline=parse_iso(payload['dateline']),
        core=payload['core'],
        background=payload.get('background', ''),
        categories=list(payload.get('categories', [])),
        angles=[ReportAngle(**angle) for angle in payload.get('angles', [])],
        deduplication_state=DeduplicationState(payload['deduplication_state']),
        duplicate_of=payload.get('duplicate_of'),
        classification_state=ClassificationState(payload['classification_state']),
        tier=Tier(payload['tier']) if payload.get('tier') else None,
        traits=ReportTraits(**traits) if traits is not None else None,
        created_at=parse_iso(payload['created_at']),
        updated_at=parse_iso(payload['updated_at']),
    )


def _article_to_json(article: Article) -> dict:
    return {
        'id': article.id,
        'report_id': article.report_id,
        'locale': _locale_to_json(article.locale),
        'headline': article.headline,
        'body': article.body,
        'category': article.category,
        'published_at': article.published_at.isoformat(),
        'created_at': article.created_at.isoformat(),
        'frames': [
            {
                'headline': frame.headline,
                'body': frame.body,
                'discourse': frame.discourse,
                'stance': frame.stance,
            }
            for frame in article.frames
        ],
        'authenticity': {
            'is_falsified': article.authenticity.is_falsified,
            'falsification_reason': article.authenticity.falsification_reason,
        },
    }


def _article_from_json(payload: dict) -> Article:
    authenticity = payload.get('authenticity') or {}
    return Article(
        id=payload['id'],
        report_id=payload['report_id'],
        locale=Locale(**payload['locale']),
        headline=payload['headline'],
        body=payload['body'],
        category=payload['category'],
        published_at=parse_iso(payload['published_at']),
        created_at=parse_iso(payload['created_at']),
        frames=tuple(ArticleFrame(**frame) for frame in payload.get('frames', [])),
        authenticity=Authenticity(**authenticity),
    )


def save_snapshot(path: str, reports: InMemoryReportStore, articles: InMemoryArticleStore) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        'version': SNAPSHOT_VERSION,
        'saved_at': utc_now().isoformat(),
        'reports': [_report_to_json(report) for report in reports.all()],
        'articles': [_article_to_json(article) for article in articles.all()],
    }
    staging = target.with_name(target.name + '.tmp')
    staging.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding='utf-8')
    os.replace(staging, target)
    log.info('Saved snapshot with %d report(s), %d article(s) to %s.', len(payload['reports']), len(payload['articles']), path)


def load_snapshot(path: str) -> tuple[InMemoryReportStore, InMemoryArticleStore]:
    articles = InMemoryArticleStore()
    reports = InMemoryReportStore(articles)
    source = Path(path)
    if not source.exists():
        log.info('No snapshot at %s; starting with empty stores.', path)
        return reports, articles
    with source.open('r', encoding='utf-8') as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict) or payload.get('version') != SNAPSHOT_VERSION:
        raise ValueError(f'Unsupported snapshot format in {path}')
    for raw in payload.get('reports', []):
        report = _report_from_json(raw)
        reports._reports[report.id] = report
    for raw in payload.get('articles', []):
        article = _article_from_json(raw)
        articles._articles[article.id] = article
    log.info('Loaded snapshot with %d report(s), %d article(s) from %s.', len(reports.all()), len(articles.all()), path)
    return reports, articles
