##########################################################################################
#
# Script name: test_store.py
#
# Description: In-memory store queries and JSON snapshot persistence.
#
##########################################################################################

import dataclasses
import json
from pathlib import Path

import pytest

from fakes import EN_US, NOW, composition_decision, make_report

from report_pipeline.composition import build_article
from report_pipeline.lifecycle import apply_patch, classify
from report_pipeline.models import (
    Authenticity,
    ClassificationDecision,
    ClassificationState,
    InvalidTransitionError,
    ReportTraits,
    Tier,
)
from report_pipeline.store import (
    InMemoryArticleStore,
    InMemoryReportStore,
    load_snapshot,
    save_snapshot,
)


@pytest.mark.asyncio
async def test_snapshot_round_trip_preserves_reports_and_articles(tmp_path: Path) -> None:
    articles = InMemoryArticleStore()
    reports = InMemoryReportStore(articles)
    pending = make_report('pending')
    report = make_report('classified')
    decision = ClassificationDecision(tier=Tier.GENERAL, traits=ReportTraits(smart=True))
    classified = apply_patch(report, classify(report, decision, NOW))
    await reports.create(pending)
    await reports.create(classified)
    article = build_article(classified, composition_decision(2), EN_US, NOW)
    await articles.create_many([article])

    path = tmp_path / 'state' / 'snapshot.json'
    save_snapshot(str(path), reports, articles)
    loaded_reports, loaded_articles = load_snapshot(str(path))

    assert loaded_reports.all() == [pending, classified]
    assert loaded_articles.all() == [article]
    assert await loaded_reports.find_eligible_without_article(EN_US, 10) == []


def test_missing_snapshot_starts_empty(tmp_path: Path) -> None:
    reports, articles = load_snapshot(str(tmp_path / 'absent.json'))
    assert reports.all() == []
    assert articles.all() == []


@pytest.mark.asyncio
async def test_unknown_stage_is_rejected() -> None:
    reports = InMemoryReportStore(InMemoryArticleStore())
    with pytest.raises(ValueError):
        await reports.find_pending('publication', 10)


@pytest.mark.asyncio
async def test_add_source_references_keeps_order_without_duplicates() -> None:
    reports = InMemoryReportStore(InMemoryArticleStore())
    await reports.create(make_report('r1'))
    updated = await reports.add_source_references('r1', ['r1-b', 'r1-c'])
    assert updated.source_references == ('r1-a', 'r1-b', 'r1-c')
    assert await reports.all_seen_source_references(EN_US) == {'r1-a', 'r1-b', 'r1-c'}


@pytest.mark.asyncio
async def test_snapshot_keeps_article_authenticity(tmp_path: Path) -> None:
    articles = InMemoryArticleStore()
    reports = InMemoryReportStore(articles)
    report = make_report('classified')
    classified = apply_patch(report, classify(report, ClassificationDecision(tier=Tier.NICHE), NOW))
    composed = build_article(classified, composition_decision(2), EN_US, NOW)
    falsified = dataclasses.replace(
        composed,
        id='falsified',
        authenticity=Authenticity(is_falsified=True, falsification_reason='invented quote'),
    )
    await articles.create_many([composed, falsified])

    path = tmp_path / 'snapshot.json'
    save_snapshot(str(path), reports, articles)
    _, loaded = load_snapshot(str(path))

    by_id = {article.id: article.authenticity for article in loaded.all()}
    assert by_id[composed.id] == Authenticity()
    assert by_id['falsified'].falsification_reason == 'invented quote'


def test_failed_snapshot_write_keeps_previous_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    articles = InMemoryArticleStore()
    reports = InMemoryReportStore(articles)
    path = tmp_path / 'snapshot.json'
    save_snapshot(str(path), reports, articles)
    before = path.read_text(encoding='utf-8')

    def broken_replace(src, dst) -> None:
        raise OSError('disk full')

    monkeypatch.setattr('report_pipeline.store.os.replace', broken_replace)
    with pytest.raises(OSError):
        save_snapshot(str(path), reports, articles)

    assert path.read_text(encoding='utf-8') == before
    assert json.loads(before)['reports'] == []


@pytest.mark.asyncio
async def test_update_refuses_to_rewrite_a_classified_report() -> None:
    reports = InMemoryReportStore(InMemoryArticleStore())
    await reports.create(make_report('r1'))
    stored = await reports.get('r1')
    await reports.update('r1', classify(stored, ClassificationDecision(tier=Tier.GENERAL), NOW))

    with pytest.raises(InvalidTransitionError):
        await reports.update('r1', {'tier': Tier.OFF_TOPIC})
    with pytest.raises(InvalidTransitionError):
        await reports.update('r1', {'classification_state': ClassificationState.PENDING, 'tier': None, 'traits': None})

    current = await reports.get('r1')
    assert current.classification_state is ClassificationState.CLASSIFIED
    assert current.tier is Tier.GENERAL


@pytest.mark.asyncio
async def test_fetched_reports_cannot_alter_stored_state() -> None:
    reports = InMemoryReportStore(InMemoryArticleStore())
    await reports.create(make_report('r1'))
    fetched = await reports.get('r1')

    with pytest.raises(dataclasses.FrozenInstanceError):
        fetched.core = 'rewritten'
    with pytest.raises(AttributeError):
        fetched.categories.clear()

    assert (await reports.get('r1')).categories == ('POLITICS', 'WORLD')
