##########################################################################################
#
# Script name: composition.py
#
# Description: Composes user-facing articles from classified, eligible reports.
#
##########################################################################################

import logging
from collections.abc import Callable
from datetime import datetime

from .config import COMPOSITION_BATCH_SIZE
from .lifecycle import is_eligible_for_composition
from .models import (
    Article,
    ArticleFrame,
    Authenticity,
    CompositionDecision,
    CompositionMismatchError,
    InvalidTransitionError,
    Locale,
    Report,
)
from .outcomes import BatchOutcome
from .ports import ArticleStore, CompositionDecisionService, ReportStore
from .utils import new_id, utc_now


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)


# ****************************************************************************************
# Functions
# ****************************************************************************************


def build_article(report: Report, decision: CompositionDecision, locale: Locale, now: datetime) -> Article:
    """Assemble an article with exactly one frame per report angle, in angle order."""
    if not is_eligible_for_composition(report):
        raise InvalidTransitionError(report.id, 'not eligible for composition')
    if len(decision.frames) != len(report.angles):
        raise CompositionMismatchError(report.id, expected=len(report.angles), received=len(decision.frames))
    frames = tuple(
        ArticleFrame(
            headline=draft.headline,
            body=draft.body,
            discourse=angle.discourse,
            stance=angle.stance,
        )
        for angle, draft in zip(report.angles, decision.frames)
    )
    return Article(
        id=new_id(),
        report_id=report.id,
        locale=locale,
        headline=decision.headline,
        body=decision.body,
        category=report.primary_category,
        published_at=report.dateline,
        created_at=now,
        frames=frames,
        authenticity=Authenticity(is_falsified=False),
    )


# ****************************************************************************************
# Classes
# ****************************************************************************************


class CompositionOrchestrator:
    def __init__(
        self,
        decision_service: CompositionDecisionService,
        reports: ReportStore,
        articles: ArticleStore,
        batch_size: int = COMPOSITION_BATCH_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._decision_service = decision_service
        self._reports = reports
        self._articles = articles
        self._batch_size = batch_size
        self._clock = clock

    async def run(self, locale: Locale) -> list[Article]:
        outcome = await self.run_batch(locale)
        return outcome.produced

    async def run_batch(self, locale: Locale) -> BatchOutcome[Article]:
        outcome: BatchOutcome[Article] = BatchOutcome(stage=f'composition:{locale}')
        log.info('Composition started for %s.', locale)
        try:
            reports = await self._reports.find_eligible_without_article(locale, self._batch_size)
        except Exception as exc:
            log.error('Composition for %s aborted while loading reports: %s', locale, exc)
            raise
        if not reports:
            log.info('No reports ready for composition in %s.', locale)
            return outcome
        log.info('Found %d report(s) ready for composition in %s.', len(reports), locale)

        for report in reports:
            try:
                decision = await self._decision_service.decide(report, locale)
                if decision is None:
                    log.warning('Composition service returned nothing for report %s.', report.id)
                    outcome.skipped(report.id, 'no composition decision')
                    continue
                article = build_article(report, decision, locale, self._clock())
                await self._articles.create_many([article])
            except CompositionMismatchError as exc:
                log.warning('Discarding composition for report %s: %s', report.id, exc)
                outcome.failed(report.id, exc)
                continue
            except Exception as exc:  # noqa: BLE001
                log.warning('Failed to compose report %s: %s', report.id, exc, exc_info=True)
                outcome.failed(report.id, exc)
                continue
            log.info(
                'Composed article %s from report %s with %d frame(s): %s',
                article.id,
                report.id,
                len(article.frames),
                article.headline,
            )
            outcome.succeeded(report.id, article)

        log.info('Composition finished for %s: %s', locale, outcome.summary())
        return outcome
