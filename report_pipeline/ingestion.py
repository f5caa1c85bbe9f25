##########################################################################################
#
# Script name: ingestion.py
#
# Description: Turns raw news candidates into pending reports under the daily quota.
#
##########################################################################################

import logging
from collections.abc import Callable
from datetime import datetime

from .admission import thresholds
from .config import DAILY_REPORT_TARGET
from .intake import filter_candidates, has_novel_source
from .models import Locale, RawCandidate, Report
from .outcomes import BatchOutcome
from .ports import IngestionDecisionService, NewsProvider, ReportStore
from .utils import new_id, start_of_day, utc_now


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)


# ****************************************************************************************
# Classes
# ****************************************************************************************


class IngestionOrchestrator:
    def __init__(
        self,
        news_provider: NewsProvider,
        decision_service: IngestionDecisionService,
        reports: ReportStore,
        daily_target: int = DAILY_REPORT_TARGET,
        timezone: str = 'UTC',
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._news_provider = news_provider
        self._decision_service = decision_service
        self._reports = reports
        self._daily_target = daily_target
        self._timezone = timezone
        self._clock = clock

    async def run(self, locale: Locale) -> list[Report]:
        outcome = await self.run_batch(locale)
        return outcome.produced

    async def run_batch(self, locale: Locale) -> BatchOutcome[Report]:
        """Ingest one batch for ``locale``.

        Failures while counting, loading seen sources or fetching news abort the run and
        propagate. Failures on a single candidate are logged and recorded, and the rest of
        the batch carries on.
        """
        outcome: BatchOutcome[Report] = BatchOutcome(stage=f'ingestion:{locale}')
        log.info('Ingestion started for %s.', locale)
        try:
            since = start_of_day(self._clock(), self._timezone)
            accepted_today = await self._reports.count_accepted_since(locale, since)
            limits = thresholds(accepted_today, self._daily_target)
            seen_sources = await self._reports.all_seen_source_references(locale)
            candidates = await self._news_provider.fetch_candidates(locale)
        except Exception as exc:
            log.error('Ingestion for %s aborted before processing candidates: %s', locale, exc)
            raise

        log.info(
            'Ingestion %s: %d accepted today, min evidence %d, max intake %d, %d seen source(s).',
            locale,
            accepted_today,
            limits.min_evidence,
            limits.max_intake,
            len(seen_sources),
        )
        if not candidates:
            log.warning('No news candidates fetched for %s.', locale)
            return outcome
        log.info('Fetched %d candidate(s) for %s.', len(candidates), locale)

        selected = filter_candidates(candidates, limits, seen_sources)
        if not selected:
            log.info('No candidates for %s passed intake.', locale)
            return outcome

        run_seen = set(seen_sources)
        for candidate in selected:
            key = candidate.source_ids[0]
            if not has_novel_source(candidate, run_seen):
                log.info('Candidate %s already covered earlier in this run; skipping.', key)
                outcome.skipped(key, 'sources covered earlier in run')
                continue
            try:
                report = await self._ingest_candidate(candidate, locale)
            except Exception as exc:  # noqa: BLE001
                log.warning('Failed to ingest candidate %s for %s: %s', key, locale, exc, exc_info=True)
                outcome.failed(key, exc)
                continue
            if report is None:
                log.warning(
                    'Ingestion service returned no report for candidate %s (%d source(s)).',
                    key,
                    candidate.evidence_weight,
                )
                outcome.skipped(key, 'no ingestion decision')
                continue
            run_seen.update(report.source_references)
            outcome.succeeded(key, report)
            log.info('Ingested report %s for %s.', report.id, locale)

        log.info('Ingestion finished for %s: %s', locale, outcome.summary())
        return outcome

    async def _ingest_candidate(self, candidate: RawCandidate, locale: Locale) -> Report | None:
        decision = await self._decision_service.decide(candidate, locale)
        if decision is None:
            return None
        now = self._clock()
        report = Report(
            id=new_id(),
            locale=locale,
            source_references=candidate.source_ids,
            dateline=candidate.published_at or now,
            core=decision.core,
            background=decision.background,
            categories=list(decision.categories),
            angles=list(decision.angles),
            created_at=now,
            updated_at=now,
        )
        return await self._reports.create(report)
