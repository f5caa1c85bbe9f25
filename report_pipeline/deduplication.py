##########################################################################################
#
# Script name: deduplication.py
#
# Description: Marks pending reports unique or folds them into an existing report.
#
##########################################################################################

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from .config import DEDUPLICATION_BATCH_SIZE, DEDUPLICATION_LOOKBACK_DAYS
from .lifecycle import mark_duplicate, mark_unique
from .models import DeduplicationState, InvalidTransitionError, Locale, Report
from .outcomes import BatchOutcome
from .ports import DeduplicationDecisionService, ReportStore
from .store import STAGE_DEDUPLICATION
from .utils import utc_now


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)


# ****************************************************************************************
# Classes
# ****************************************************************************************


class DeduplicationOrchestrator:
    def __init__(
        self,
        decision_service: DeduplicationDecisionService,
        reports: ReportStore,
        batch_size: int = DEDUPLICATION_BATCH_SIZE,
        lookback_days: int = DEDUPLICATION_LOOKBACK_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._decision_service = decision_service
        self._reports = reports
        self._batch_size = batch_size
        self._lookback = timedelta(days=lookback_days)
        self._clock = clock

    async def run(self) -> BatchOutcome[Report]:
        outcome: BatchOutcome[Report] = BatchOutcome(stage='deduplication')
        log.info('Deduplication started.')
        try:
            pending = await self._reports.find_pending(STAGE_DEDUPLICATION, self._batch_size)
        except Exception as exc:
            log.error('Deduplication aborted while loading pending reports: %s', exc)
            raise
        if not pending:
            log.info('No reports pending deduplication.')
            return outcome
        log.info('Found %d report(s) pending deduplication.', len(pending))

        # Reports marked unique in this run join the comparison pool for later ones.
        pools: dict[Locale, list[Report]] = {}
        for report in pending:
            try:
                if report.locale not in pools:
                    since = self._clock() - self._lookback
                    pools[report.locale] = await self._reports.find_recent_unique(report.locale, since)
                pool = pools[report.locale]
                decision = await self._decision_service.decide(report, list(pool))
                if decision is None:
                    log.warning('Deduplication service returned nothing for report %s.', report.id)
                    outcome.skipped(report.id, 'no deduplication decision')
                    continue
                if decision.duplicate_of:
                    updated = await self._fold_into(report, decision.duplicate_of)
                    log.info('Report %s is a duplicate of %s.', report.id, decision.duplicate_of)
                else:
                    updated = await self._reports.update(report.id, mark_unique(report, self._clock()))
                    pool.append(updated)
                    log.info('Report %s is unique.', report.id)
                outcome.succeeded(report.id, updated)
            except Exception as exc:  # noqa: BLE001
                log.warning('Failed to deduplicate report %s: %s', report.id, exc, exc_info=True)
                outcome.failed(report.id, exc)

        log.info('Deduplication finished: %s', outcome.summary())
        return outcome

    async def _fold_into(self, report: Report, canonical_id: str) -> Report:
        canonical = await self._reports.get(canonical_id)
        if canonical is None:
            raise InvalidTransitionError(report.id, f'canonical report {canonical_id} does not exist')
        if canonical.deduplication_state is DeduplicationState.DUPLICATE:
            raise InvalidTransitionError(report.id, f'canonical report {canonical_id} is itself a duplicate')
        if canonical.locale != report.locale:
            raise InvalidTransitionError(report.id, f'canonical report {canonical_id} is in another locale')
        patch = mark_duplicate(report, canonical_id, self._clock())
        # Extend the canonical sources before marking; re-adding the same refs is a no-op.
        await self._reports.add_source_references(canonical_id, report.source_references)
        return await self._reports.update(report.id, patch)
