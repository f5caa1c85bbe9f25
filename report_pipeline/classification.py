##########################################################################################
#
# Script name: classification.py
#
# Description: Assigns an editorial tier and traits to reports pending classification.
#
##########################################################################################

import logging
from collections.abc import Callable
from datetime import datetime

from .config import CLASSIFICATION_BATCH_SIZE
from .lifecycle import classify
from .models import Report
from .outcomes import BatchOutcome, OutcomeKind
from .ports import ClassificationDecisionService, ReportStore
from .store import STAGE_CLASSIFICATION
from .utils import utc_now


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)


# ****************************************************************************************
# Classes
# ****************************************************************************************


class ClassificationOrchestrator:
    def __init__(
        self,
        decision_service: ClassificationDecisionService,
        reports: ReportStore,
        batch_size: int = CLASSIFICATION_BATCH_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._decision_service = decision_service
        self._reports = reports
        self._batch_size = batch_size
        self._clock = clock

    async def run(self) -> BatchOutcome[Report]:
        """Classify up to one batch of pending reports.

        Reports the service cannot decide, or that fail, stay PENDING and are picked up again
        by the next run.
        """
        outcome: BatchOutcome[Report] = BatchOutcome(stage='classification')
        log.info('Classification started.')
        try:
            pending = await self._reports.find_pending(STAGE_CLASSIFICATION, self._batch_size)
        except Exception as exc:
            log.error('Classification aborted while loading pending reports: %s', exc)
            raise
        if not pending:
            log.info('No reports pending classification.')
            return outcome
        log.info('Found %d report(s) pending classification.', len(pending))

        for report in pending:
            try:
                decision = await self._decision_service.decide(report)
                if decision is None:
                    log.warning('Classification service returned nothing for report %s.', report.id)
                    outcome.skipped(report.id, 'no classification decision')
                    continue
                updated = await self._reports.update(report.id, classify(report, decision, self._clock()))
                log.info(
                    'Classified report %s as %s (%s).',
                    report.id,
                    decision.tier.value,
                    decision.reason or 'no reason given',
                )
                outcome.succeeded(report.id, updated)
            except Exception as exc:  # noqa: BLE001
                log.error('Failed to classify report %s: %s', report.id, exc, exc_info=True)
                outcome.failed(report.id, exc)

        log.info(
            'Classification finished: %d successful, %d failed, %d reviewed.',
            outcome.count(OutcomeKind.SUCCEEDED),
            outcome.count(OutcomeKind.SKIPPED) + outcome.count(OutcomeKind.FAILED),
            outcome.total,
        )
        return outcome
