##########################################################################################
#
# Script name: pipeline.py
#
# Description: One pipeline run: ingest per locale, deduplicate, classify, compose per locale.
#
##########################################################################################

import asyncio
import logging
from dataclasses import dataclass, field

from .classification import ClassificationOrchestrator
from .composition import CompositionOrchestrator
from .config import PipelineConfig
from .deduplication import DeduplicationOrchestrator
from .ingestion import IngestionOrchestrator
from .models import Article, Locale, Report
from .outcomes import BatchOutcome
from .ports import (
    ArticleStore,
    ClassificationDecisionService,
    CompositionDecisionService,
    DeduplicationDecisionService,
    IngestionDecisionService,
    NewsProvider,
    ReportStore,
)


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)


@dataclass
class PipelineSummary:
    ingestion: dict[str, BatchOutcome[Report]] = field(default_factory=dict)
    deduplication: BatchOutcome[Report] | None = None
    classification: BatchOutcome[Report] | None = None
    composition: dict[str, BatchOutcome[Article]] = field(default_factory=dict)
    locale_failures: dict[str, str] = field(default_factory=dict)

    @property
    def new_reports(self) -> list[Report]:
        return [report for outcome in self.ingestion.values() for report in outcome.produced]

    @property
    def new_articles(self) -> list[Article]:
        return [article for outcome in self.composition.values() for article in outcome.produced]


# ****************************************************************************************
# Classes
# ****************************************************************************************


class ReportPipeline:
    """Runs the stages in order: ingestion, deduplication, classification, composition.

    Locales run concurrently inside the ingestion and composition stages. A locale that fails
    is logged and recorded without stopping the other locales or the later stages.
    Deduplication and classification are single global passes, and their infrastructure
    failures abort the run.
    """

    def __init__(
        self,
        ingestion: IngestionOrchestrator,
        deduplication: DeduplicationOrchestrator | None,
        classification: ClassificationOrchestrator,
        composition: CompositionOrchestrator,
    ) -> None:
        self.ingestion = ingestion
        self.deduplication = deduplication
        self.classification = classification
        self.composition = composition

    async def run(self, locales: list[Locale]) -> PipelineSummary:
        summary = PipelineSummary()
        log.info('Pipeline run started for %d locale(s): %s', len(locales), ', '.join(map(str, locales)))

        ingested = await asyncio.gather(
            *(self.ingestion.run_batch(locale) for locale in locales),
            return_exceptions=True,
        )
        self._collect(summary, summary.ingestion, 'ingestion', locales, ingested)
        log.info('Ingestion stage done: %d new report(s).', len(summary.new_reports))

        if self.deduplication is not None:
            summary.deduplication = await self.deduplication.run()
        summary.classification = await self.classification.run()

        composed = await asyncio.gather(
            *(self.composition.run_batch(locale) for locale in locales),
            return_exceptions=True,
        )
        self._collect(summary, summary.composition, 'composition', locales, composed)
        log.info(
            'Pipeline run finished: %d new report(s), %d new article(s), %d locale failure(s).',
            len(summary.new_reports),
            len(summary.new_articles),
            len(summary.locale_failures),
        )
        return summary

    @staticmethod
    def _collect(summary: PipelineSummary, target: dict, stage: str, locales: list[Locale], results: list) -> None:
        for locale, result in zip(locales, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.error('%s failed for %s: %s', stage.capitalize(), locale, result)
                summary.locale_failures[f'{stage}:{locale}'] = f'{type(result).__name__}: {result}'
            else:
                target[str(locale)] = result


# ****************************************************************************************
# Functions
# ****************************************************************************************


def build_pipeline(
    config: PipelineConfig,
    news_provider: NewsProvider,
    ingestion_service: IngestionDecisionService,
    deduplication_service: DeduplicationDecisionService | None,
    classification_service: ClassificationDecisionService,
    composition_service: CompositionDecisionService,
    reports: ReportStore,
    articles: ArticleStore,
) -> ReportPipeline:
    deduplication = None
    if deduplication_service is not None:
        deduplication = DeduplicationOrchestrator(
            deduplication_service,
            reports,
            batch_size=config.deduplication_batch_size,
        )
    return ReportPipeline(
        ingestion=IngestionOrchestrator(
            news_provider,
            ingestion_service,
            reports,
            daily_target=config.daily_target,
            timezone=config.timezone,
        ),
        deduplication=deduplication,
        classification=ClassificationOrchestrator(
            classification_service,
            reports,
            batch_size=config.classification_batch_size,
        ),
        composition=CompositionOrchestrator(
            composition_service,
            reports,
            articles,
            batch_size=config.composition_batch_size,
        ),
    )
