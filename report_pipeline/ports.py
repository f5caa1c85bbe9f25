"""Collaborators the orchestrators depend on. Every call is awaited."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from .models import (
    Article,
    ClassificationDecision,
    CompositionDecision,
    DeduplicationDecision,
    IngestionDecision,
    Locale,
    RawCandidate,
    Report,
)


class NewsProvider(Protocol):
    async def fetch_candidates(self, locale: Locale) -> list[RawCandidate]: ...


class IngestionDecisionService(Protocol):
    async def decide(self, candidate: RawCandidate, locale: Locale) -> IngestionDecision | None: ...


class DeduplicationDecisionService(Protocol):
    async def decide(self, report: Report, existing: list[Report]) -> DeduplicationDecision | None: ...


class ClassificationDecisionService(Protocol):
    async def decide(self, report: Report) -> ClassificationDecision | None: ...


class CompositionDecisionService(Protocol):
    async def decide(self, report: Report, locale: Locale) -> CompositionDecision | None: ...


class ReportStore(Protocol):
    async def count_accepted_since(self, locale: Locale, since: datetime) -> int: ...

    async def all_seen_source_references(self, locale: Locale) -> set[str]: ...

    async def create(self, report: Report) -> Report: ...

    async def get(self, report_id: str) -> Report | None: ...

    async def find_pending(self, stage: str, limit: int) -> list[Report]: ...

    async def find_recent_unique(self, locale: Locale, since: datetime) -> list[Report]: ...

    async def find_eligible_without_article(self, locale: Locale, limit: int) -> list[Report]: ...

    async def update(self, report_id: str, patch: dict[str, Any]) -> Report: ...

    async def add_source_references(self, report_id: str, references: Sequence[str]) -> Report: ...


class ArticleStore(Protocol):
    async def create_many(self, articles: list[Article]) -> None: ...

    async def report_ids_with_articles(self) -> set[str]: ...
