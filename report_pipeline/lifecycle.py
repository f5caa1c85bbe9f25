from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Any

from .models import (
    COMPOSABLE_TIERS,
    ClassificationDecision,
    ClassificationState,
    DeduplicationState,
    InvalidTransitionError,
    Report,
)
from .utils import utc_now

# Report fields that may appear in an update patch. Everything else is set at creation.
MUTABLE_FIELDS = frozenset(
    {
        "source_references",
        "deduplication_state",
        "duplicate_of",
        "classification_state",
        "tier",
        "traits",
        "updated_at",
    }
)

CLASSIFICATION_FIELDS = frozenset({"classification_state", "tier", "traits"})
DEDUPLICATION_FIELDS = frozenset({"deduplication_state", "duplicate_of"})


def is_eligible_for_composition(report: Report) -> bool:
    return (
        report.deduplication_state is not DeduplicationState.DUPLICATE
        and report.classification_state is ClassificationState.CLASSIFIED
        and report.tier in COMPOSABLE_TIERS
    )


def is_pending_classification(report: Report) -> bool:
    return (
        report.classification_state is ClassificationState.PENDING
        and report.deduplication_state is not DeduplicationState.DUPLICATE
    )


def mark_unique(report: Report, now: datetime | None = None) -> dict[str, Any]:
    if report.deduplication_state is not DeduplicationState.PENDING:
        raise InvalidTransitionError(report.id, f"already {report.deduplication_state.value}")
    return {
        "deduplication_state": DeduplicationState.UNIQUE,
        "updated_at": now or utc_now(),
    }


def mark_duplicate(report: Report, canonical_id: str, now: datetime | None = None) -> dict[str, Any]:
    if report.deduplication_state is not DeduplicationState.PENDING:
        raise InvalidTransitionError(report.id, f"already {report.deduplication_state.value}")
    if not canonical_id or canonical_id == report.id:
        raise InvalidTransitionError(report.id, "cannot be a duplicate of itself")
    return {
        "deduplication_state": DeduplicationState.DUPLICATE,
        "duplicate_of": canonical_id,
        "updated_at": now or utc_now(),
    }


def classify(report: Report, decision: ClassificationDecision, now: datetime | None = None) -> dict[str, Any]:
    """Patch moving ``report`` to CLASSIFIED; tier, traits and state travel together."""
    if report.classification_state is not ClassificationState.PENDING:
        raise InvalidTransitionError(report.id, "already classified")
    if report.deduplication_state is DeduplicationState.DUPLICATE:
        raise InvalidTransitionError(report.id, "duplicates are never classified")
    return {
        "classification_state": ClassificationState.CLASSIFIED,
        "tier": decision.tier,
        "traits": decision.traits,
        "updated_at": now or utc_now(),
    }


def apply_patch(report: Report, patch: dict[str, Any]) -> Report:
    """Return a new Report with ``patch`` applied; the result is fully re-validated."""
    unknown = set(patch) - MUTABLE_FIELDS
    if unknown:
        raise InvalidTransitionError(report.id, f"immutable field(s) in patch: {sorted(unknown)}")
    if report.classification_state is ClassificationState.CLASSIFIED and CLASSIFICATION_FIELDS & set(patch):
        raise InvalidTransitionError(report.id, "classification is final once CLASSIFIED")
    if report.deduplication_state is not DeduplicationState.PENDING and DEDUPLICATION_FIELDS & set(patch):
        raise InvalidTransitionError(report.id, f"deduplication is final once {report.deduplication_state.value}")
    return dataclasses.replace(report, **patch)
