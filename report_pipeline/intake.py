from __future__ import annotations

import logging
from collections.abc import Iterable

from .admission import Thresholds
from .models import RawCandidate

log = logging.getLogger(__name__)


def has_novel_source(candidate: RawCandidate, seen_sources: set[str]) -> bool:
    return any(source_id not in seen_sources for source_id in candidate.source_ids)


def filter_candidates(
    candidates: Iterable[RawCandidate],
    limits: Thresholds,
    seen_sources: set[str],
) -> list[RawCandidate]:
    """Pick at most ``limits.max_intake`` candidates, strongest evidence first.

    A candidate is kept when it has at least ``limits.min_evidence`` sources and at least
    one of them is not in ``seen_sources``. Ties keep their input order.
    """
    candidates = list(candidates)
    weighted = [c for c in candidates if c.evidence_weight >= limits.min_evidence]
    novel = [c for c in weighted if has_novel_source(c, seen_sources)]
    # sorted() is stable, so equal weights keep their input order.
    ranked = sorted(novel, key=lambda c: c.evidence_weight, reverse=True)
    selected = ranked[: limits.max_intake]
    log.debug(
        "Intake: %d candidate(s), %d above evidence floor %d, %d novel, %d selected.",
        len(candidates),
        len(weighted),
        limits.min_evidence,
        len(novel),
        len(selected),
    )
    return selected
