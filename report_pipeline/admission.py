from __future__ import annotations

from dataclasses import dataclass

from .config import DAILY_REPORT_TARGET


@dataclass(frozen=True)
class Thresholds:
    min_evidence: int
    max_intake: int


# (lowest remaining slots, thresholds), checked top-down.
_ADMISSION_BANDS: tuple[tuple[int, Thresholds], ...] = (
    (10, Thresholds(min_evidence=8, max_intake=3)),
    (6, Thresholds(min_evidence=12, max_intake=2)),
    (3, Thresholds(min_evidence=16, max_intake=1)),
    (1, Thresholds(min_evidence=22, max_intake=1)),
)
_QUOTA_MET = Thresholds(min_evidence=30, max_intake=1)


def thresholds(accepted_today: int, daily_target: int = DAILY_REPORT_TARGET) -> Thresholds:
    """Intake strictness for the rest of the day.

    The fewer slots remain under ``daily_target``, the more sources a candidate needs and
    the fewer candidates one run may admit. Once the quota is met only heavily corroborated
    events get through, one per run.
    """
    remaining = daily_target - accepted_today
    for floor, band in _ADMISSION_BANDS:
        if remaining >= floor:
            return band
    return _QUOTA_MET
