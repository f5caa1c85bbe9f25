##########################################################################################
#
# Script name: test_admission.py
#
# Description: Daily-quota admission thresholds.
#
##########################################################################################

import pytest

from report_pipeline.admission import Thresholds, thresholds


@pytest.mark.parametrize(
    ('accepted_today', 'expected'),
    [
        (0, Thresholds(min_evidence=8, max_intake=3)),
        (4, Thresholds(min_evidence=8, max_intake=3)),
        (5, Thresholds(min_evidence=12, max_intake=2)),
        (8, Thresholds(min_evidence=12, max_intake=2)),
        (9, Thresholds(min_evidence=16, max_intake=1)),
        (11, Thresholds(min_evidence=16, max_intake=1)),
        (12, Thresholds(min_evidence=22, max_intake=1)),
        (13, Thresholds(min_evidence=22, max_intake=1)),
        (14, Thresholds(min_evidence=30, max_intake=1)),
    ],
)
def test_thresholds_follow_remaining_quota_bands(accepted_today: int, expected: Thresholds) -> None:
    assert thresholds(accepted_today, daily_target=14) == expected


def test_quota_met_or_exceeded_is_breaking_news_only() -> None:
    for accepted_today in (14, 15, 40):
        limits = thresholds(accepted_today, daily_target=14)
        assert limits.max_intake == 1
        assert limits.min_evidence == 30


def test_thresholds_tighten_monotonically_through_the_day() -> None:
    previous = thresholds(0, daily_target=20)
    for accepted_today in range(1, 30):
        current = thresholds(accepted_today, daily_target=20)
        assert current.max_intake <= previous.max_intake
        assert current.min_evidence >= previous.min_evidence
        previous = current


def test_default_target_is_used_when_not_given() -> None:
    assert thresholds(0) == Thresholds(min_evidence=8, max_intake=3)
    assert thresholds(100) == Thresholds(min_evidence=30, max_intake=1)
