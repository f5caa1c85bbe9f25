##########################################################################################
#
# Script name: test_lifecycle.py
#
# Description: Report state tracks, transitions and composition eligibility.
#
##########################################################################################

import dataclasses

import pytest

from fakes import NOW, make_report

from report_pipeline.lifecycle import (
    apply_patch,
    classify,
    is_eligible_for_composition,
    mark_duplicate,
    mark_unique,
)
from report_pipeline.models import (
    ClassificationDecision,
    ClassificationState,
    DeduplicationState,
    InvalidTransitionError,
    ReportTraits,
    Tier,
    ValidationError,
)


def _classified(report, tier: Tier):
    return apply_patch(report, classify(report, ClassificationDecision(tier=tier), NOW))


def test_new_report_starts_pending_on_both_tracks() -> None:
    report = make_report()
    assert report.deduplication_state is DeduplicationState.PENDING
    assert report.classification_state is ClassificationState.PENDING
    assert report.tier is None
    assert report.traits is None


def test_classify_sets_tier_traits_and_state_together() -> None:
    report = make_report()
    decision = ClassificationDecision(tier=Tier.NICHE, traits=ReportTraits(smart=True), reason='specialist')
    updated = apply_patch(report, classify(report, decision, NOW))
    assert updated.classification_state is ClassificationState.CLASSIFIED
    assert updated.tier is Tier.NICHE
    assert updated.traits == ReportTraits(smart=True)
    assert updated.updated_at == NOW
    assert report.classification_state is ClassificationState.PENDING


def test_classification_happens_at_most_once() -> None:
    classified = _classified(make_report(), Tier.GENERAL)
    with pytest.raises(InvalidTransitionError):
        classify(classified, ClassificationDecision(tier=Tier.NICHE), NOW)


def test_duplicates_are_never_classified() -> None:
    report = make_report()
    duplicate = apply_patch(report, mark_duplicate(report, 'canonical', NOW))
    with pytest.raises(InvalidTransitionError):
        classify(duplicate, ClassificationDecision(tier=Tier.GENERAL), NOW)


def test_deduplication_transitions_only_from_pending() -> None:
    report = make_report()
    unique = apply_patch(report, mark_unique(report, NOW))
    assert unique.deduplication_state is DeduplicationState.UNIQUE
    with pytest.raises(InvalidTransitionError):
        mark_duplicate(unique, 'other', NOW)
    with pytest.raises(InvalidTransitionError):
        mark_duplicate(report, report.id, NOW)


def test_tier_cannot_be_set_while_pending() -> None:
    with pytest.raises(ValidationError):
        make_report(tier=Tier.GENERAL)
    with pytest.raises(ValidationError):
        make_report(classification_state=ClassificationState.CLASSIFIED)


def test_immutable_fields_are_rejected_in_patches() -> None:
    with pytest.raises(InvalidTransitionError):
        apply_patch(make_report(), {'core': 'rewritten'})


def test_classified_report_cannot_be_retiered_or_reverted() -> None:
    classified = _classified(make_report(), Tier.GENERAL)
    with pytest.raises(InvalidTransitionError):
        apply_patch(classified, {'tier': Tier.OFF_TOPIC})
    with pytest.raises(InvalidTransitionError):
        apply_patch(classified, {'classification_state': ClassificationState.PENDING, 'tier': None, 'traits': None})
    assert classified.tier is Tier.GENERAL


def test_settled_deduplication_state_cannot_be_patched() -> None:
    report = make_report()
    unique = apply_patch(report, mark_unique(report, NOW))
    with pytest.raises(InvalidTransitionError):
        apply_patch(unique, {'deduplication_state': DeduplicationState.PENDING})
    duplicate = apply_patch(report, mark_duplicate(report, 'canonical', NOW))
    with pytest.raises(InvalidTransitionError):
        apply_patch(duplicate, {'duplicate_of': 'someone-else'})


def test_settled_reports_still_accept_new_source_references() -> None:
    report = _classified(make_report(), Tier.GENERAL)
    report = apply_patch(report, mark_unique(report, NOW))
    extended = apply_patch(report, {'source_references': [*report.source_references, 'late-source']})
    assert extended.source_references[-1] == 'late-source'
    assert extended.tier is Tier.GENERAL


def test_reports_cannot_be_mutated_in_place() -> None:
    report = make_report()
    with pytest.raises(dataclasses.FrozenInstanceError):
        report.core = 'rewritten'
    assert isinstance(report.categories, tuple)
    assert isinstance(report.source_references, tuple)
    assert isinstance(report.angles, tuple)


@pytest.mark.parametrize(
    ('dedup', 'tier', 'eligible'),
    [
        (DeduplicationState.PENDING, Tier.GENERAL, True),
        (DeduplicationState.UNIQUE, Tier.GENERAL, True),
        (DeduplicationState.UNIQUE, Tier.NICHE, True),
        (DeduplicationState.UNIQUE, Tier.OFF_TOPIC, False),
        (DeduplicationState.DUPLICATE, None, False),
        (DeduplicationState.UNIQUE, None, False),
    ],
)
def test_composition_eligibility(dedup, tier, eligible) -> None:
    report = make_report()
    if tier is not None:
        report = _classified(report, tier)
    if dedup is DeduplicationState.UNIQUE:
        report = apply_patch(report, mark_unique(report, NOW))
    elif dedup is DeduplicationState.DUPLICATE:
        report = apply_patch(report, mark_duplicate(report, 'canonical', NOW))
    assert is_eligible_for_composition(report) is eligible


def test_report_requires_categories_and_core() -> None:
    with pytest.raises(ValidationError):
        make_report(categories=[])
    with pytest.raises(ValidationError):
        make_report(core='   ')
    report = make_report(categories=['economy', 'world'])
    assert report.primary_category == 'ECONOMY'
