import pytest

from support_inbox.conversations.models import (
    ClassificationResult,
    ComplaintType,
    Priority,
    TriageState,
    Urgency,
)
from support_inbox.triage import build_override, merge_triage


def _result(
    priority=Priority.MEDIUM,
    urgency=Urgency.ANYTIME,
    is_complaint=False,
    complaint_type=None,
):
    return ClassificationResult(
        priority=priority,
        urgency=urgency,
        is_complaint=is_complaint,
        complaint_type=complaint_type,
        confidence=0.5,
    )


@pytest.mark.parametrize(
    ("current", "classified", "expected"),
    [
        (Priority.MEDIUM, Priority.HIGH, Priority.HIGH),
        (Priority.LOW, Priority.MEDIUM, Priority.MEDIUM),
        (Priority.LOW, Priority.HIGH, Priority.HIGH),
        (Priority.HIGH, Priority.MEDIUM, None),
        (Priority.MEDIUM, Priority.LOW, None),
        (Priority.MEDIUM, Priority.MEDIUM, None),
    ],
)
def test_priority_only_escalates(current, classified, expected):
    update = merge_triage(TriageState(priority=current), _result(priority=classified))

    assert update.priority is expected


def test_urgency_moves_only_to_higher_rank():
    assert merge_triage(TriageState(urgency=Urgency.TODAY), _result(urgency=Urgency.NOW)).urgency is Urgency.NOW
    assert merge_triage(TriageState(urgency=Urgency.NOW), _result(urgency=Urgency.TODAY)).urgency is None
    assert merge_triage(TriageState(urgency=Urgency.TODAY), _result(urgency=Urgency.TODAY)).urgency is None


def test_complaint_flag_is_latched():
    cleared = merge_triage(
        TriageState(is_complaint=True, complaint_type=ComplaintType.DELAY),
        _result(is_complaint=False),
    )
    assert not cleared

    retyped = merge_triage(
        TriageState(is_complaint=True, complaint_type=ComplaintType.DELAY),
        _result(is_complaint=True, complaint_type=ComplaintType.BILLING),
    )
    assert "complaint_type" not in retyped.changes()


def test_new_complaint_sets_flag_and_type():
    update = merge_triage(
        TriageState(),
        _result(priority=Priority.HIGH, is_complaint=True, complaint_type=ComplaintType.BILLING),
    )

    assert update.changes() == {
        "priority": Priority.HIGH,
        "is_complaint": True,
        "complaint_type": ComplaintType.BILLING,
    }


def test_neutral_result_produces_empty_update():
    update = merge_triage(TriageState(), _result())

    assert not update
    assert update.changes() == {}


def test_override_may_lower_values():
    update = build_override(priority=Priority.LOW, urgency=Urgency.ANYTIME)
    state = update.apply(TriageState(priority=Priority.HIGH, urgency=Urgency.NOW))

    assert state.priority is Priority.LOW
    assert state.urgency is Urgency.ANYTIME


def test_override_clearing_complaint_clears_type():
    update = build_override(is_complaint=False)

    assert update.changes() == {"is_complaint": False, "complaint_type": None}


def test_override_explicit_complaint_type_wins():
    update = build_override(is_complaint=False, complaint_type=ComplaintType.OTHER)

    assert update.changes()["complaint_type"] is ComplaintType.OTHER


def test_empty_override_is_falsy():
    assert not build_override()


@pytest.mark.parametrize(
    "state",
    [
        TriageState(),
        TriageState(priority=Priority.LOW),
        TriageState(priority=Priority.HIGH, urgency=Urgency.TODAY),
        TriageState(is_complaint=True, complaint_type=ComplaintType.DELAY),
    ],
)
@pytest.mark.parametrize(
    "classified",
    [
        _result(),
        _result(urgency=Urgency.THIS_WEEK),
        _result(priority=Priority.HIGH, urgency=Urgency.NOW),
        _result(priority=Priority.HIGH, is_complaint=True, complaint_type=ComplaintType.BILLING),
    ],
)
def test_merging_same_result_twice_is_a_no_op(state, classified):
    merged = merge_triage(state, classified).apply(state)

    assert not merge_triage(merged, classified)
    assert merged.priority.rank >= state.priority.rank
    assert merged.urgency.rank >= state.urgency.rank
    assert merged.is_complaint >= state.is_complaint


def test_every_level_has_a_rank():
    assert sorted(p.rank for p in Priority) == [0, 1, 2]
    assert sorted(u.rank for u in Urgency) == [0, 1, 2, 3]
