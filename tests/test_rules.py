import pytest

from models import ApprovalTask, CompanyRuleConfig, RuleMode, TaskStatus
from rules import OutcomeKind, approval_percentage, cap_level, evaluate


def task(id, level, status=TaskStatus.APPROVED, approver_id=None):
    return ApprovalTask(id=id, expense_id=1, approver_id=approver_id or 100 + id, level=level, status=status)


def config(mode, threshold=60, specific=()):
    return CompanyRuleConfig(approval_rules=mode, percentage_threshold=threshold, specific_approvers=list(specific))


def test_two_of_three_meets_sixty_percent():
    tasks = [task(1, 1), task(2, 2, TaskStatus.PENDING), task(3, 3)]
    outcome = evaluate(config(RuleMode.PERCENTAGE, 60), tasks, tasks[2])
    assert outcome.kind == OutcomeKind.FINAL_APPROVE
    assert outcome.approves


def test_one_of_three_below_threshold_advances():
    tasks = [task(1, 1), task(2, 2, TaskStatus.REJECTED), task(3, 3, TaskStatus.REJECTED)]
    outcome = evaluate(config(RuleMode.PERCENTAGE, 60), tasks, tasks[0])
    assert outcome.kind == OutcomeKind.ADVANCE
    assert outcome.next_level == 2
    assert not outcome.approves


def test_threshold_tie_counts_as_satisfied():
    tasks = [task(1, 1), task(2, 2, TaskStatus.PENDING)]
    outcome = evaluate(config(RuleMode.PERCENTAGE, 50), tasks, tasks[0])
    assert outcome.kind == OutcomeKind.FINAL_APPROVE


def test_zero_threshold_approves_after_one_approval():
    tasks = [task(1, 1), task(2, 2, TaskStatus.REJECTED), task(3, 3, TaskStatus.REJECTED)]
    outcome = evaluate(config(RuleMode.PERCENTAGE, 0), tasks, tasks[0])
    assert outcome.kind == OutcomeKind.FINAL_APPROVE


def test_specific_approver_short_circuits():
    tasks = [task(1, 1, TaskStatus.REJECTED), task(2, 2, approver_id=7)]
    outcome = evaluate(config(RuleMode.SPECIFIC, 100, specific=[7]), tasks, tasks[1])
    assert outcome.kind == OutcomeKind.FINAL_APPROVE
    assert outcome.reason == "specific approver approved"


def test_specific_mode_ignores_percentage():
    # 100% approved but the approver is not designated
    acting = task(1, 1, approver_id=5)
    outcome = evaluate(config(RuleMode.SPECIFIC, 0, specific=[7]), [acting], acting)
    assert outcome.kind == OutcomeKind.ADVANCE
    assert outcome.next_level == 2


def test_percentage_mode_ignores_specific_list():
    tasks = [task(1, 1, TaskStatus.REJECTED), task(2, 2, approver_id=7)]
    outcome = evaluate(config(RuleMode.PERCENTAGE, 100, specific=[7]), tasks, tasks[1])
    assert outcome.kind == OutcomeKind.ADVANCE
    assert outcome.next_level == 3


def test_hybrid_accepts_either_rule():
    acting = task(1, 1, approver_id=7)
    assert evaluate(config(RuleMode.HYBRID, 100, specific=[7]), [acting], acting).kind == OutcomeKind.FINAL_APPROVE
    other = task(2, 1, approver_id=8)
    assert evaluate(config(RuleMode.HYBRID, 100, specific=[7]), [other], other).kind == OutcomeKind.FINAL_APPROVE


def test_hybrid_falls_back_at_cap_level():
    tasks = [task(1, 1, TaskStatus.REJECTED), task(2, 2)]
    outcome = evaluate(config(RuleMode.HYBRID, 100), tasks, tasks[1])
    assert outcome.kind == OutcomeKind.FALLBACK_APPROVE
    assert outcome.next_level is None
    assert outcome.approves


def test_percentage_falls_back_at_level_three():
    tasks = [task(1, 1, TaskStatus.REJECTED), task(2, 2, TaskStatus.REJECTED), task(3, 3)]
    outcome = evaluate(config(RuleMode.PERCENTAGE, 90), tasks, tasks[2])
    assert outcome.kind == OutcomeKind.FALLBACK_APPROVE


def test_acting_task_counts_even_if_missing_or_stale():
    stale = task(1, 1, TaskStatus.PENDING)
    acting = task(1, 1)
    other = task(2, 2, TaskStatus.PENDING)
    # the stale pending copy of the acting task is replaced, giving 1 of 2
    outcome = evaluate(config(RuleMode.PERCENTAGE, 50), [stale, other], acting)
    assert outcome.kind == OutcomeKind.FINAL_APPROVE
    assert evaluate(config(RuleMode.PERCENTAGE, 100), [], acting).kind == OutcomeKind.FINAL_APPROVE


def test_only_approved_tasks_are_evaluated():
    pending = task(1, 1, TaskStatus.PENDING)
    with pytest.raises(ValueError):
        evaluate(config(RuleMode.PERCENTAGE), [pending], pending)


def test_cap_level_per_mode():
    assert cap_level(RuleMode.PERCENTAGE) == 3
    assert cap_level(RuleMode.SPECIFIC) == 2
    assert cap_level(RuleMode.HYBRID) == 2


def test_approval_percentage():
    assert approval_percentage([]) == 0.0
    assert approval_percentage([task(1, 1), task(2, 2, TaskStatus.PENDING)]) == 50.0


def test_threshold_must_be_a_percentage():
    with pytest.raises(ValueError):
        CompanyRuleConfig(approval_rules=RuleMode.PERCENTAGE, percentage_threshold=120)
