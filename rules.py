"""Rule evaluation after an approval.

``evaluate`` is a pure function: it only looks at the company's rule config and
the task list it is handed, so callers must pass a freshly read task set.
"""
import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from models import ApprovalTask, CompanyRuleConfig, RuleMode, TaskStatus


class OutcomeKind(enum.Enum):
    FINAL_APPROVE = "final_approve"
    ADVANCE = "advance"
    FALLBACK_APPROVE = "fallback_approve"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    next_level: Optional[int] = None
    reason: str = ""

    @property
    def approves(self) -> bool:
        return self.kind in (OutcomeKind.FINAL_APPROVE, OutcomeKind.FALLBACK_APPROVE)


def cap_level(mode: RuleMode) -> int:
    """Number of levels a chain may reach before it falls back to approval."""
    if mode == RuleMode.PERCENTAGE:
        return 3
    if mode in (RuleMode.SPECIFIC, RuleMode.HYBRID):
        return 2
    raise ValueError(f"unknown rule mode: {mode!r}")


def approval_percentage(tasks: Iterable[ApprovalTask]) -> float:
    tasks = list(tasks)
    if not tasks:
        return 0.0
    approved = len([t for t in tasks if t.status == TaskStatus.APPROVED])
    return approved / len(tasks) * 100


def evaluate(config: CompanyRuleConfig, tasks: Iterable[ApprovalTask], acting: ApprovalTask) -> Outcome:
    if acting.status != TaskStatus.APPROVED:
        raise ValueError(f"task {acting.id} is {acting.status.value}, only approved tasks are evaluated")

    # the acting task always counts, with its decided status
    tasks = [t for t in tasks if t is not acting and (acting.id is None or t.id != acting.id)]
    tasks.append(acting)
    mode = config.approval_rules

    if mode in (RuleMode.SPECIFIC, RuleMode.HYBRID):
        if acting.approver_id in config.specific_approvers:
            return Outcome(OutcomeKind.FINAL_APPROVE, reason="specific approver approved")

    if mode in (RuleMode.PERCENTAGE, RuleMode.HYBRID):
        pct = approval_percentage(tasks)
        if pct >= config.percentage_threshold:
            return Outcome(
                OutcomeKind.FINAL_APPROVE,
                reason=f"{pct:.1f}% approvals >= {config.percentage_threshold}%",
            )

    if acting.level >= cap_level(mode):
        return Outcome(OutcomeKind.FALLBACK_APPROVE, reason=f"level {acting.level} is the last level")
    return Outcome(OutcomeKind.ADVANCE, next_level=acting.level + 1, reason="moved to next approver")
