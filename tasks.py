"""Per-level approval tasks of an expense."""
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from errors import ConflictError, InvalidInputError
from models import ApprovalTask, TaskStatus, utcnow

logger = logging.getLogger(__name__)


def tasks_for_expense(session: Session, expense_id: int) -> List[ApprovalTask]:
    return list(session.exec(
        select(ApprovalTask).where(ApprovalTask.expense_id == expense_id).order_by(ApprovalTask.level)
    ).all())


def pending_task_for_expense(session: Session, expense_id: int) -> Optional[ApprovalTask]:
    return session.exec(
        select(ApprovalTask)
        .where(ApprovalTask.expense_id == expense_id)
        .where(ApprovalTask.status == TaskStatus.PENDING)
    ).first()


def open_task(session: Session, expense_id: int, approver_id: int, level: int, due_days: int = 7) -> ApprovalTask:
    """Create the pending task for ``level``; levels must follow on without gaps."""
    existing = tasks_for_expense(session, expense_id)
    if any(t.status == TaskStatus.PENDING for t in existing):
        raise ConflictError(f"expense {expense_id} already has a pending approval task")
    expected = existing[-1].level + 1 if existing else 1
    if level != expected:
        raise InvalidInputError(f"expense {expense_id} expects level {expected}, got {level}")

    task = ApprovalTask(
        expense_id=expense_id,
        approver_id=approver_id,
        level=level,
        due_date=utcnow() + timedelta(days=due_days),
    )
    session.add(task)
    session.flush()
    logger.info(f"Opened level {level} approval task {task.id} for expense {expense_id} (approver {approver_id})")
    return task


def decide_task(session: Session, task: ApprovalTask, status: TaskStatus, comments=None, rejection_reason=None) -> ApprovalTask:
    """Move ``task`` out of pending exactly once.

    The write is conditional on the stored status still being pending, so of
    two concurrent deciders only one gets a row back; the other sees ConflictError.
    """
    if status == TaskStatus.PENDING:
        raise InvalidInputError("a task can only be decided as approved or rejected")

    result = session.connection().execute(
        update(ApprovalTask)
        .where(ApprovalTask.id == task.id)
        .where(ApprovalTask.status == TaskStatus.PENDING)
        .values(
            status=status,
            comments=comments,
            rejection_reason=rejection_reason,
            decided_at=utcnow(),
        )
    )
    if result.rowcount != 1:
        raise ConflictError(f"approval task {task.id} has already been processed")
    session.refresh(task)
    return task


def list_pending_tasks_for(session: Session, user_id: int) -> List[ApprovalTask]:
    return list(session.exec(
        select(ApprovalTask)
        .where(ApprovalTask.approver_id == user_id)
        .where(ApprovalTask.status == TaskStatus.PENDING)
        .order_by(ApprovalTask.created_at.desc(), ApprovalTask.id.desc())
    ).all())


def get_approval_stats(session: Session, user_id: int) -> Dict[str, int]:
    rows = session.exec(
        select(ApprovalTask.status, func.count(ApprovalTask.id))
        .where(ApprovalTask.approver_id == user_id)
        .group_by(ApprovalTask.status)
    ).all()
    stats = {s.value: 0 for s in TaskStatus}
    for status, count in rows:
        stats[TaskStatus(status).value] = count
    return stats
