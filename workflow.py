"""Expense state controller.

Every public function here is one unit of work on the session it is given: it
commits on success and rolls back on any error, so the acting task, the expense
and the next task are written together or not at all.
"""
import logging
from typing import List, Optional

from sqlmodel import Session

from approvers import find_user, resolve_next_approver, submission_approver
from config import settings
from currency import convert_currency
from errors import ConfigurationGapError, ConflictError, InvalidInputError, NotFoundError, UnauthorizedError
from expenses import parse_expense_date, validate_expense_fields
from models import (
    ApprovalTask, Company, CompanyRuleConfig, Decision, Expense, ExpenseStatus, TaskStatus, User, utcnow,
)
from rules import Outcome, OutcomeKind, cap_level, evaluate
from tasks import decide_task, open_task, tasks_for_expense

logger = logging.getLogger(__name__)


def get_rule_config(session: Session, company_id: int) -> CompanyRuleConfig:
    company = session.get(Company, company_id)
    if not company:
        raise NotFoundError('company not found')
    return company.rule_config(settings.DEFAULT_PERCENTAGE_THRESHOLD)


def _approval_entry(task: ApprovalTask) -> dict:
    return {
        "user_id": task.approver_id,
        "level": task.level,
        "approved_at": (task.decided_at or utcnow()).isoformat(),
        "comments": task.comments,
    }


def _rejection_entry(task: ApprovalTask) -> dict:
    return {
        "user_id": task.approver_id,
        "level": task.level,
        "rejected_at": (task.decided_at or utcnow()).isoformat(),
        "reason": task.rejection_reason,
    }


def submit_expense(session: Session, employee_id: int, company_id: int, amount: float, currency: str, category: str,
                   description: str, expense_date=None, tags: Optional[List[str]] = None,
                   converter=convert_currency) -> Expense:
    validate_expense_fields(amount=amount, currency=currency, category=category, description=description)
    expense_date = parse_expense_date(expense_date)
    currency = currency.strip().upper()
    try:
        employee = session.get(User, employee_id)
        if not employee:
            raise NotFoundError('employee not found')
        company = session.get(Company, company_id)
        if not company:
            raise NotFoundError('company not found')
        if employee.company_id != company.id:
            raise InvalidInputError('employee does not belong to this company')

        converted, rate = converter(amount, currency, company.currency)
        config = company.rule_config(settings.DEFAULT_PERCENTAGE_THRESHOLD)

        expense = Expense(
            employee_id=employee.id,
            company_id=company.id,
            amount=amount,
            currency=currency,
            converted_amount=converted,
            company_currency=company.currency,
            exchange_rate=rate,
            category=category,
            description=description,
            expense_date=expense_date,
            tags=list(tags or []),
            total_approval_levels=cap_level(config.approval_rules),
        )
        session.add(expense)
        session.flush()

        manager = submission_approver(session, employee)
        if manager:
            open_task(session, expense.id, manager.id, 1, settings.APPROVAL_DUE_DAYS)
            expense.current_approver_id = manager.id
        else:
            logger.warning(f"Expense {expense.id} has no resolvable manager for employee {employee.id}; left pending without approver")

        session.add(expense)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"Submitted expense {expense.id}: {amount} {currency} ({converted:.2f} {company.currency})")
    return expense


def _finalize(expense: Expense, outcome: Outcome) -> None:
    expense.status = ExpenseStatus.APPROVED
    expense.current_approver_id = None
    if outcome.kind == OutcomeKind.FALLBACK_APPROVE:
        logger.warning(f"Expense {expense.id} approved by fallback: {outcome.reason}")
    else:
        logger.info(f"Expense {expense.id} approved: {outcome.reason}")


def _apply_outcome(session: Session, expense: Expense, config: CompanyRuleConfig, outcome: Outcome) -> Outcome:
    if outcome.kind != OutcomeKind.ADVANCE:
        _finalize(expense, outcome)
        return outcome

    level = outcome.next_level
    approver = resolve_next_approver(session, config, expense.company_id, level)
    if approver is None:
        if settings.STRICT_ESCALATION:
            raise ConfigurationGapError(f'no approver can be resolved for level {level} of expense {expense.id}')
        # chain cannot continue: approve instead of stalling
        outcome = Outcome(OutcomeKind.FALLBACK_APPROVE, reason=f"no approver found for level {level}")
        _finalize(expense, outcome)
        return outcome

    open_task(session, expense.id, approver.id, level, settings.APPROVAL_DUE_DAYS)
    expense.status = ExpenseStatus.PENDING
    expense.current_approver_id = approver.id
    expense.approval_level = level
    logger.info(f"Expense {expense.id} moved to level {level} (approver {approver.id})")
    return outcome


def _approve(session: Session, expense: Expense, task: ApprovalTask, comment) -> Outcome:
    decide_task(session, task, TaskStatus.APPROVED, comments=comment)
    expense.approved_by = [*expense.approved_by, _approval_entry(task)]

    config = get_rule_config(session, expense.company_id)
    outcome = evaluate(config, tasks_for_expense(session, expense.id), task)
    return _apply_outcome(session, expense, config, outcome)


def _reject(session: Session, expense: Expense, task: ApprovalTask, comment, reason) -> None:
    decide_task(session, task, TaskStatus.REJECTED, comments=comment, rejection_reason=reason)
    expense.status = ExpenseStatus.REJECTED
    expense.current_approver_id = None
    expense.rejection_reason = reason
    expense.rejected_by = [*expense.rejected_by, _rejection_entry(task)]
    logger.info(f"Expense {expense.id} rejected at level {task.level} by user {task.approver_id}")


def record_decision(session: Session, task_id: int, acting_user_id: int, decision, comment: Optional[str] = None,
                    rejection_reason: Optional[str] = None) -> Expense:
    """Apply an approve/reject decision on a pending approval task.

    Raises NotFoundError, UnauthorizedError (not the task's approver),
    ConflictError (task already decided), InvalidInputError (bad decision or a
    rejection without reason) and, with STRICT_ESCALATION, ConfigurationGapError.
    """
    try:
        decision = Decision(decision)
    except ValueError:
        raise InvalidInputError(f'unknown decision: {decision!r}')
    if decision == Decision.REJECT and not (rejection_reason or '').strip():
        raise InvalidInputError('rejection reason is required')

    try:
        task = session.get(ApprovalTask, task_id, populate_existing=True, with_for_update=True)
        if not task:
            raise NotFoundError('approval task not found')
        if task.approver_id != acting_user_id:
            raise UnauthorizedError('you are not the approver of this task')
        if task.status != TaskStatus.PENDING:
            raise ConflictError('this approval has already been processed')

        expense = session.get(Expense, task.expense_id, populate_existing=True, with_for_update=True)
        if not expense:
            raise NotFoundError('expense not found')
        if expense.is_terminal:
            raise ConflictError(f'expense {expense.id} is already {expense.status.value}')

        if decision == Decision.REJECT:
            _reject(session, expense, task, comment, rejection_reason.strip())
        else:
            _approve(session, expense, task, comment)

        expense.updated_at = utcnow()
        session.add(expense)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return expense


def _backfill_history(expense: Expense, tasks: List[ApprovalTask]) -> None:
    approved_levels = {e.get("level") for e in expense.approved_by}
    missing = [_approval_entry(t) for t in tasks if t.status == TaskStatus.APPROVED and t.level not in approved_levels]
    if missing:
        expense.approved_by = [*expense.approved_by, *missing]
    rejected_levels = {e.get("level") for e in expense.rejected_by}
    missing = [_rejection_entry(t) for t in tasks if t.status == TaskStatus.REJECTED and t.level not in rejected_levels]
    if missing:
        expense.rejected_by = [*expense.rejected_by, *missing]


def reconcile_expense(session: Session, expense_id: int) -> Expense:
    """Re-derive an expense's workflow state from its approval tasks.

    Safe to run repeatedly; a consistent expense is left unchanged.
    """
    try:
        expense = session.get(Expense, expense_id, populate_existing=True, with_for_update=True)
        if not expense:
            raise NotFoundError('expense not found')
        tasks = tasks_for_expense(session, expense.id)
        _backfill_history(expense, tasks)

        rejected = [t for t in tasks if t.status == TaskStatus.REJECTED]
        pending = [t for t in tasks if t.status == TaskStatus.PENDING]
        if rejected:
            expense.status = ExpenseStatus.REJECTED
            expense.current_approver_id = None
            expense.rejection_reason = expense.rejection_reason or rejected[0].rejection_reason
        elif pending:
            expense.status = ExpenseStatus.PENDING
            expense.current_approver_id = pending[0].approver_id
            expense.approval_level = pending[0].level
        elif not tasks:
            employee = find_user(session, expense.employee_id)
            manager = submission_approver(session, employee) if employee else None
            if manager and not expense.is_terminal:
                open_task(session, expense.id, manager.id, 1, settings.APPROVAL_DUE_DAYS)
                expense.current_approver_id = manager.id
                expense.approval_level = 1
        elif expense.status != ExpenseStatus.APPROVED:
            config = get_rule_config(session, expense.company_id)
            outcome = evaluate(config, tasks, tasks[-1])
            _apply_outcome(session, expense, config, outcome)

        if session.is_modified(expense):
            expense.updated_at = utcnow()
            session.add(expense)
            logger.info(f"Reconciled expense {expense.id}: {expense.status.value}")
        session.commit()
    except Exception:
        session.rollback()
        raise
    return expense
