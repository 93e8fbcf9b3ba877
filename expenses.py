"""Expense records outside the decision path: validation, lookups and edits."""
import logging
from datetime import date, datetime
from typing import List

from sqlmodel import Session, select

from currency import convert_currency
from errors import InvalidInputError, NotFoundError, UnauthorizedError
from models import CATEGORIES, Company, Expense, ExpenseStatus, Role, User, utcnow

logger = logging.getLogger(__name__)


def parse_expense_date(value) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f'invalid expense date: {value!r}')


def validate_expense_fields(amount=None, currency=None, category=None, description=None, partial=False):
    """Check submitted fields; with ``partial`` only the ones given are checked."""
    if amount is not None or not partial:
        if not isinstance(amount, (int, float)) or isinstance(amount, bool) or amount < 0:
            raise InvalidInputError('amount must be a non-negative number')
    if currency is not None or not partial:
        if not currency or not str(currency).strip():
            raise InvalidInputError('currency is required')
    if category is not None or not partial:
        if category not in CATEGORIES:
            raise InvalidInputError(f'invalid category: {category!r}')
    if description is not None or not partial:
        if not description or not description.strip():
            raise InvalidInputError('description is required')


def _viewer(session: Session, viewer_id: int) -> User:
    viewer = session.get(User, viewer_id)
    if not viewer:
        raise NotFoundError('user not found')
    return viewer


def get_expense(session: Session, expense_id: int, viewer_id: int) -> Expense:
    viewer = _viewer(session, viewer_id)
    expense = session.get(Expense, expense_id)
    if not expense or expense.company_id != viewer.company_id:
        raise NotFoundError('expense not found')
    if viewer.role == Role.EMPLOYEE and expense.employee_id != viewer.id:
        raise UnauthorizedError('access denied')
    return expense


def list_expenses(session: Session, viewer_id: int, status=None, category=None, start_date=None, end_date=None, employee_id=None) -> List[Expense]:
    viewer = _viewer(session, viewer_id)
    query = select(Expense).where(Expense.company_id == viewer.company_id)

    # employees see their own, managers their team, admins everything
    if viewer.role == Role.EMPLOYEE:
        query = query.where(Expense.employee_id == viewer.id)
    elif viewer.role == Role.MANAGER:
        team = session.exec(
            select(User.id).where(User.manager_id == viewer.id).where(User.company_id == viewer.company_id)
        ).all()
        query = query.where(Expense.employee_id.in_([viewer.id, *team]))

    if status:
        try:
            status = ExpenseStatus(status)
        except ValueError:
            raise InvalidInputError(f'invalid status: {status!r}')
        query = query.where(Expense.status == status)
    if category:
        query = query.where(Expense.category == category)
    if employee_id:
        query = query.where(Expense.employee_id == employee_id)
    if start_date:
        query = query.where(Expense.expense_date >= parse_expense_date(start_date))
    if end_date:
        query = query.where(Expense.expense_date <= parse_expense_date(end_date))

    return list(session.exec(query.order_by(Expense.created_at.desc(), Expense.id.desc())).all())


def update_expense(session: Session, expense_id: int, editor_id: int, amount=None, currency=None, category=None,
                   description=None, expense_date=None, tags=None, converter=convert_currency) -> Expense:
    """Edit a pending expense, re-running the conversion when money fields change."""
    validate_expense_fields(amount=amount, currency=currency, category=category, description=description, partial=True)
    try:
        expense = get_expense(session, expense_id, editor_id)
        if expense.status != ExpenseStatus.PENDING:
            raise InvalidInputError('cannot edit approved or rejected expense')

        if amount is not None:
            expense.amount = amount
        if currency is not None:
            expense.currency = currency.upper()
        if category is not None:
            expense.category = category
        if description is not None:
            expense.description = description
        if expense_date is not None:
            expense.expense_date = parse_expense_date(expense_date)
        if tags is not None:
            expense.tags = list(tags)

        if amount is not None or currency is not None:
            company = session.get(Company, expense.company_id)
            expense.converted_amount, expense.exchange_rate = converter(expense.amount, expense.currency, company.currency)
            expense.company_currency = company.currency

        expense.updated_at = utcnow()
        session.add(expense)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"Updated expense {expense.id}")
    return expense
