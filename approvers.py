"""Directory lookups that decide who approves an expense next."""
import logging
from typing import Optional

from sqlmodel import Session, select

from models import CompanyRuleConfig, Role, RuleMode, User

logger = logging.getLogger(__name__)


def find_user(session: Session, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    return session.get(User, user_id)


def find_active_by_role(session: Session, company_id: int, role: Role) -> Optional[User]:
    return session.exec(
        select(User)
        .where(User.company_id == company_id)
        .where(User.role == role)
        .where(User.is_active == True)  # noqa: E712
        .order_by(User.id)
    ).first()


def submission_approver(session: Session, employee: User) -> Optional[User]:
    """The employee's direct manager, who always takes level 1."""
    manager = find_user(session, employee.manager_id)
    if manager is None or not manager.is_active:
        return None
    return manager


def resolve_next_approver(session: Session, config: CompanyRuleConfig, company_id: int, level: int) -> Optional[User]:
    """Pick the approver for ``level``; None means the chain is exhausted.

    In specific mode a listed user who is missing, inactive or belongs to
    another company is not replaced by the default hierarchy: the level
    resolves to nobody, which the workflow treats as a configuration gap.
    """
    if config.approval_rules == RuleMode.SPECIFIC and len(config.specific_approvers) >= level:
        user_id = config.specific_approvers[level - 1]
        user = find_user(session, user_id)
        if user is None or not user.is_active or user.company_id != company_id:
            logger.warning(f"Designated approver {user_id} for level {level} is not an active user of company {company_id}")
            return None
        return user

    # default hierarchy: employee -> manager -> admin
    role = Role.MANAGER if level == 2 else Role.ADMIN
    return find_active_by_role(session, company_id, role)
