import enum
from typing import Optional, List
from datetime import date as dt_date, datetime, timezone

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql.sqltypes import Date

from errors import ConfigurationGapError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands timestamps back without tzinfo; they were written as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def timestamp_column() -> Column:
    return Column(DateTime(timezone=True))


class RuleMode(str, enum.Enum):
    PERCENTAGE = "percentage"
    SPECIFIC = "specific"
    HYBRID = "hybrid"


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class ExpenseStatus(str, enum.Enum):
    PENDING = "pending"
    # representable for multi-branch display, never set by the workflow
    PARTIALLY_APPROVED = "partially_approved"
    APPROVED = "approved"
    REJECTED = "rejected"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


CATEGORIES = (
    "travel",
    "meals",
    "accommodation",
    "transportation",
    "office_supplies",
    "entertainment",
    "utilities",
    "communication",
    "training",
    "other",
)


class CompanyRuleConfig(SQLModel):
    """Approval policy of a company, as the workflow reads it."""

    approval_rules: RuleMode = RuleMode.PERCENTAGE
    percentage_threshold: float = Field(default=60, ge=0, le=100)
    # index i is the designated approver for level i + 1
    specific_approvers: List[int] = Field(default_factory=list)


class Company(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    country: str
    currency: str
    timezone: str = "UTC"

    approval_rules: RuleMode = Field(default=RuleMode.PERCENTAGE)
    percentage_threshold: Optional[float] = None
    specific_approvers: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    require_receipt: bool = False
    max_expense_amount: float = 10000
    is_active: bool = True

    def rule_config(self, default_threshold: float = 60) -> CompanyRuleConfig:
        threshold = default_threshold if self.percentage_threshold is None else self.percentage_threshold
        # table models skip validation, so a bad stored threshold surfaces here
        if not 0 <= threshold <= 100:
            raise ConfigurationGapError(f"company {self.id} has percentage threshold {threshold}, expected 0-100")
        return CompanyRuleConfig(
            approval_rules=self.approval_rules,
            percentage_threshold=threshold,
            specific_approvers=list(self.specific_approvers or []),
        )


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True)
    role: Role = Field(default=Role.EMPLOYEE)
    manager_id: Optional[int] = Field(default=None, foreign_key="user.id")
    company_id: Optional[int] = Field(default=None, foreign_key="company.id", index=True)
    is_active: bool = True


class Expense(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: int = Field(foreign_key="user.id", index=True)
    company_id: int = Field(foreign_key="company.id", index=True)

    amount: float
    currency: str
    converted_amount: float
    company_currency: str
    exchange_rate: float

    category: str
    description: str
    expense_date: Optional[dt_date] = Field(default=None, sa_column=Column(Date))
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_reimbursable: bool = True

    status: ExpenseStatus = Field(default=ExpenseStatus.PENDING, index=True)
    current_approver_id: Optional[int] = Field(default=None, foreign_key="user.id")
    approval_level: int = 1
    total_approval_levels: int = 3
    rejection_reason: Optional[str] = None

    # append-only; always reassign, JSON columns do not track in-place mutation
    approved_by: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    rejected_by: List[dict] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED)


class ApprovalTask(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("expense_id", "level"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    expense_id: int = Field(foreign_key="expense.id", index=True)
    approver_id: int = Field(foreign_key="user.id", index=True)
    level: int

    status: TaskStatus = Field(default=TaskStatus.PENDING, index=True)
    comments: Optional[str] = None
    rejection_reason: Optional[str] = None
    decided_at: Optional[datetime] = Field(default=None, sa_column=timestamp_column())
    due_date: Optional[datetime] = Field(default=None, sa_column=timestamp_column())

    # reminder bookkeeping, maintained outside the workflow
    is_overdue: bool = False
    reminder_sent: bool = False
    last_reminder_sent: Optional[datetime] = Field(default=None, sa_column=timestamp_column())

    created_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())
