from types import SimpleNamespace

import pytest

from config import settings
from db import make_engine, init_db, get_session
from models import Company, Role, RuleMode, User


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    monkeypatch.setattr(settings, "USE_EXTERNAL", False)
    monkeypatch.setattr(settings, "STRICT_ESCALATION", False)
    monkeypatch.setattr(settings, "DEFAULT_PERCENTAGE_THRESHOLD", 60)


@pytest.fixture
def engine(tmp_path):
    # a file database so that several sessions (and threads) can share it
    engine = make_engine(f"sqlite:///{tmp_path / 'expenses.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with get_session(engine) as s:
        yield s


@pytest.fixture
def org(session):
    """Build a company with an admin, a manager and an employee reporting to the manager."""

    def build(approval_rules=RuleMode.PERCENTAGE, percentage_threshold=60, manager_role=Role.MANAGER,
              with_manager=True, currency="INR"):
        company = Company(name="Acme Ltd", country="India", currency=currency,
                          approval_rules=approval_rules, percentage_threshold=percentage_threshold)
        session.add(company)
        session.commit()

        admin = User(name="Alice", email="alice@acme.com", role=Role.ADMIN, company_id=company.id)
        session.add(admin)
        manager = None
        if with_manager:
            manager = User(name="Bob", email="bob@acme.com", role=manager_role, company_id=company.id)
            session.add(manager)
        session.commit()

        employee = User(name="Eve", email="eve@acme.com", role=Role.EMPLOYEE, company_id=company.id,
                        manager_id=manager.id if manager else None)
        session.add(employee)
        session.commit()
        return SimpleNamespace(company=company, admin=admin, manager=manager, employee=employee)

    return build


@pytest.fixture
def add_user(session):
    def add(company, name, role=Role.EMPLOYEE, manager=None, is_active=True):
        user = User(name=name, email=f"{name.lower()}@acme.com", role=role, company_id=company.id,
                    manager_id=manager.id if manager else None, is_active=is_active)
        session.add(user)
        session.commit()
        return user

    return add
