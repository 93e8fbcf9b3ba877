import sys
import tempfile
from pathlib import Path
# Add project root to sys.path so imports like 'from workflow import ...' work when this script
# is executed from the scripts/ directory.
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from config import configure_logging
from db import make_engine, init_db, get_session
from models import Company, User, Role, RuleMode
from tasks import list_pending_tasks_for, get_approval_stats
from workflow import submit_expense, record_decision

configure_logging()
engine = make_engine(f"sqlite:///{Path(tempfile.mkdtemp()) / 'smoke.db'}")
init_db(engine)

with get_session(engine) as s:
    print('seed company')
    company = Company(name="Acme Run", country="India", currency="INR", approval_rules=RuleMode.SPECIFIC)
    s.add(company)
    s.commit()
    admin = User(name="Alice", email="alice@acme.run", role=Role.ADMIN, company_id=company.id)
    manager = User(name="Manager Bob", email="bob@acme.run", role=Role.MANAGER, company_id=company.id)
    s.add(admin)
    s.add(manager)
    s.commit()
    cfo = User(name="Cfo Carol", email="carol@acme.run", company_id=company.id)
    employee = User(name="Employee Eve", email="eve@acme.run", company_id=company.id, manager_id=manager.id)
    s.add(cfo)
    s.add(employee)
    s.commit()
    company.specific_approvers = [admin.id, cfo.id]
    s.add(company)
    s.commit()

    print('submit expense (Eve)')
    expense = submit_expense(s, employee.id, company.id, 50.0, "USD", "meals", "Test lunch")
    print(expense.status.value, 'approver', expense.current_approver_id, 'converted', expense.converted_amount)

    for approver in (manager, cfo):
        task = list_pending_tasks_for(s, approver.id)[0]
        print(f'approve level {task.level} ({approver.name})')
        expense = record_decision(s, task.id, approver.id, "approve", comment="ok")
        print(expense.status.value, 'level', expense.approval_level, 'approver', expense.current_approver_id)

    print('stats', get_approval_stats(s, manager.id), get_approval_stats(s, cfo.id))
