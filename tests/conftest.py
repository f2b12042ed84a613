"""
Shared fixtures for the job cost forecasting tests.

The sample job (amounts in cents):

SOV
    L1  03-100  Building A / Concrete    cost 4,000,000  value 5,000,000
    L2  03-200  Building A / Concrete    cost 4,000,000  value 5,000,000
    L3  26-100  Building A / Electrical  cost 3,000,000  value 4,000,000
    L4  26-100  Building B / Electrical  cost 3,000,000  value 4,000,000

Progress reports (approved CTD)
    PR-001  2024-01-31  approved  A/Concrete 2,000,000
    PR-002  2024-02-29  approved  A/Concrete 4,000,000, A/Electrical 1,000,000
    PR-003  2024-03-15  draft

Labor (burden 0)
    2024-01-15  approved  03-100          1,000,000
    2024-02-10  approved  SOV line L2     2,000,000
    2024-02-12  pending   03-100            500,000
    2024-02-20  approved  99-999            300,000  (no SOV match)
    2024-03-05  approved  03-100            700,000

Invoices
    INV-1001  2024-02-15  26-100  800,000  (shared code, first line L3)
"""
import os

os.environ.setdefault("JOBCOST_DATABASE_URL", "sqlite:///:memory:")

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jobcost.models import Base
from jobcost.infrastructure.repositories import (
    BudgetLineRepository,
    InvoiceRepository,
    JobRepository,
    LaborCostRepository,
    ProgressReportRepository,
)


@pytest.fixture(scope="function")
def engine():
    """In-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(engine):
    """Create a test database session with fresh tables for each test."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


def seed_sample_job(session) -> dict:
    """Create the sample job described in this module's docstring."""
    job = JobRepository(session).create(
        job_number="J-2024-001",
        name="Test Job",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
        contract_value_cents=18_000_000,
    )
    session.flush()

    sov = BudgetLineRepository(session)
    l1 = sov.create(job.id, "03-100", 4_000_000, 5_000_000, area="Building A", system="Concrete", phase="Structure")
    l2 = sov.create(job.id, "03-200", 4_000_000, 5_000_000, area="Building A", system="Concrete", phase="Structure")
    l3 = sov.create(job.id, "26-100", 3_000_000, 4_000_000, area="Building A", system="Electrical", phase="MEP")
    l4 = sov.create(job.id, "26-100", 3_000_000, 4_000_000, area="Building B", system="Electrical", phase="MEP")
    session.flush()

    reports = ProgressReportRepository(session)
    pr1 = reports.create(
        job.id, "PR-001", date(2024, 1, 31), status="approved", approved_by="owner",
        lines=[
            {"area": "Building A", "system": "Concrete", "budget_value_cents": 10_000_000,
             "approved_ctd_cents": 2_000_000},
            {"area": "Building A", "system": "Electrical", "budget_value_cents": 4_000_000,
             "approved_ctd_cents": 0},
            {"area": "Building B", "system": "Electrical", "budget_value_cents": 4_000_000,
             "approved_ctd_cents": 0},
        ],
    )
    pr2 = reports.create(
        job.id, "PR-002", date(2024, 2, 29), status="approved", approved_by="owner",
        lines=[
            {"area": "Building A", "system": "Concrete", "budget_value_cents": 10_000_000,
             "approved_ctd_cents": 4_000_000, "previous_ctd_cents": 2_000_000},
            {"area": "Building A", "system": "Electrical", "budget_value_cents": 4_000_000,
             "approved_ctd_cents": 1_000_000},
            {"area": "Building B", "system": "Electrical", "budget_value_cents": 4_000_000,
             "approved_ctd_cents": 0},
        ],
    )
    pr3 = reports.create(
        job.id, "PR-003", date(2024, 3, 15), status="draft",
        lines=[
            {"area": "Building A", "system": "Concrete", "budget_value_cents": 10_000_000,
             "submitted_ctd_cents": 6_000_000},
        ],
    )

    labor = LaborCostRepository(session)
    labor.create(job.id, "R. Diaz", date(2024, 1, 15), 1_000_000, total_hours=100,
                 cost_code="03-100", burden_rate=0.0, status="approved")
    labor.create(job.id, "K. Osei", date(2024, 2, 10), 2_000_000, total_hours=200,
                 budget_line_id=l2.id, burden_rate=0.0, status="approved")
    labor.create(job.id, "K. Osei", date(2024, 2, 12), 500_000, total_hours=50,
                 cost_code="03-100", burden_rate=0.0, status="pending")
    labor.create(job.id, "M. Berg", date(2024, 2, 20), 300_000, total_hours=30,
                 cost_code="99-999", burden_rate=0.0, status="approved")
    labor.create(job.id, "R. Diaz", date(2024, 3, 5), 700_000, total_hours=70,
                 cost_code="03-100", burden_rate=0.0, status="approved")

    InvoiceRepository(session).create(
        job.id, "INV-1001", date(2024, 2, 15), 800_000,
        allocations=[{"cost_code": "26-100", "amount_cents": 800_000, "description": "Conduit"}],
        vendor_name="Sparks Supply",
    )
    session.commit()

    return {
        "job": job,
        "lines": [l1, l2, l3, l4],
        "reports": [pr1, pr2, pr3],
    }


@pytest.fixture
def sample_job(test_db):
    """Sample job with SOV, progress reports and cost records."""
    return seed_sample_job(test_db)


@pytest.fixture
def seed_job():
    """The sample job builder, for tests that manage their own sessions."""
    return seed_sample_job
