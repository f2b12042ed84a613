"""
Database models and SQLAlchemy setup for the Job Cost Forecasting engine.
All monetary values stored as integer cents to avoid float drift.
"""
from datetime import datetime
from sqlalchemy import (
    create_engine, Column, Integer, String, Float, DateTime, Date, Text,
    ForeignKey, JSON, Index, text
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
import enum

from jobcost.config import get_config

DATABASE_URL = get_config().database_url
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class LaborStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class ProgressReportStatus(enum.Enum):
    """APPROVED and INVOICED reports participate in forecasting."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    INVOICED = "invoiced"


FORECASTABLE_REPORT_STATUSES = (
    ProgressReportStatus.APPROVED.value,
    ProgressReportStatus.INVOICED.value,
)


class ForecastStatus(enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    ARCHIVED = "archived"
    NOT_CREATED = "not_created"  # Synthesized on read, never persisted


# =============================================================================
# Job (owns everything below by reference)
# =============================================================================

class Job(Base):
    """A contracted unit of work with a start/end date and a contract value."""
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)  # External UUID
    job_number = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    contract_value_cents = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    budget_lines = relationship(
        "BudgetLine", back_populates="job", order_by="BudgetLine.sort_order"
    )
    progress_reports = relationship("ProgressReport", back_populates="job")


# =============================================================================
# Schedule of Values
# =============================================================================

class BudgetLine(Base):
    """
    Schedule of Values line - the finest-grained budget unit.
    Many lines can share an (area, system) pair.
    """
    __tablename__ = "schedule_of_values"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey('jobs.id'), nullable=False, index=True)
    line_number = Column(String(20), nullable=True)
    cost_code = Column(String(50), nullable=False, index=True)
    description = Column(String(500), nullable=True)
    area = Column(String(100), nullable=True, index=True)
    system = Column(String(100), nullable=True, index=True)
    phase = Column(String(100), nullable=True)
    budget_cost_cents = Column(Integer, nullable=False, default=0)
    budget_value_cents = Column(Integer, nullable=False, default=0)  # cost + margin
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    job = relationship("Job", back_populates="budget_lines")


# =============================================================================
# Cost Records
# =============================================================================

class LaborCostRecord(Base):
    """Time entry with burdened labor cost. Only status mutates after creation."""
    __tablename__ = "labor_cost_records"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey('jobs.id'), nullable=False, index=True)
    worker_name = Column(String(200), nullable=False)
    work_date = Column(Date, nullable=False, index=True)
    status = Column(String(20), default=LaborStatus.PENDING.value, index=True)
    cost_code = Column(String(50), nullable=True, index=True)
    budget_line_id = Column(Integer, ForeignKey('schedule_of_values.id'), nullable=True, index=True)
    area = Column(String(100), nullable=True)  # Matching hint
    system = Column(String(100), nullable=True)  # Matching hint
    total_hours = Column(Float, default=0.0)
    labor_cost_cents = Column(Integer, default=0)
    burden_rate = Column(Float, default=0.35)
    total_cost_cents = Column(Integer, nullable=False, default=0)  # Includes burden
    created_at = Column(DateTime, default=datetime.utcnow)


class Invoice(Base):
    """Accounts-payable invoice split across one or more cost-code allocations."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey('jobs.id'), nullable=False, index=True)
    invoice_number = Column(String(100), nullable=False, index=True)
    vendor_name = Column(String(200), nullable=True)
    invoice_date = Column(Date, nullable=False, index=True)
    total_amount_cents = Column(Integer, nullable=False)
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    allocations = relationship(
        "InvoiceAllocation", back_populates="invoice", cascade="all, delete-orphan",
        order_by="InvoiceAllocation.id"
    )

    @property
    def allocated_cents(self) -> int:
        return sum(a.amount_cents for a in self.allocations)


class InvoiceAllocation(Base):
    """
    Cost-code allocation of an invoice.
    budget_line_id is frequently missing; attribution then falls back to cost code.
    """
    __tablename__ = "invoice_allocations"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False, index=True)
    cost_code = Column(String(50), nullable=True, index=True)
    description = Column(String(500), nullable=True)
    amount_cents = Column(Integer, nullable=False)
    budget_line_id = Column(Integer, ForeignKey('schedule_of_values.id'), nullable=True, index=True)
    area = Column(String(100), nullable=True)
    system = Column(String(100), nullable=True)

    invoice = relationship("Invoice", back_populates="allocations")


# =============================================================================
# Progress Reports
# =============================================================================

class ProgressReport(Base):
    """Dated snapshot of cumulative completion at (area, system) granularity."""
    __tablename__ = "progress_reports"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey('jobs.id'), nullable=False, index=True)
    report_number = Column(String(50), nullable=False)
    report_date = Column(Date, nullable=False, index=True)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    status = Column(String(20), default=ProgressReportStatus.DRAFT.value, index=True)
    submitted_by = Column(String(100), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String(100), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    invoiced_by = Column(String(100), nullable=True)
    invoiced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    job = relationship("Job", back_populates="progress_reports")
    lines = relationship(
        "ProgressReportLine", back_populates="report", cascade="all, delete-orphan",
        order_by="ProgressReportLine.id"
    )

    @property
    def summary(self) -> dict:
        """Project-wide totals derived by summation over the lines."""
        total_value = sum(line.budget_value_cents or 0 for line in self.lines)
        approved = sum(line.approved_amount_cents for line in self.lines)
        submitted = sum(line.submitted_ctd_cents or 0 for line in self.lines)
        return {
            'total_budget_value_cents': total_value,
            'submitted_ctd_cents': submitted,
            'approved_ctd_cents': approved,
            'approved_ctd_percent': (approved / total_value * 100) if total_value > 0 else 0.0,
        }


class ProgressReportLine(Base):
    """
    One (area, system) row of a progress report.
    Previous approved CTD is copied forward from the preceding report.
    """
    __tablename__ = "progress_report_lines"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey('progress_reports.id'), nullable=False, index=True)
    area = Column(String(100), nullable=True)
    system = Column(String(100), nullable=True)
    budget_value_cents = Column(Integer, default=0)  # Assigned cost
    submitted_ctd_cents = Column(Integer, default=0)
    submitted_ctd_percent = Column(Float, default=0.0)
    approved_ctd_cents = Column(Integer, nullable=True)
    approved_ctd_percent = Column(Float, default=0.0)
    previous_ctd_cents = Column(Integer, default=0)
    previous_ctd_percent = Column(Float, default=0.0)

    report = relationship("ProgressReport", back_populates="lines")

    @property
    def approved_amount_cents(self) -> int:
        """Approved CTD amount, derived from percent when the amount is absent."""
        if self.approved_ctd_cents is not None:
            return self.approved_ctd_cents
        return int(round((self.approved_ctd_percent or 0.0) / 100 * (self.budget_value_cents or 0)))


# =============================================================================
# Cost-to-Complete Forecasts
# =============================================================================

class CostToCompleteForecast(Base):
    """
    Persisted forecast snapshot for one (job, period).
    cost/earned to date and CPI are a cache re-derived on every write.
    """
    __tablename__ = "cost_to_complete_forecasts"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey('jobs.id'), nullable=False, index=True)
    forecast_period = Column(String(50), nullable=False)
    month_number = Column(Integer, nullable=False)
    progress_report_id = Column(Integer, ForeignKey('progress_reports.id'), nullable=True, index=True)
    progress_report_number = Column(String(50), nullable=True)
    progress_report_date = Column(Date, nullable=True)
    line_items = Column(JSON, nullable=False, default=list)
    summary = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), default=ForecastStatus.DRAFT.value, index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    submitted_by = Column(String(100), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    archived_by = Column(String(100), nullable=True)
    archived_at = Column(DateTime, nullable=True)
    version_id = Column(Integer, nullable=False, default=1)  # Optimistic locking
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    progress_report = relationship("ProgressReport")

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index(
            'uq_active_forecast_job_month', 'job_id', 'month_number', unique=True,
            sqlite_where=text("status != 'archived'"),
            postgresql_where=text("status != 'archived'"),
        ),
        Index(
            'uq_active_forecast_progress_report', 'job_id', 'progress_report_id', unique=True,
            sqlite_where=text("status != 'archived' AND progress_report_id IS NOT NULL"),
            postgresql_where=text("status != 'archived' AND progress_report_id IS NOT NULL"),
        ),
    )


def init_db():
    """Initialize the database and create all tables."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Database session dependency for FastAPI."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
