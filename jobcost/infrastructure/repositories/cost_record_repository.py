"""
Cost Record Repositories - Labor time entries and AP invoices.

Cost records are append-mostly; only labor approval status and invoice
payment status change after creation.
"""
import uuid
from datetime import date, datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session, selectinload

from jobcost.config import get_config
from jobcost.models import (
    LaborCostRecord, Invoice, InvoiceAllocation, LaborStatus, PaymentStatus,
)
from jobcost.domain.exceptions import InvoiceAllocationMismatchError, ValidationError
from .base_repository import BaseRepository


def _as_date(cutoff) -> date:
    return cutoff.date() if isinstance(cutoff, datetime) else cutoff


class LaborCostRepository(BaseRepository[LaborCostRecord]):
    """Repository for labor time entries."""

    def __init__(self, session: Session):
        super().__init__(session, LaborCostRecord)

    def get_approved_through(self, job_id: int, cutoff) -> List[LaborCostRecord]:
        """Approved time entries with work date on or before the cutoff."""
        return self.session.query(LaborCostRecord).filter(
            LaborCostRecord.job_id == job_id,
            LaborCostRecord.status == LaborStatus.APPROVED.value,
            LaborCostRecord.work_date <= _as_date(cutoff),
        ).order_by(LaborCostRecord.work_date, LaborCostRecord.id).all()

    def get_by_job(self, job_id: int, status: Optional[str] = None) -> List[LaborCostRecord]:
        query = self.session.query(LaborCostRecord).filter(LaborCostRecord.job_id == job_id)
        if status:
            query = query.filter(LaborCostRecord.status == status)
        return query.order_by(LaborCostRecord.work_date, LaborCostRecord.id).all()

    def create(
        self,
        job_id: int,
        worker_name: str,
        work_date: date,
        labor_cost_cents: int,
        total_hours: float = 0.0,
        cost_code: Optional[str] = None,
        budget_line_id: Optional[int] = None,
        area: Optional[str] = None,
        system: Optional[str] = None,
        burden_rate: Optional[float] = None,
        total_cost_cents: Optional[int] = None,
        status: str = LaborStatus.PENDING.value,
    ) -> LaborCostRecord:
        """
        Create a time entry.

        Total cost includes burden: labor cost x (1 + burden rate) unless
        given explicitly. The burden rate defaults to the configured rate.
        """
        if status not in {s.value for s in LaborStatus}:
            raise ValidationError("status", f"unknown labor status '{status}'")
        if burden_rate is None:
            burden_rate = get_config().default_burden_rate
        if total_cost_cents is None:
            total_cost_cents = int(round(labor_cost_cents * (1 + burden_rate)))

        record = LaborCostRecord(
            uuid=str(uuid.uuid4()),
            job_id=job_id,
            worker_name=worker_name,
            work_date=work_date,
            status=status,
            cost_code=cost_code,
            budget_line_id=budget_line_id,
            area=area,
            system=system,
            total_hours=total_hours,
            labor_cost_cents=labor_cost_cents,
            burden_rate=burden_rate,
            total_cost_cents=total_cost_cents,
        )
        self.add(record)
        return record

    def set_status(self, record_id: int, status: str) -> LaborCostRecord:
        if status not in {s.value for s in LaborStatus}:
            raise ValidationError("status", f"unknown labor status '{status}'")
        record = self.get_by_id(record_id)
        if not record:
            raise ValidationError("record_id", f"labor record {record_id} not found")
        record.status = status
        return record


class InvoiceRepository(BaseRepository[Invoice]):
    """Repository for AP invoices and their cost-code allocations."""

    def __init__(self, session: Session):
        super().__init__(session, Invoice)

    def get_allocations_through(
        self, job_id: int, cutoff
    ) -> List[Tuple[InvoiceAllocation, Invoice]]:
        """Every allocation of invoices dated on or before the cutoff."""
        return self.session.query(InvoiceAllocation, Invoice).join(
            Invoice, InvoiceAllocation.invoice_id == Invoice.id
        ).filter(
            Invoice.job_id == job_id,
            Invoice.invoice_date <= _as_date(cutoff),
        ).order_by(Invoice.invoice_date, Invoice.id, InvoiceAllocation.id).all()

    def get_by_job(self, job_id: int) -> List[Invoice]:
        return self.session.query(Invoice).options(
            selectinload(Invoice.allocations)
        ).filter(Invoice.job_id == job_id).order_by(Invoice.invoice_date, Invoice.id).all()

    def create(
        self,
        job_id: int,
        invoice_number: str,
        invoice_date: date,
        total_amount_cents: int,
        allocations: List[dict],
        vendor_name: Optional[str] = None,
        payment_status: str = PaymentStatus.PENDING.value,
    ) -> Invoice:
        """
        Create an invoice with its allocations.

        Args:
            allocations: Dicts with amount_cents and optional cost_code,
                budget_line_id, area, system, description

        Raises:
            InvoiceAllocationMismatchError: If allocations do not sum to the
                total within the configured tolerance
        """
        if not allocations:
            raise ValidationError("allocations", "an invoice needs at least one allocation")

        allocated = sum(int(a["amount_cents"]) for a in allocations)
        tolerance = get_config().invoice_allocation_tolerance_cents
        if abs(allocated - total_amount_cents) > tolerance:
            raise InvoiceAllocationMismatchError(invoice_number, total_amount_cents, allocated)

        invoice = Invoice(
            uuid=str(uuid.uuid4()),
            job_id=job_id,
            invoice_number=invoice_number,
            vendor_name=vendor_name,
            invoice_date=invoice_date,
            total_amount_cents=total_amount_cents,
            payment_status=payment_status,
            allocations=[
                InvoiceAllocation(
                    cost_code=a.get("cost_code"),
                    description=a.get("description"),
                    amount_cents=int(a["amount_cents"]),
                    budget_line_id=a.get("budget_line_id"),
                    area=a.get("area"),
                    system=a.get("system"),
                )
                for a in allocations
            ],
        )
        self.add(invoice)
        return invoice
