"""
Job and Schedule of Values Repositories.
"""
import uuid
from datetime import date
from typing import List, Optional
from sqlalchemy.orm import Session

from jobcost.models import Job, BudgetLine
from jobcost.domain.exceptions import JobNotFoundError, ValidationError
from .base_repository import BaseRepository


class JobRepository(BaseRepository[Job]):
    """Repository for Job entities."""

    def __init__(self, session: Session):
        super().__init__(session, Job)

    def get_or_raise(self, job_id: int) -> Job:
        """
        Get a job by id.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = self.get_by_id(job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def create(
        self,
        job_number: str,
        name: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        contract_value_cents: int = 0,
    ) -> Job:
        """
        Create a new job.

        Raises:
            ValidationError: If end date precedes start date or the job number is taken
        """
        if self.exists(job_number=job_number):
            raise ValidationError("job_number", f"job {job_number} already exists")
        if start_date and end_date and end_date < start_date:
            raise ValidationError("end_date", f"{end_date} is before start date {start_date}")

        job = Job(
            uuid=str(uuid.uuid4()),
            job_number=job_number,
            name=name,
            start_date=start_date,
            end_date=end_date,
            contract_value_cents=contract_value_cents,
        )
        self.add(job)
        return job


class BudgetLineRepository(BaseRepository[BudgetLine]):
    """Repository for Schedule of Values lines."""

    def __init__(self, session: Session):
        super().__init__(session, BudgetLine)

    def get_by_job(self, job_id: int) -> List[BudgetLine]:
        """All SOV lines of a job in SOV order."""
        return self.session.query(BudgetLine).filter(
            BudgetLine.job_id == job_id
        ).order_by(BudgetLine.sort_order, BudgetLine.id).all()

    def create(
        self,
        job_id: int,
        cost_code: str,
        budget_cost_cents: int,
        budget_value_cents: int,
        area: Optional[str] = None,
        system: Optional[str] = None,
        phase: Optional[str] = None,
        description: Optional[str] = None,
        line_number: Optional[str] = None,
        sort_order: Optional[int] = None,
    ) -> BudgetLine:
        """
        Create an SOV line. Lines are appended in SOV order unless sort_order is given.

        Raises:
            ValidationError: If a budget amount is negative
        """
        if budget_cost_cents < 0:
            raise ValidationError("budget_cost_cents", "must not be negative")
        if budget_value_cents < 0:
            raise ValidationError("budget_value_cents", "must not be negative")

        if sort_order is None:
            sort_order = self.session.query(BudgetLine).filter(
                BudgetLine.job_id == job_id
            ).count()

        line = BudgetLine(
            uuid=str(uuid.uuid4()),
            job_id=job_id,
            cost_code=cost_code,
            budget_cost_cents=budget_cost_cents,
            budget_value_cents=budget_value_cents,
            area=area,
            system=system,
            phase=phase,
            description=description,
            line_number=line_number,
            sort_order=sort_order,
        )
        self.add(line)
        return line
