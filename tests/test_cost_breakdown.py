"""
Tests for the monthly cost breakdown, the monthly cost report and the forecast CLI.
"""
import logging
from datetime import date

import pytest
from click.testing import CliRunner
from sqlalchemy.orm import sessionmaker

from jobcost.cli import forecast
from jobcost.domain.entities import UNASSIGNED
from jobcost.domain.exceptions import JobNotFoundError, ValidationError
from jobcost.domain.services import CostBreakdownService


class TestCostBreakdown:
    """Tests for CostBreakdownService.breakdown"""

    def test_by_cost_code(self, test_db, sample_job):
        result = CostBreakdownService(test_db).breakdown(
            sample_job["job"].id, "cost_code", date(2024, 3, 31)
        )
        assert result["periods"] == ["2024-01", "2024-02", "2024-03"]
        assert result["totals_by_period"] == {
            "2024-01": 1_000_000,
            "2024-02": 3_100_000,
            "2024-03": 700_000,
        }
        assert result["pivot"]["03-100"] == {"2024-01": 1_000_000, "2024-02": 0, "2024-03": 700_000}
        # Direct-reference labor carries no cost code
        assert result["pivot"][UNASSIGNED]["2024-02"] == 2_000_000

    def test_labor_and_invoice_rows(self, test_db, sample_job):
        result = CostBreakdownService(test_db).breakdown(
            sample_job["job"].id, "cost_code", date(2024, 2, 29)
        )
        labor = {(r["period"], r["group"]): r for r in result["labor_costs"]}
        assert labor[("2024-01", "03-100")]["total_cost"] == 1_000_000
        assert labor[("2024-01", "03-100")]["total_hours"] == 100.0
        assert labor[("2024-02", "99-999")]["entries"] == 1
        assert result["invoice_costs"] == [
            {"period": "2024-02", "group": "26-100", "total_amount": 800_000, "allocations": 1}
        ]

    def test_by_area_uses_attributed_line(self, test_db, sample_job):
        result = CostBreakdownService(test_db).breakdown(
            sample_job["job"].id, "area", date(2024, 2, 29)
        )
        assert result["pivot"]["Building A"]["2024-02"] == 2_800_000
        assert result["pivot"][UNASSIGNED]["2024-02"] == 300_000
        assert "Building B" not in result["pivot"]

    def test_by_phase(self, test_db, sample_job):
        result = CostBreakdownService(test_db).breakdown(
            sample_job["job"].id, "phase", date(2024, 2, 29)
        )
        assert result["pivot"]["Structure"] == {"2024-01": 1_000_000, "2024-02": 2_000_000}
        assert result["pivot"]["MEP"] == {"2024-01": 0, "2024-02": 800_000}

    def test_no_costs(self, test_db, sample_job):
        result = CostBreakdownService(test_db).breakdown(
            sample_job["job"].id, "cost_code", date(2023, 12, 31)
        )
        assert result["periods"] == []
        assert result["pivot"] == {}

    def test_invalid_dimension(self, test_db, sample_job):
        with pytest.raises(ValidationError):
            CostBreakdownService(test_db).breakdown(sample_job["job"].id, "vendor")

    def test_unknown_job(self, test_db):
        with pytest.raises(JobNotFoundError):
            CostBreakdownService(test_db).breakdown(404)

    def test_each_record_attributed_once(self, test_db, sample_job, caplog):
        with caplog.at_level(logging.WARNING):
            CostBreakdownService(test_db).breakdown(sample_job["job"].id, "area", date(2024, 2, 29))
        unattributed = [r for r in caplog.records if r.getMessage().startswith("Unattributed labor cost")]
        assert len(unattributed) == 1
        assert "99-999" in unattributed[0].getMessage()


class TestMonthlyCostReport:
    """Tests for CostBreakdownService.monthly_cost_report"""

    def _report(self, test_db, sample_job, as_of=date(2024, 3, 31)):
        return CostBreakdownService(test_db).monthly_cost_report(sample_job["job"].id, as_of)

    def test_months_contiguous_and_costed(self, test_db, sample_job):
        months = {m["period"]: m for m in self._report(test_db, sample_job)["months"]}
        assert list(months) == ["2024-01", "2024-02", "2024-03"]

        feb = months["2024-02"]
        assert feb["labor_cost"] == 2_300_000
        assert feb["invoice_cost"] == 800_000
        assert feb["total_cost"] == 3_100_000
        assert feb["labor_hours"] == 230.0
        assert feb["unattributed_cost"] == 300_000
        assert feb["cumulative_cost"] == 4_100_000
        assert months["2024-03"]["cumulative_cost"] == 4_800_000

    def test_earned_value_by_month(self, test_db, sample_job):
        months = self._report(test_db, sample_job)["months"]
        assert [m["progress_report_number"] for m in months] == ["PR-001", "PR-002", "PR-002"]
        assert [m["earned_to_date"] for m in months] == [2_000_000, 5_000_000, 5_000_000]
        assert [m["earned_this_period"] for m in months] == [2_000_000, 3_000_000, 0]

    def test_totals(self, test_db, sample_job):
        totals = self._report(test_db, sample_job)["totals"]
        assert totals == {
            "labor_cost": 4_000_000,
            "invoice_cost": 800_000,
            "total_cost": 4_800_000,
            "labor_hours": 400.0,
            "unattributed_cost": 300_000,
            "earned_to_date": 5_000_000,
        }

    def test_as_of_date_bounds_cost_and_progress(self, test_db, sample_job):
        result = self._report(test_db, sample_job, as_of=date(2024, 2, 15))
        months = result["months"]
        assert [m["period"] for m in months] == ["2024-01", "2024-02"]
        # PR-002 is dated after the cutoff
        assert months[-1]["progress_report_number"] == "PR-001"
        assert months[-1]["total_cost"] == 2_800_000
        assert result["totals"]["earned_to_date"] == 2_000_000

    def test_nothing_before_first_cost_or_report(self, test_db, sample_job):
        result = self._report(test_db, sample_job, as_of=date(2024, 1, 10))
        assert result["months"] == []
        assert result["totals"]["total_cost"] == 0

    def test_unknown_job(self, test_db):
        with pytest.raises(JobNotFoundError):
            CostBreakdownService(test_db).monthly_cost_report(404)


class TestForecastCommands:
    """Tests for the forecast CLI group."""

    @pytest.fixture
    def runner(self, engine, sample_job, monkeypatch):
        monkeypatch.setattr(
            "jobcost.cli.forecast_commands.SessionLocal", sessionmaker(bind=engine)
        )
        return CliRunner()

    def test_report(self, runner, sample_job):
        result = runner.invoke(forecast, ["report", str(sample_job["job"].id), "--period", "Month 2"])
        assert result.exit_code == 0
        assert "Building A / Concrete" in result.output
        assert "$41,000.00" in result.output

    def test_report_invalid_period(self, runner, sample_job):
        result = runner.invoke(forecast, ["report", str(sample_job["job"].id), "--period", "Month 3"])
        assert result.exit_code == 1
        assert "Invalid forecast period" in result.output

    def test_periods(self, runner, sample_job):
        result = runner.invoke(forecast, ["periods", str(sample_job["job"].id)])
        assert result.exit_code == 0
        assert "Month 1" in result.output
        assert "PR-002" in result.output

    def test_save_and_submit(self, runner, sample_job):
        job_id = str(sample_job["job"].id)
        result = runner.invoke(forecast, ["save", job_id, "--period", "Month 2", "--actor", "pm"])
        assert result.exit_code == 0
        assert "Saved forecast" in result.output

        listing = runner.invoke(forecast, ["list", job_id])
        assert "draft" in listing.output
        assert "not_created" in listing.output

    def test_earned_vs_burned(self, runner, sample_job):
        result = runner.invoke(
            forecast,
            ["earned-vs-burned", str(sample_job["job"].id), "--as-of", "2024-02-29", "--group-by", "system"],
        )
        assert result.exit_code == 0
        assert "Electrical" in result.output
        assert "Total" in result.output

    def test_monthly_report(self, runner, sample_job):
        result = runner.invoke(forecast, ["monthly-report", str(sample_job["job"].id), "--as-of", "2024-03-31"])
        assert result.exit_code == 0
        assert "2024-02" in result.output
        assert "$41,000.00" in result.output
        assert "PR-002" in result.output
