"""
Integration Tests for the Forecast Lifecycle.

Tests business rules:
- One active forecast per (job, period); saving again updates it
- One active forecast per progress report
- draft -> submitted -> approved, any active state -> archived
- Cost, earned value and CPI are always re-derived from live data
"""
from datetime import date

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from jobcost.domain.exceptions import (
    ConcurrencyError,
    ForecastConflictError,
    ForecastNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
)
from jobcost.domain.services import (
    CostToCompleteService,
    ForecastLifecycleService,
    derive_volatile_fields,
)
from jobcost.infrastructure.repositories import ForecastRepository, LaborCostRepository
from jobcost.models import CostToCompleteForecast


CONCRETE = "Building A / Concrete"


@pytest.fixture
def service(test_db):
    return ForecastLifecycleService(test_db)


@pytest.fixture
def draft(service, sample_job):
    return service.create_or_update(sample_job["job"].id, "Month 2", actor="pm@example.com")


# =============================================================================
# Pure Derivation
# =============================================================================

class TestDeriveVolatileFields:
    """Tests for derive_volatile_fields"""

    def test_caller_cost_fields_are_replaced(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        document = {
            "line_items": [{"group_key": CONCRETE, "cost_to_date": 1, "earned_to_date": 2, "cpi": 9.9}],
            "summary": {"cost_to_date": 1, "cpi": 9.9},
        }
        derived = derive_volatile_fields(document, live)
        concrete = derived["line_items"][0]
        assert concrete["cost_to_date"] == 3_000_000
        assert concrete["earned_to_date"] == 4_000_000
        assert concrete["cpi"] == pytest.approx(4 / 3)
        assert derived["summary"]["cost_to_date"] == 4_100_000

    def test_forecast_overrides_kept(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        document = {"line_items": [{"group_key": CONCRETE, "forecasted_final_cost": 9_000_000}]}
        derived = derive_volatile_fields(document, live)
        concrete = derived["line_items"][0]
        assert concrete["forecasted_final_cost"] == 9_000_000
        assert concrete["forecasted_final_value"] == 10_000_000
        assert concrete["fee"] == 1_000_000
        # Summary forecast flows from the overridden line
        assert derived["summary"]["forecast_final_cost"] == 16_500_000

    def test_supplied_values_recorded_as_overrides(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        document = {"line_items": [{"group_key": CONCRETE, "forecasted_final_value": 11_000_000}]}
        derived = derive_volatile_fields(document, live)
        concrete, electrical_a, _ = derived["line_items"]
        assert concrete["overrides"] == ["forecasted_final_value"]
        assert concrete["forecasted_final_cost"] == 7_500_000
        assert electrical_a["overrides"] == []

    def test_stored_computed_forecast_is_recomputed(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        stored = {"line_items": [
            {"group_key": CONCRETE, "forecasted_final_cost": 1_000, "forecasted_final_value": 2_000,
             "overrides": []},
        ]}
        concrete = derive_volatile_fields(stored, live)["line_items"][0]
        assert concrete["forecasted_final_cost"] == 7_500_000
        assert concrete["forecasted_final_value"] == 10_000_000

    def test_stored_override_kept(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        stored = {"line_items": [
            {"group_key": CONCRETE, "forecasted_final_cost": 9_000_000, "forecasted_final_value": 2_000,
             "overrides": ["forecasted_final_cost"]},
        ]}
        concrete = derive_volatile_fields(stored, live)["line_items"][0]
        assert concrete["forecasted_final_cost"] == 9_000_000
        assert concrete["forecasted_final_value"] == 10_000_000
        assert concrete["overrides"] == ["forecasted_final_cost"]

    def test_lines_matched_by_area_and_system(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        document = {"line_items": [
            {"area": "Building B", "system": "Electrical", "forecasted_final_value": 4_500_000}
        ]}
        derived = derive_volatile_fields(document, live)
        assert derived["line_items"][2]["forecasted_final_value"] == 4_500_000
        assert derived["line_items"][2]["fee"] == 500_000

    def test_unknown_groups_dropped(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        document = {"line_items": [{"group_key": "Parking / Paving", "forecasted_final_cost": 1}]}
        derived = derive_volatile_fields(document, live)
        assert [item["group_key"] for item in derived["line_items"]] == [
            item["group_key"] for item in live.line_items
        ]

    def test_caller_summary_extras_kept(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        derived = derive_volatile_fields({"summary": {"commentary": "steel delayed"}}, live)
        assert derived["summary"]["commentary"] == "steel delayed"

    def test_live_report_untouched(self, test_db, sample_job):
        live = CostToCompleteService(test_db).build_report(sample_job["job"].id, "Month 2")
        derive_volatile_fields(
            {"line_items": [{"group_key": CONCRETE, "forecasted_final_cost": 1}]}, live
        )
        assert live.line_item(CONCRETE)["forecasted_final_cost"] == 7_500_000


# =============================================================================
# Create / Update
# =============================================================================

class TestCreateOrUpdate:
    """Tests for ForecastLifecycleService.create_or_update"""

    def test_creates_draft(self, draft, sample_job):
        assert draft.id is not None
        assert draft.status == "draft"
        assert draft.forecast_period == "Month 2"
        assert draft.month_number == 2
        assert draft.progress_report_id == sample_job["reports"][1].id
        assert draft.progress_report_number == "PR-002"
        assert draft.created_by == "pm@example.com"
        assert draft.summary["cost_to_date"] == 4_100_000
        assert len(draft.line_items) == 3

    def test_saving_again_updates_same_forecast(self, test_db, service, sample_job, draft):
        again = service.create_or_update(sample_job["job"].id, "2024-02", notes="second pass")
        assert again.id == draft.id
        assert again.notes == "second pass"
        assert test_db.query(CostToCompleteForecast).count() == 1

    def test_existing_overrides_survive_resave(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.create_or_update(
            job_id, "Month 2",
            line_items=[{"group_key": CONCRETE, "forecasted_final_cost": 9_000_000}],
        )
        resaved = service.create_or_update(job_id, "Month 2")
        concrete = next(i for i in resaved.line_items if i["group_key"] == CONCRETE)
        assert concrete["forecasted_final_cost"] == 9_000_000

    def test_saved_without_overrides(self, draft):
        assert all(item["overrides"] == [] for item in draft.line_items)

    def test_saving_twice_is_idempotent(self, service, sample_job):
        job_id = sample_job["job"].id
        first = service.create_or_update(job_id, "Month 2")
        first_summary = dict(first.summary)
        first_lines = [dict(item) for item in first.line_items]

        second = service.create_or_update(job_id, "Month 2")
        for field in ("cost_to_date", "earned_to_date", "cpi", "forecast_final_cost"):
            assert second.summary[field] == first_summary[field]
        for before, after in zip(first_lines, second.line_items):
            for field in ("cost_to_date", "earned_to_date", "cpi", "forecasted_final_cost"):
                assert after[field] == before[field]

    def test_update_keeps_overrides_of_other_lines(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.update(job_id, draft.id, line_items=[
            {"group_key": CONCRETE, "forecasted_final_cost": 9_000_000},
        ])
        updated = service.update(job_id, draft.id, line_items=[
            {"group_key": "Building B / Electrical", "forecasted_final_value": 4_500_000},
        ])
        concrete = next(i for i in updated.line_items if i["group_key"] == CONCRETE)
        assert concrete["forecasted_final_cost"] == 9_000_000
        assert concrete["overrides"] == ["forecasted_final_cost"]

    def test_resave_picks_up_new_costs(self, test_db, service, sample_job, draft):
        job = sample_job["job"]
        LaborCostRepository(test_db).create(
            job.id, "Late Entry", date(2024, 2, 28), 100_000, cost_code="03-100",
            burden_rate=0.0, status="approved",
        )
        test_db.commit()
        resaved = service.create_or_update(job.id, "Month 2")
        assert resaved.summary["cost_to_date"] == 4_200_000

    def test_defaults_to_latest_period(self, service, sample_job):
        forecast = service.create_or_update(sample_job["job"].id)
        assert forecast.forecast_period == "Month 2"

    def test_progress_report_from_another_month_rejected(self, service, sample_job):
        pr1 = sample_job["reports"][0]
        with pytest.raises(ValidationError):
            service.create_or_update(sample_job["job"].id, "Month 2", progress_report_id=pr1.id)

    def test_progress_report_already_linked(self, test_db, service, sample_job):
        job = sample_job["job"]
        pr2 = sample_job["reports"][1]
        ForecastRepository(test_db).create(
            job_id=job.id, forecast_period="Month 5", month_number=5,
            line_items=[], summary={}, progress_report=pr2,
        )
        test_db.commit()

        with pytest.raises(ForecastConflictError) as exc:
            service.create_or_update(job.id, "Month 2")
        assert exc.value.forecast_period == "Month 5"

    def test_update_overrides(self, service, sample_job, draft):
        updated = service.update(
            sample_job["job"].id, draft.id,
            line_items=[{"group_key": CONCRETE, "forecasted_final_cost": 8_000_000, "cost_to_date": 0}],
            notes="revised",
        )
        concrete = next(i for i in updated.line_items if i["group_key"] == CONCRETE)
        assert concrete["forecasted_final_cost"] == 8_000_000
        assert concrete["cost_to_date"] == 3_000_000
        assert updated.notes == "revised"
        assert updated.version_id == 2

    def test_update_archived_rejected(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.archive(job_id, draft.id)
        with pytest.raises(InvalidStatusTransitionError):
            service.update(job_id, draft.id, notes="too late")


# =============================================================================
# Transitions
# =============================================================================

class TestTransitions:
    """Tests for submit/approve/archive."""

    def test_full_lifecycle(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        submitted = service.submit(job_id, draft.id, "pm@example.com")
        assert submitted.status == "submitted"
        assert submitted.submitted_by == "pm@example.com"
        assert submitted.submitted_at is not None

        approved = service.approve(job_id, draft.id, "cfo@example.com")
        assert approved.status == "approved"
        assert approved.approved_by == "cfo@example.com"

        archived = service.archive(job_id, draft.id, "cfo@example.com")
        assert archived.status == "archived"
        assert archived.archived_at is not None

    def test_approve_requires_submission(self, service, sample_job, draft):
        with pytest.raises(InvalidStatusTransitionError):
            service.approve(sample_job["job"].id, draft.id)

    def test_submit_twice_rejected(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.submit(job_id, draft.id)
        with pytest.raises(InvalidStatusTransitionError):
            service.submit(job_id, draft.id)

    def test_archived_is_terminal(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.archive(job_id, draft.id)
        with pytest.raises(InvalidStatusTransitionError):
            service.archive(job_id, draft.id)
        with pytest.raises(InvalidStatusTransitionError):
            service.submit(job_id, draft.id)

    def test_archive_frees_period_and_report(self, test_db, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.archive(job_id, draft.id)
        replacement = service.create_or_update(job_id, "Month 2")
        assert replacement.id != draft.id
        assert replacement.status == "draft"
        assert test_db.query(CostToCompleteForecast).count() == 2

    def test_archive_when_report_no_longer_approved(self, test_db, service, sample_job, draft):
        sample_job["reports"][1].status = "reviewed"
        test_db.commit()
        archived = service.archive(sample_job["job"].id, draft.id)
        assert archived.status == "archived"

    def test_transition_rederives(self, test_db, service, sample_job, draft):
        job = sample_job["job"]
        LaborCostRepository(test_db).create(
            job.id, "Late Entry", date(2024, 2, 28), 100_000, cost_code="03-100",
            burden_rate=0.0, status="approved",
        )
        test_db.commit()
        submitted = service.submit(job.id, draft.id)
        assert submitted.summary["cost_to_date"] == 4_200_000

    def test_submit_recomputes_forecast_after_new_cost(self, test_db, service, sample_job, draft):
        job = sample_job["job"]
        saved = next(i for i in draft.line_items if i["group_key"] == CONCRETE)
        assert saved["forecasted_final_cost"] == 7_500_000

        LaborCostRepository(test_db).create(
            job.id, "Overtime Crew", date(2024, 2, 25), 20_000_000, cost_code="03-100",
            burden_rate=0.0, status="approved",
        )
        test_db.commit()
        submitted = service.submit(job.id, draft.id)

        concrete = next(i for i in submitted.line_items if i["group_key"] == CONCRETE)
        fresh = CostToCompleteService(test_db).build_report(job.id, "Month 2").line_item(CONCRETE)
        assert concrete["cost_to_date"] == 23_000_000
        assert concrete["forecasted_final_cost"] == fresh["forecasted_final_cost"] == 23_000_000
        for item in submitted.line_items:
            assert item["forecasted_final_cost"] >= item["cost_to_date"]

    def test_forecast_of_another_job(self, service, sample_job, draft):
        with pytest.raises(ForecastNotFoundError):
            service.submit(sample_job["job"].id + 1, draft.id)


# =============================================================================
# Write Conflicts
# =============================================================================

class TestWriteRetry:
    """A lost race is retried once, then surfaces as ConcurrencyError."""

    @pytest.fixture
    def rival(self, engine, sample_job):
        """Month 2 forecast written through another session, unseen by the service's lookup."""
        other = sessionmaker(bind=engine)()
        try:
            forecast = ForecastRepository(other).create(
                job_id=sample_job["job"].id, forecast_period="Month 2", month_number=2,
                line_items=[], summary={}, created_by="other@example.com",
            )
            other.commit()
            return forecast.id
        finally:
            other.close()

    def _miss_lookups(self, service, monkeypatch, misses):
        real_lookup = service.repo.get_active_for_period
        calls = {"count": 0}

        def lookup(job_id, month_number):
            calls["count"] += 1
            if calls["count"] <= misses:
                return None
            return real_lookup(job_id, month_number)

        monkeypatch.setattr(service.repo, "get_active_for_period", lookup)
        return calls

    def test_lost_insert_race_retried_as_update(self, service, sample_job, rival, monkeypatch):
        calls = self._miss_lookups(service, monkeypatch, misses=1)
        forecast = service.create_or_update(sample_job["job"].id, "Month 2")
        assert calls["count"] == 2
        assert forecast.id == rival
        assert forecast.progress_report_number == "PR-002"
        assert forecast.summary["cost_to_date"] == 4_100_000

    def test_repeated_insert_race_raises(self, test_db, service, sample_job, rival, monkeypatch):
        self._miss_lookups(service, monkeypatch, misses=2)
        with pytest.raises(ConcurrencyError) as exc:
            service.create_or_update(sample_job["job"].id, "Month 2")
        assert exc.value.code == "CONCURRENCY_ERROR"
        assert test_db.query(CostToCompleteForecast).count() == 1

    def test_stale_version_raises_after_retry(self, test_db, service, sample_job, draft, monkeypatch):
        attempts = []

        def stale_commit():
            attempts.append(1)
            raise StaleDataError("UPDATE statement on table 'cost_to_complete_forecasts' expected 1 row")

        monkeypatch.setattr(test_db, "commit", stale_commit)
        with pytest.raises(ConcurrencyError):
            service.submit(sample_job["job"].id, draft.id)
        assert len(attempts) == 2

        monkeypatch.undo()
        assert service.get(sample_job["job"].id, draft.id).status == "draft"


# =============================================================================
# Reads
# =============================================================================

class TestListAndAnalytics:

    def test_list_generates_missing_periods(self, service, sample_job, draft):
        forecasts = service.list_or_generate(sample_job["job"].id)
        assert [f["forecast_period"] for f in forecasts] == ["Month 1", "Month 2"]
        generated, saved = forecasts
        assert generated["status"] == "not_created"
        assert generated["id"] is None
        assert generated["summary"]["cost_to_date"] == 1_000_000
        assert saved["status"] == "draft"
        assert saved["id"] == draft.id

    def test_list_does_not_persist(self, test_db, service, sample_job):
        service.list_or_generate(sample_job["job"].id)
        assert test_db.query(CostToCompleteForecast).count() == 0

    def test_list_excludes_archived(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.archive(job_id, draft.id)
        forecasts = service.list_or_generate(job_id)
        assert [f["status"] for f in forecasts] == ["not_created", "not_created"]

    def test_analytics(self, service, sample_job, draft):
        job_id = sample_job["job"].id
        service.create_or_update(job_id, "Month 1")
        result = service.analytics(job_id)
        assert result["forecast_count"] == 2
        assert result["status_counts"] == {"draft": 2}
        assert result["trends"]["months"] == ["Month 1", "Month 2"]
        assert result["trends"]["cost_to_date"] == [1_000_000, 4_100_000]
        assert result["latest"]["forecast_period"] == "Month 2"
        assert result["latest"]["forecast_final_cost"] == 15_000_000

    def test_analytics_without_forecasts(self, service, sample_job):
        result = service.analytics(sample_job["job"].id)
        assert result["forecast_count"] == 0
        assert result["latest"] is None
