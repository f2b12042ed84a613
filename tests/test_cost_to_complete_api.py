"""
Tests for the v1 cost-to-complete, earned value and progress report API endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from jobcost.main import app
from jobcost.models import get_db


@pytest.fixture
def client(engine):
    """Create test client bound to the per-test database."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def job_id(engine, seed_job):
    session = sessionmaker(bind=engine)()
    try:
        return seed_job(session)["job"].id
    finally:
        session.close()


def base(job_id):
    return f"/api/v1/jobs/{job_id}"


class TestCostToCompleteEndpoint:
    """Tests for GET /api/v1/jobs/{job_id}/cost-to-complete"""

    def test_report_for_period(self, client, job_id):
        response = client.get(f"{base(job_id)}/cost-to-complete", params={"period": "Month 2"})
        assert response.status_code == 200

        data = response.json()
        assert data["forecast_period"] == "Month 2"
        assert data["progress_report"]["report_number"] == "PR-002"
        assert len(data["line_items"]) == 3
        assert data["summary"]["cost_to_date"] == 4_100_000
        assert data["summary"]["forecast_final_cost"] == 15_000_000

    def test_latest_period_by_default(self, client, job_id):
        response = client.get(f"{base(job_id)}/cost-to-complete")
        assert response.status_code == 200
        assert response.json()["month_number"] == 2

    def test_invalid_period(self, client, job_id):
        response = client.get(f"{base(job_id)}/cost-to-complete", params={"period": "Month 3"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_PERIOD"

    def test_unknown_job(self, client, job_id):
        response = client.get(f"{base(job_id + 100)}/cost-to-complete")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "JOB_NOT_FOUND"

    def test_periods(self, client, job_id):
        response = client.get(f"{base(job_id)}/cost-to-complete/periods")
        assert response.status_code == 200
        assert [p["forecast_period"] for p in response.json()] == ["Month 1", "Month 2"]


class TestForecastEndpoints:
    """Tests for the forecast lifecycle endpoints."""

    def _save(self, client, job_id, **body):
        body.setdefault("forecast_period", "Month 2")
        return client.post(f"{base(job_id)}/cost-to-complete/forecasts", json=body)

    def test_create_forecast(self, client, job_id):
        response = self._save(client, job_id, actor="pm@example.com", notes="first cut")
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "draft"
        assert data["created_by"] == "pm@example.com"
        assert data["summary"]["cost_to_date"] == 4_100_000

    def test_save_twice_returns_same_forecast(self, client, job_id):
        first = self._save(client, job_id).json()
        second = self._save(client, job_id, forecast_period=2).json()
        assert first["id"] == second["id"]

    def test_client_cost_fields_ignored(self, client, job_id):
        response = self._save(client, job_id, line_items=[{
            "group_key": "Building A / Concrete",
            "cost_to_date": 1,
            "forecasted_final_cost": 9_000_000,
        }])
        concrete = response.json()["line_items"][0]
        assert concrete["cost_to_date"] == 3_000_000
        assert concrete["forecasted_final_cost"] == 9_000_000

    def test_lifecycle(self, client, job_id):
        forecast_id = self._save(client, job_id).json()["id"]
        url = f"{base(job_id)}/cost-to-complete/forecasts/{forecast_id}"

        response = client.post(f"{url}/approve", json={"actor": "cfo@example.com"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"

        response = client.post(f"{url}/submit", json={"actor": "pm@example.com"})
        assert response.status_code == 200
        assert response.json()["status"] == "submitted"

        response = client.post(f"{url}/approve", json={"actor": "cfo@example.com"})
        assert response.status_code == 200
        assert response.json()["approved_by"] == "cfo@example.com"

        response = client.delete(url, params={"actor": "cfo@example.com"})
        assert response.status_code == 200
        assert response.json()["status"] == "archived"

    def test_get_and_update(self, client, job_id):
        forecast_id = self._save(client, job_id).json()["id"]
        url = f"{base(job_id)}/cost-to-complete/forecasts/{forecast_id}"

        assert client.get(url).json()["id"] == forecast_id

        response = client.put(url, json={"notes": "updated"})
        assert response.status_code == 200
        assert response.json()["notes"] == "updated"

    def test_missing_forecast(self, client, job_id):
        response = client.get(f"{base(job_id)}/cost-to-complete/forecasts/999")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "FORECAST_NOT_FOUND"

    def test_invalid_period_on_save(self, client, job_id):
        response = self._save(client, job_id, forecast_period="Month 12")
        assert response.status_code == 400

    def test_list_forecasts(self, client, job_id):
        self._save(client, job_id)
        response = client.get(f"{base(job_id)}/cost-to-complete/forecasts")
        assert response.status_code == 200
        assert [f["status"] for f in response.json()] == ["not_created", "draft"]

    def test_analytics(self, client, job_id):
        self._save(client, job_id)
        response = client.get(f"{base(job_id)}/cost-to-complete/forecasts/analytics")
        assert response.status_code == 200
        data = response.json()
        assert data["forecast_count"] == 1
        assert data["trends"]["months"] == ["Month 2"]


class TestEarnedValueEndpoints:
    """Tests for earned-vs-burned and cost-breakdown."""

    def test_earned_vs_burned(self, client, job_id):
        response = client.get(
            f"{base(job_id)}/earned-vs-burned",
            params={"as_of_date": "2024-02-29", "group_by": "area"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["totals"]["ac"] == 4_100_000
        assert {row["group"] for row in data["rows"]} == {"Building A", "Building B"}

    def test_earned_vs_burned_bad_group_by(self, client, job_id):
        response = client.get(f"{base(job_id)}/earned-vs-burned", params={"group_by": "phase"})
        assert response.status_code == 422

    def test_cost_breakdown(self, client, job_id):
        response = client.get(
            f"{base(job_id)}/cost-breakdown",
            params={"group_by": "cost_code", "as_of_date": "2024-02-29"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["periods"] == ["2024-01", "2024-02"]
        assert data["totals_by_period"] == {"2024-01": 1_000_000, "2024-02": 3_100_000}

    def test_monthly_cost_report(self, client, job_id):
        response = client.get(f"{base(job_id)}/monthly-cost-report", params={"as_of_date": "2024-03-31"})
        assert response.status_code == 200
        data = response.json()
        assert [m["period"] for m in data["months"]] == ["2024-01", "2024-02", "2024-03"]
        assert data["months"][1]["cumulative_cost"] == 4_100_000
        assert data["months"][1]["earned_this_period"] == 3_000_000
        assert data["totals"]["total_cost"] == 4_800_000

    def test_monthly_cost_report_unknown_job(self, client, job_id):
        response = client.get(f"{base(job_id + 100)}/monthly-cost-report")
        assert response.status_code == 404


class TestProgressReportEndpoints:
    """Tests for /api/v1/jobs/{job_id}/progress-reports"""

    def _create(self, client, job_id):
        payload = {
            "report_number": "PR-004",
            "report_date": "2024-03-31",
            "lines": [
                {"area": "Building A", "system": "Concrete", "budget_value_cents": 10_000_000,
                 "approved_ctd_cents": 6_000_000},
            ],
        }
        return client.post(f"{base(job_id)}/progress-reports", json=payload)

    def test_list_newest_first(self, client, job_id):
        response = client.get(f"{base(job_id)}/progress-reports")
        assert response.status_code == 200
        assert [r["report_number"] for r in response.json()] == ["PR-003", "PR-002", "PR-001"]

    def test_create_copies_previous_ctd(self, client, job_id):
        response = self._create(client, job_id)
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "draft"
        assert data["lines"][0]["previous_ctd_cents"] == 4_000_000

    def test_lifecycle(self, client, job_id):
        report_id = self._create(client, job_id).json()["id"]
        url = f"{base(job_id)}/progress-reports/{report_id}"

        response = client.post(f"{url}/approve", json={"actor": "owner"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"

        for action, status in [("submit", "submitted"), ("review", "reviewed"),
                               ("approve", "approved"), ("invoice", "invoiced")]:
            response = client.post(f"{url}/{action}", json={"actor": "pm"})
            assert response.status_code == 200
            assert response.json()["status"] == status
            assert response.json()[f"{status}_by"] == "pm"

        periods = client.get(f"{base(job_id)}/cost-to-complete/periods").json()
        assert periods[-1]["progress_report"]["report_number"] == "PR-004"

    def test_get_and_delete_draft(self, client, job_id):
        report_id = self._create(client, job_id).json()["id"]
        url = f"{base(job_id)}/progress-reports/{report_id}"
        assert client.get(url).json()["report_number"] == "PR-004"

        assert client.delete(url).status_code == 204
        assert client.get(url).status_code == 404

    def test_approved_report_not_deleted(self, client, job_id):
        reports = client.get(f"{base(job_id)}/progress-reports").json()
        pr1 = next(r for r in reports if r["report_number"] == "PR-001")
        response = client.delete(f"{base(job_id)}/progress-reports/{pr1['id']}")
        assert response.status_code == 400


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
