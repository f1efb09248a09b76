"""
API tests for the royalty endpoints.

Full request/response cycles through the FastAPI app using TestClient.
Requests carry every snapshot the engine needs, so nothing is mocked.
"""

import io

import openpyxl
import pytest
from fastapi.testclient import TestClient


# ---------------------------------------------------------------------------
# Payload factories
# ---------------------------------------------------------------------------

def _contract_terms(schedules=None):
    if schedules is None:
        schedules = {
            "physical": {
                "format": "physical",
                "tiers": [
                    {"from_units": 0, "to_units": 5000, "rate": "0.10"},
                    {"from_units": 5001, "to_units": None, "rate": "0.12"},
                ],
            },
        }
    return {"contract_id": "contract-42", "schedules": schedules}


def _calculation_body(**overrides):
    body = {
        "contract_terms": _contract_terms(),
        "advance_state": {"total_advance": "5000.00", "recouped_to_date": "4000.00"},
        "net_sales": [
            {"format": "physical", "gross_units": 950, "returned_units": 0, "net_revenue": "23750.00"},
        ],
        "cumulative_units": {"physical": 4800},
        "period": {"start_date": "2026-01-01", "end_date": "2026-03-31"},
    }
    body.update(overrides)
    return body


@pytest.fixture()
def client():
    """Return a TestClient for the full FastAPI app."""
    from royalty_engine.main import app
    return TestClient(app)


# ===========================================================================
# Health
# ===========================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


# ===========================================================================
# POST /api/royalties/calculate
# ===========================================================================

class TestCalculateEndpoint:

    def test_dry_run(self, client):
        response = client.post("/api/royalties/calculate", json=_calculation_body())
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mode"] == "dry_run"
        assert data["next_advance_state"] is None
        calc = data["calculation"]
        assert calc["total_royalty_earned"] == "2750.00"
        assert calc["advance_recouped_this_period"] == "1000.00"
        assert calc["net_payable"] == "1750.00"
        rows = calc["per_format"][0]["tier_breakdown"]
        assert [r["royalty_amount"] for r in rows] == ["500.00", "2250.00"]

    def test_commit(self, client):
        response = client.post(
            "/api/royalties/calculate",
            params={"mode": "commit"},
            json=_calculation_body(),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "commit"
        assert data["next_advance_state"]["recouped_to_date"] == "5000.00"

    def test_returns_exceed_gross_is_422(self, client):
        body = _calculation_body(net_sales=[
            {"format": "physical", "gross_units": 100, "returned_units": 120, "net_revenue": "0"},
        ])
        response = client.post("/api/royalties/calculate", json=body)
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_SALES_DATA"
        assert detail["details"]["format"] == "physical"
        assert detail["details"]["returned_units"] == 120

    def test_missing_schedules_is_404(self, client):
        body = _calculation_body(contract_terms=_contract_terms(schedules={}))
        response = client.post("/api/royalties/calculate", json=body)
        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["code"] == "CONTRACT_NOT_FOUND"
        assert detail["details"]["contract_id"] == "contract-42"

    def test_unscheduled_format_is_422(self, client):
        body = _calculation_body(net_sales=[
            {"format": "audiobook", "gross_units": 10, "net_revenue": "150.00"},
        ])
        response = client.post("/api/royalties/calculate", json=body)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "TIER_CONFIGURATION_ERROR"

    def test_tier_gap_is_422(self, client):
        schedules = {
            "physical": {
                "format": "physical",
                "tiers": [
                    {"from_units": 0, "to_units": 5000, "rate": "0.10"},
                    {"from_units": 6000, "rate": "0.12"},
                ],
            },
        }
        body = _calculation_body(contract_terms=_contract_terms(schedules=schedules))
        response = client.post("/api/royalties/calculate", json=body)
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "TIER_CONFIGURATION_ERROR"
        assert "Gap" in detail["message"]
        assert detail["details"]["format"] == "physical"

    def test_reference_price_missing_is_422(self, client):
        terms = dict(_contract_terms(), royalty_basis="reference_price")
        response = client.post("/api/royalties/calculate", json=_calculation_body(contract_terms=terms))
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "TIER_CONFIGURATION_ERROR"


# ===========================================================================
# POST /api/royalties/calculate/export
# ===========================================================================

class TestExportEndpoint:

    def test_download(self, client):
        response = client.post("/api/royalties/calculate/export", json=_calculation_body())
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert 'filename="royalty-contract-42-2026-03-31.xlsx"' in response.headers["content-disposition"]
        ws = openpyxl.load_workbook(io.BytesIO(response.content)).active
        assert ws.title == "Royalty Calculation"

    def test_failure_is_typed(self, client):
        body = _calculation_body(contract_terms=_contract_terms(schedules={}))
        response = client.post("/api/royalties/calculate/export", json=body)
        assert response.status_code == 404

    def test_export_rejects_unreconciled_sales(self, client):
        body = _calculation_body(net_sales=[
            {"format": "physical", "gross_units": 10, "net_units": 12, "net_revenue": "250.00"},
        ])
        response = client.post("/api/royalties/calculate/export", json=body)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_SALES_DATA"


# ===========================================================================
# POST /api/royalties/net-sales
# ===========================================================================

class TestNetSalesEndpoint:

    def test_aggregates_lines(self, client):
        lines = [
            {"format": "ebook", "kind": "sale", "quantity": 100, "amount": "999.00"},
            {"format": "ebook", "kind": "return", "quantity": 2, "amount": "19.98", "status": "approved"},
            {"format": "ebook", "kind": "return", "quantity": 5, "amount": "49.95", "status": "pending"},
        ]
        response = client.post("/api/royalties/net-sales", json=lines)
        assert response.status_code == 200
        [row] = response.json()
        assert row["net_units"] == 98
        assert row["net_revenue"] == "979.02"

    def test_returns_exceed_gross(self, client):
        lines = [
            {"format": "physical", "kind": "sale", "quantity": 100, "amount": "2500.00"},
            {"format": "physical", "kind": "return", "quantity": 120, "amount": "3000.00"},
        ]
        response = client.post("/api/royalties/net-sales", json=lines)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_SALES_DATA"


# ===========================================================================
# POST /api/royalties/split
# ===========================================================================

class TestSplitEndpoint:

    def _body(self, authors):
        return {
            "contract_terms": _contract_terms(),
            "authors": authors,
            "net_sales": [{"format": "physical", "gross_units": 100, "net_revenue": "2500.00"}],
            "cumulative_units": {},
            "period": {"start_date": "2026-01-01", "end_date": "2026-03-31"},
        }

    def test_split(self, client):
        authors = [
            {"contact_id": "a", "ownership_percentage": "75"},
            {"contact_id": "b", "ownership_percentage": "25"},
        ]
        response = client.post("/api/royalties/split", json=self._body(authors))
        assert response.status_code == 200
        data = response.json()
        assert data["title_total_royalty"] == "250.00"
        assert [s["split_amount"] for s in data["author_splits"]] == ["187.50", "62.50"]

    def test_bad_percentages(self, client):
        authors = [{"contact_id": "a", "ownership_percentage": "80"}]
        response = client.post("/api/royalties/split", json=self._body(authors))
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "OWNERSHIP_SPLIT_ERROR"


# ===========================================================================
# POST /api/royalties/projection
# ===========================================================================

class TestProjectionEndpoint:

    def test_projection(self, client):
        body = {
            "tiers": [
                {"from_units": 5001, "rate": "0.12"},
                {"from_units": 0, "to_units": 5000, "rate": "0.10"},
            ],
            "lifetime_units": 4800,
            "units_per_month": 50,
        }
        response = client.post("/api/royalties/projection", json=body)
        assert response.status_code == 200
        data = response.json()
        assert data["current_tier_index"] == 0
        assert data["units_to_next_tier"] == 200
        assert data["months_to_next_tier"] == 4

    def test_gap_is_422(self, client):
        body = {
            "tiers": [
                {"from_units": 0, "to_units": 5000, "rate": "0.10"},
                {"from_units": 7000, "rate": "0.12"},
            ],
            "lifetime_units": 10,
        }
        response = client.post("/api/royalties/projection", json=body)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "TIER_CONFIGURATION_ERROR"
