"""Integration tests for API endpoints"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from bourso_desk.domain.exceptions import InvalidCredentialsError, TransferRejectedError

LOGIN = {"client_id": "1234567", "password": "12345678"}


def steps_stream(*steps, error=None):
    async def generate():
        for step in steps:
            yield step
        if error is not None:
            raise error

    return generate()


@pytest.fixture
def logged_in(client: TestClient) -> TestClient:
    response = client.post("/v1/session/login", json=LOGIN)
    assert response.json()["state"] == "ready"
    return client


@pytest.fixture
def job_store(adapter):
    """Let the adapter double keep saved jobs like the real backend"""
    saved = {}

    async def add(job):
        saved[job.id] = job

    async def delete(job_id):
        saved.pop(job_id, None)

    adapter.add_scheduled_job.side_effect = add
    adapter.delete_scheduled_job.side_effect = delete
    adapter.list_scheduled_jobs.side_effect = lambda: list(saved.values())
    return saved


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    client.post("/v1/session/login", json=LOGIN)

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "bourso_session_transitions_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    """Test an incoming X-Request-ID is reused on the response"""
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


class TestSession:
    def test_login_reaches_ready(self, client: TestClient):
        """Test POST /v1/session/login runs the session to Ready"""
        response = client.post("/v1/session/login", json=LOGIN)

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "ready"
        assert data["progress"] == 100
        assert data["error"] is None

    def test_malformed_credentials(self, client: TestClient, adapter):
        """Test malformed credentials are a 422 and never reach the brokerage"""
        response = client.post("/v1/session/login", json={"client_id": "12", "password": "12345678"})

        assert response.status_code == 422
        assert response.json()["detail"] == "Client ID must be either 7 or 8 digits"
        adapter.authenticate.assert_not_called()

    def test_invalid_credentials(self, client: TestClient, adapter):
        """Test rejected credentials reset the session with the client id to pre-fill"""
        adapter.authenticate.side_effect = InvalidCredentialsError("nope")

        response = client.post("/v1/session/login", json=LOGIN)

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "uninitiated"
        assert data["error"] == "Invalid client ID or password"
        assert data["prefill_client_id"] == "1234567"

    def test_mfa_without_challenge(self, client: TestClient):
        """Test answering MFA with nothing pending is a conflict"""
        response = client.post("/v1/session/mfa", json={"code": "123456"})
        assert response.status_code == 409

    def test_logout(self, logged_in: TestClient):
        """Test logout empties the account list"""
        response = logged_in.post("/v1/session/logout")

        assert response.json()["state"] == "uninitiated"
        assert logged_in.get("/v1/accounts").json()["accounts"] == []


class TestAccountsAndTransfers:
    def test_accounts_after_login(self, logged_in: TestClient):
        """Test GET /v1/accounts lists accounts with cash and clickability"""
        data = logged_in.get("/v1/accounts").json()

        by_id = {a["id"]: a for a in data["accounts"]}
        assert data["total_balance_cents"] == 250_000 + 1_000_000 + 1_500_000 + 800_000 - 9_000_000
        assert by_id["pea-1"]["cash_balance"] == "420.50"
        assert by_id["chk-1"]["clickable"] is True
        assert by_id["pea-1"]["clickable"] is False

    def test_no_transfer_open(self, client: TestClient):
        """Test GET /v1/transfers/current is a 404 before any selection"""
        assert client.get("/v1/transfers/current").status_code == 404

    def test_select_and_transfer(self, logged_in: TestClient, adapter):
        """Test the two-click selection opens a transfer that then succeeds"""
        adapter.transfer_funds = MagicMock(return_value=steps_stream(*range(1, 11)))

        armed = logged_in.post("/v1/accounts/chk-1/select").json()
        assert armed["armed_id"] == "chk-1"
        assert armed["transfer"] is None

        picked = logged_in.post("/v1/accounts/pea-1/select").json()
        assert picked["armed_id"] is None
        assert picked["transfer"]["source_account_id"] == "chk-1"
        assert picked["transfer"]["target_account_id"] == "pea-1"

        response = logged_in.post("/v1/transfers", json={"amount": "25", "reason": "top up"})

        assert response.status_code == 200
        assert response.json() == {
            "succeeded": True,
            "message": "Transfered €25 successfully",
            "transfer": None,
        }
        assert logged_in.get("/v1/transfers/current").status_code == 404
        # accounts are fetched again after a successful transfer
        assert adapter.get_accounts.await_count == 2

    def test_failed_transfer_is_kept(self, logged_in: TestClient, adapter):
        """Test a rejected transfer keeps the form and resets progress"""
        adapter.transfer_funds = MagicMock(
            return_value=steps_stream(1, 2, error=TransferRejectedError("Insufficient funds"))
        )
        logged_in.post("/v1/accounts/chk-1/select")
        logged_in.post("/v1/accounts/sav-1/select")

        data = logged_in.post("/v1/transfers", json={"amount": "99.99"}).json()

        assert data["succeeded"] is False
        assert data["message"] == "Transfer failed: Insufficient funds"
        assert data["transfer"]["amount"] == "99.99"
        assert data["transfer"]["progress_step"] == 0

    def test_transfer_amount_validation(self, logged_in: TestClient, adapter):
        """Test amounts with more than two decimals are rejected"""
        logged_in.post("/v1/accounts/chk-1/select")
        logged_in.post("/v1/accounts/sav-1/select")

        response = logged_in.post("/v1/transfers", json={"amount": "10.001"})

        assert response.status_code == 422
        assert response.json()["detail"] == "Maximum 2 decimal places allowed"

    def test_close_transfer(self, logged_in: TestClient):
        """Test DELETE /v1/transfers/current closes the modal"""
        logged_in.post("/v1/accounts/chk-1/select")
        logged_in.post("/v1/accounts/sav-1/select")

        assert logged_in.delete("/v1/transfers/current").status_code == 204
        assert logged_in.get("/v1/transfers/current").status_code == 404


class TestJobs:
    def test_create_list_delete(self, logged_in: TestClient, job_store):
        """Test the DCA job lifecycle"""
        created = logged_in.post(
            "/v1/jobs",
            json={"account_id": "pea-1", "symbol": "1rTCW8", "value": 2, "use_amount": False, "schedule_type": "weekly"},
        )

        assert created.status_code == 201
        job = created.json()
        assert job["id"] == "weeklyorder_buy_2_1rTCW8"
        assert job["command"] == "Order: buy 2 share(s) of 1rTCW8"
        assert job["balance_status"] == "sufficient"

        listed = logged_in.get("/v1/jobs").json()
        assert [j["id"] for j in listed] == [job["id"]]

        assert logged_in.delete(f"/v1/jobs/{job['id']}").status_code == 204
        assert logged_in.get("/v1/jobs").json() == []

    def test_invalid_job(self, logged_in: TestClient, job_store):
        """Test a non-positive value is a 422"""
        response = logged_in.post(
            "/v1/jobs",
            json={"account_id": "pea-1", "symbol": "1rTCW8", "value": "0", "schedule_type": "daily"},
        )

        assert response.status_code == 422
        assert job_store == {}

    def test_skip_unknown_due_job(self, client: TestClient):
        """Test skipping a prompt that does not exist is a conflict"""
        assert client.post("/v1/jobs/due/nothing/skip").status_code == 409

    def test_order_needs_one_size(self, logged_in: TestClient):
        """Test POST /v1/orders requires exactly one of amount or quantity"""
        response = logged_in.post("/v1/orders", json={"account_id": "pea-1", "symbol": "1rTCW8"})
        assert response.status_code == 422


class TestPerformance:
    def test_performance(self, logged_in: TestClient):
        """Test GET /v1/performance over the default month"""
        data = logged_in.get("/v1/performance").json()

        assert data["period"] == "1m"
        assert data["label"] == "1 Month"
        assert len(data["by_asset"]) == 2

    def test_unknown_period(self, client: TestClient):
        """Test an unknown period is a 422"""
        assert client.get("/v1/performance", params={"period": "5y"}).status_code == 422
