"""
Reserveo - Jobs Endpoint Tests
API key protection and manual triggering of the scheduled jobs.

Run: pytest tests/test_jobs.py -v
"""

import asyncio
import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch, AsyncMock

from utils.scheduler import JOBS, run_job


class TestJobsAuth:
    """Tests for the X-API-Key check."""

    def test_missing_api_key(self, client: TestClient):
        """
        Test: Trigger a job without API key
        Expected: 401 Unauthorized
        """
        response = client.post("/jobs/expire_user_blocks")

        assert response.status_code == 401
        assert "Missing API key" in response.json()["detail"]

    def test_invalid_api_key(self, client: TestClient, invalid_api_key_headers):
        response = client.get("/jobs", headers=invalid_api_key_headers)

        assert response.status_code == 401


class TestJobsTrigger:
    """Tests for GET /jobs and POST /jobs/{job_name}."""

    def test_list_jobs(self, client: TestClient, api_key_headers):
        response = client.get("/jobs", headers=api_key_headers)

        assert response.status_code == 200
        names = {job["name"] for job in response.json()}
        assert names == set(JOBS)
        assert len(names) == 8

    def test_unknown_job(self, client: TestClient, api_key_headers):
        response = client.post("/jobs/format_disk", headers=api_key_headers)

        assert response.status_code == 404

    def test_run_writes_cron_log(self, client: TestClient, api_key_headers, db):
        """
        Test: Run the block expiry job on an empty database
        Expected: Success with zero records, one cron_logs entry
        """
        response = client.post("/jobs/expire_user_blocks", headers=api_key_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["job_name"] == "expire_user_blocks"
        assert data["status"] == "success"
        assert data["records_affected"] == 0
        assert data["error"] is None
        assert data["duration_ms"] >= 0

        logs = db.all("cron_logs")
        assert len(logs) == 1
        assert logs[0]["job_name"] == "expire_user_blocks"


class TestRunJob:
    """Tests for run_job error handling."""

    def test_failure_is_logged_not_raised(self, db):
        """
        Test: The job coroutine raises
        Expected: status error with the message, still logged to cron_logs
        """
        name = "generate_warnings"
        failing = AsyncMock(side_effect=RuntimeError("firestore unavailable"))
        with patch.dict(JOBS, {name: (failing, JOBS[name][1])}):
            result = asyncio.run(run_job(name))

        assert result["status"] == "error"
        assert result["error"] == "firestore unavailable"
        assert result["records_affected"] == 0
        assert db.all("cron_logs")[0]["status"] == "error"

    def test_unknown_name_raises(self):
        with pytest.raises(KeyError):
            asyncio.run(run_job("nope"))
