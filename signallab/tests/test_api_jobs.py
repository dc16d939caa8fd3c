"""Integration tests for API background job queue endpoints."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path

import httpx

from signallab.api.app import create_app
from signallab.api.jobs import InMemoryJobQueue
from signallab.core.utils.errors import StrategyError
from signallab.tests.helpers import write_config, write_dataset


async def _poll_job_result(
    client: httpx.AsyncClient,
    job_id: str,
    timeout_seconds: float = 15.0,
) -> dict[str, object]:
    """Poll a job endpoint until completion or timeout."""
    max_polls = max(1, int(timeout_seconds / 0.05))
    for _ in range(max_polls):
        response = await client.get(f"/jobs/{job_id}")
        if response.status_code != 200:
            raise AssertionError(
                f"Unexpected job status response: {response.status_code} {response.text}"
            )
        payload = response.json()
        if payload["status"] in {"succeeded", "failed"}:
            return payload
        await asyncio.sleep(0.05)
    raise AssertionError(f"Timed out waiting for job completion: {job_id}")


class TestApiJobs(unittest.IsolatedAsyncioTestCase):
    """Validate submit, poll and list behavior of background jobs."""

    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self._temp_dir.name)
        self.data_dir = self.root / "data"
        write_dataset(self.data_dir)
        self.app = create_app(data_dir=self.data_dir)

    def tearDown(self) -> None:
        self.app.state.job_queue.shutdown()
        self._temp_dir.cleanup()

    def _client(self) -> httpx.AsyncClient:
        transport = httpx.ASGITransport(app=self.app)
        return httpx.AsyncClient(transport=transport, base_url="http://testserver")

    async def test_backtest_job_succeeds(self) -> None:
        async with self._client() as client:
            submitted = await client.post(
                "/jobs/backtests",
                json={
                    "strategy_template": "high_confidence_momentum",
                    "start_date": "2024-01-01",
                    "end_date": "2024-01-10",
                    "initial_capital": 10000,
                },
            )
            self.assertEqual(submitted.status_code, 202, msg=submitted.text)
            job = submitted.json()
            self.assertEqual(job["job_type"], "backtest")
            self.assertIn(job["status"], {"queued", "running", "succeeded"})

            finished = await _poll_job_result(client, job["job_id"])

        self.assertEqual(finished["status"], "succeeded", msg=str(finished))
        result = finished["result"]
        assert isinstance(result, dict)
        self.assertEqual(result["strategy_id"], "high_confidence_momentum")
        self.assertEqual(len(result["portfolio_evolution"]), 10)
        self.assertIsNone(finished["error"])

    async def test_run_job_succeeds_and_is_listed(self) -> None:
        config_path = write_config(
            self.root / "config.yaml", self.data_dir, self.root / "artifacts"
        )
        async with self._client() as client:
            submitted = await client.post("/jobs/runs", json={"config_path": str(config_path)})
            self.assertEqual(submitted.status_code, 202, msg=submitted.text)
            job_id = submitted.json()["job_id"]

            finished = await _poll_job_result(client, job_id)
            listing = await client.get("/jobs", params={"limit": 5})

        self.assertEqual(finished["status"], "succeeded", msg=str(finished))
        result = finished["result"]
        assert isinstance(result, dict)
        self.assertEqual(result["strategy_id"], "test_strategy")
        self.assertTrue(Path(str(result["manifest_path"])).exists())

        self.assertEqual(listing.status_code, 200)
        self.assertEqual([item["job_id"] for item in listing.json()], [job_id])

    async def test_failed_job_reports_error_code(self) -> None:
        async with self._client() as client:
            submitted = await client.post(
                "/jobs/backtests",
                json={
                    "strategy_template": "no_such_template",
                    "start_date": "2024-01-01",
                    "end_date": "2024-01-10",
                },
            )
            self.assertEqual(submitted.status_code, 202)
            finished = await _poll_job_result(client, submitted.json()["job_id"])

        self.assertEqual(finished["status"], "failed")
        error = finished["error"]
        assert isinstance(error, dict)
        self.assertEqual(error["error_code"], "strategy_error")
        self.assertIn("no_such_template", error["message"])
        self.assertIsNone(finished["result"])

    async def test_unknown_job_returns_404(self) -> None:
        async with self._client() as client:
            response = await client.get("/jobs/job_999999")
        self.assertEqual(response.status_code, 404)


class TestInMemoryJobQueue(unittest.TestCase):
    """Validate queue state transitions without the HTTP layer."""

    def setUp(self) -> None:
        self.queue = InMemoryJobQueue(max_workers=1)

    def tearDown(self) -> None:
        self.queue.shutdown()

    def test_job_ids_are_sequential_and_listed_newest_first(self) -> None:
        first = self.queue.submit("backtest", {"n": 1}, lambda: {"value": 1})
        second = self.queue.submit("backtest", {"n": 2}, lambda: {"value": 2})
        self.assertEqual(first.job_id, "job_000001")
        self.assertEqual(second.job_id, "job_000002")

        self.queue.wait(first.job_id, timeout=5)
        self.queue.wait(second.job_id, timeout=5)
        listed = self.queue.list(limit=10)
        self.assertEqual([record.job_id for record in listed][0], "job_000002")
        self.assertEqual(len(self.queue.list(limit=1)), 1)

    def test_success_records_result(self) -> None:
        record = self.queue.submit("run", {}, lambda: {"answer": 42})
        finished = self.queue.wait(record.job_id, timeout=5)
        assert finished is not None
        self.assertTrue(finished.is_finished)
        self.assertEqual(finished.status, "succeeded")
        self.assertEqual(finished.result, {"answer": 42})
        self.assertIsNotNone(finished.started_at)
        self.assertIsNotNone(finished.finished_at)

    def test_failure_records_error(self) -> None:
        def _task() -> dict[str, object]:
            raise StrategyError("bad strategy")

        record = self.queue.submit("backtest", {}, _task)
        finished = self.queue.wait(record.job_id, timeout=5)
        assert finished is not None
        self.assertEqual(finished.status, "failed")
        self.assertEqual(finished.error_code, "strategy_error")
        self.assertEqual(finished.error_message, "bad strategy")
        self.assertIn("StrategyError", finished.error_traceback or "")

    def test_unexpected_error_is_internal(self) -> None:
        def _task() -> dict[str, object]:
            raise RuntimeError("boom")

        record = self.queue.submit("backtest", {}, _task)
        finished = self.queue.wait(record.job_id, timeout=5)
        assert finished is not None
        self.assertEqual(finished.error_code, "internal_error")

    def test_unknown_job(self) -> None:
        self.assertIsNone(self.queue.get("job_000123"))
        self.assertIsNone(self.queue.wait("job_000123"))


if __name__ == "__main__":
    unittest.main()
