"""Remote backend: reports results to the test-management service."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from config import TestOpsConfig
from exceptions import RunNotStartedError, RunStateError
from reporters.base import BaseReporter
from state import RunStateStore
from test_types import TestResult
from testops_client import TestOpsClient


class TestOpsReporter(BaseReporter):
    """Buffer results and send them to a remote run in batches."""

    def __init__(
        self,
        config: TestOpsConfig,
        client: TestOpsClient,
        store: RunStateStore,
        environment: Optional[str] = None,
        root_suite: Optional[str] = None,
        reporter_name: str = "relay-reporter",
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.config = config
        self.client = client
        self.store = store
        self.environment = environment
        self.root_suite = root_suite
        self.reporter_name = reporter_name
        self.project = config.project
        self.run_id: Optional[int] = config.run.id
        self._sent = 0

    def set_test_results(self, results: Iterable[TestResult]) -> None:
        super().set_test_results(results)
        self._sent = 0

    async def start_test_run(self) -> None:
        if self.run_id is not None:
            await self.client.get_run(self.project, self.run_id)
            self.logger.info(f"Reporting into existing run {self.run_id}")
            return

        title = self.config.run.title or f"Automated run {datetime.now(timezone.utc).isoformat()}"
        description = self.config.run.description or f"{self.reporter_name} automated run"
        self.run_id = await self.client.create_run(
            self.project, title, description=description, environment=self.environment
        )
        self.logger.info(f"Test run {self.run_id} created")
        try:
            self.store.set_run_id(self.run_id)
        except RunStateError as exc:
            self.logger.warning(f"Unable to share run id with other workers: {exc}")

    async def add_test_result(self, result: TestResult) -> None:
        await super().add_test_result(result)
        if len(self.results) - self._sent < self.config.batch_size:
            return
        try:
            await self.send_results()
        except Exception:
            # The caller still holds the result; only earlier ones stay buffered.
            self.results.pop()
            raise

    async def send_results(self) -> None:
        pending = self.results[self._sent:]
        if not pending:
            return
        if self.run_id is None:
            raise RunNotStartedError("send results")

        payloads = [await self._to_payload(result) for result in pending]
        for start in range(0, len(payloads), self.config.batch_size):
            batch = payloads[start:start + self.config.batch_size]
            await self.client.create_results(self.project, self.run_id, batch)
            self._sent += len(batch)
        self.logger.info(f"Sent {len(payloads)} result(s) to run {self.run_id}")

    async def publish(self) -> None:
        await self.send_results()
        if self.config.run.complete:
            await self.complete()

    async def complete(self) -> None:
        if self.run_id is None:
            raise RunNotStartedError("complete run")
        await self.client.complete_run(self.project, self.run_id)
        self.logger.info(f"Test run {self.run_id} completed")

    async def _to_payload(self, result: TestResult) -> Dict[str, Any]:
        """Convert TestResult to the bulk-result request shape."""
        attachments: List[str] = []
        if self.config.upload_attachments:
            for attachment in result.attachments:
                attachments.append(await self.client.upload_attachment(self.project, attachment))

        suite = list(result.suite)
        if self.root_suite:
            suite.insert(0, self.root_suite)

        payload: Dict[str, Any] = {
            "status": result.status.value,
            "time_ms": int(result.execution.duration_seconds * 1000),
            "stacktrace": result.execution.stacktrace,
            "comment": result.message,
            "attachments": attachments,
            "param": result.params,
            "defect": False,
        }
        if result.testops_ids:
            payload["case_id"] = result.testops_ids[0]
        else:
            payload["case"] = {
                "title": result.title,
                "suite_title": "\t".join(suite) or None,
            }
        if result.fields:
            payload.setdefault("case", {}).update(result.fields)
        return payload

    async def aclose(self) -> None:
        await self.client.aclose()
