"""Local backend: writes report files to disk."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from reporters.base import BaseReporter
from test_types import RunSummary
from writers import BaseWriter


class ReportReporter(BaseReporter):
    """Write buffered results through a local report writer."""

    def __init__(
        self,
        writer: BaseWriter,
        output_dir: Path,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.writer = writer
        self.output_dir = output_dir
        self.started_at: Optional[datetime] = None

    async def start_test_run(self) -> None:
        self.started_at = datetime.now(timezone.utc)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    async def send_results(self) -> None:
        for result in self.results:
            self.writer.write_result(result, self.output_dir)

    async def publish(self) -> None:
        await self.send_results()
        await self.complete()

    async def complete(self) -> None:
        summary = RunSummary(
            results=self.get_test_results(),
            started_at=self.started_at or datetime.now(timezone.utc),
            finished_at=datetime.now(timezone.utc),
        )
        path = self.writer.write_run(summary, self.output_dir)
        self.logger.info(f"{self.writer.format.value.upper()} report: {path}")
