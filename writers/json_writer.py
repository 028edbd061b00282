"""JSON report writer for local runs."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from test_types import Attachment, RunSummary, TestResult
from writers.base import BaseWriter, ReportFormat


class JSONWriter(BaseWriter):
    """Write machine-readable JSON report files.

    Layout under the output directory::

        run.json
        results/<result id>.json
        attachments/<attachment id>-<file name>
    """

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JSON

    def _iso(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    def _attachment_to_dict(self, attachment: Attachment, output_dir: Path) -> Dict[str, Any]:
        """Convert Attachment to a dict, copying in-memory content to disk."""
        path = attachment.file_path
        if attachment.content is not None:
            target_dir = output_dir / "attachments"
            target_dir.mkdir(parents=True, exist_ok=True)
            path = target_dir / f"{attachment.id}-{attachment.file_name}"
            path.write_bytes(attachment.content)
        return {
            "id": attachment.id,
            "file_name": attachment.file_name,
            "mime_type": attachment.content_type,
            "file_path": str(path) if path else None,
        }

    def _result_to_dict(self, result: TestResult, output_dir: Path) -> Dict[str, Any]:
        """Convert TestResult to JSON-serializable dict."""
        execution = result.execution
        return {
            "id": result.id,
            "title": result.title,
            "testops_ids": list(result.testops_ids),
            "execution": {
                "status": result.status.value,
                "start_time": self._iso(execution.start_time),
                "end_time": self._iso(execution.end_time),
                "duration_seconds": execution.duration_seconds,
                "stacktrace": execution.stacktrace,
                "thread": execution.thread,
            },
            "fields": result.fields,
            "params": result.params,
            "suite": list(result.suite),
            "message": result.message,
            "attachments": [self._attachment_to_dict(a, output_dir) for a in result.attachments],
        }

    def write_result(self, result: TestResult, output_dir: Path) -> Path:
        """Write one result to results/<id>.json."""
        results_dir = output_dir / "results"
        results_dir.mkdir(parents=True, exist_ok=True)
        target = results_dir / f"{result.id}.json"
        target.write_text(json.dumps(self._result_to_dict(result, output_dir), indent=2), encoding="utf-8")
        return target

    def write_run(self, summary: RunSummary, output_dir: Path) -> Path:
        """Write run.json with every result and the summary."""
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / "run.json"

        durations = [r.execution.duration_seconds for r in summary.results]
        avg_duration = sum(durations) / len(durations) if durations else 0

        report_data = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "report_version": "1.0",
            "execution": {
                "start_time": summary.started_at.isoformat(),
                "end_time": summary.finished_at.isoformat(),
                "duration_seconds": round(summary.duration_seconds, 2),
            },
            "results": [self._result_to_dict(r, output_dir) for r in summary.results],
            "summary": {
                "total": summary.total,
                "passed": summary.passed,
                "failed": summary.failed,
                "skipped": summary.skipped,
                "errors": summary.errors,
                "pass_rate": round(summary.pass_rate, 2),
                "avg_duration_seconds": round(avg_duration, 2),
            },
            "failed_tests": [
                {"id": r.id, "title": r.title, "message": r.message}
                for r in summary.failed_results
            ],
        }

        target.write_text(json.dumps(report_data, indent=2), encoding="utf-8")
        return target
