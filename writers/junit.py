"""JUnit XML report writer for CI integration."""
from __future__ import annotations

import html
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from test_types import RunSummary, TestResult, TestStatus
from writers.base import BaseWriter, ReportFormat


class JUnitWriter(BaseWriter):
    """Write JUnit XML reports for CI/CD integration."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JUNIT

    def _escape_xml(self, text: str) -> str:
        """Escape special XML characters."""
        return html.escape(str(text), quote=True)

    def _cdata(self, text: str) -> str:
        """Split CDATA terminators so the section stays well-formed."""
        return text.replace("]]>", "]]]]><![CDATA[>")

    def _format_timestamp(self, dt: datetime) -> str:
        """Format datetime for JUnit XML."""
        return dt.strftime("%Y-%m-%dT%H:%M:%S")

    def _build_testcase_xml(self, result: TestResult) -> str:
        """Build XML for a single test case."""
        lines: List[str] = []

        classname = self._escape_xml(".".join(result.suite) or "relay")
        name = self._escape_xml(result.title)
        time_sec = f"{result.execution.duration_seconds:.3f}"
        message = self._escape_xml(result.message or result.status.value)

        lines.append(f'    <testcase classname="{classname}" name="{name}" time="{time_sec}">')

        if result.status == TestStatus.FAILED:
            lines.append(f'      <failure message="{message}" type="AssertionError"><![CDATA[')
            lines.append(self._cdata(result.execution.stacktrace or result.message or ""))
            lines.append("]]></failure>")
        elif result.status in (TestStatus.BLOCKED, TestStatus.INVALID):
            lines.append(f'      <error message="{message}" type="{result.status.value}"><![CDATA[')
            lines.append(self._cdata(result.execution.stacktrace or result.message or ""))
            lines.append("]]></error>")
        elif result.status in (TestStatus.SKIPPED, TestStatus.DISABLED):
            lines.append(f'      <skipped message="{message}"/>')

        if result.params:
            lines.append("      <properties>")
            for key, value in result.params.items():
                lines.append(
                    f'        <property name="param.{self._escape_xml(key)}" value="{self._escape_xml(value)}"/>'
                )
            lines.append("      </properties>")

        lines.append("    </testcase>")
        return "\n".join(lines)

    def write_result(self, result: TestResult, output_dir: Path) -> Path:
        """Write a single-case JUnit file under results/."""
        execution = result.execution
        # Keep both ends from the same source so naive and aware times never mix.
        started_at = execution.start_time or execution.end_time or datetime.now(timezone.utc)
        summary = RunSummary(
            results=[result],
            started_at=started_at,
            finished_at=execution.end_time or started_at,
        )
        return self._write(summary, output_dir / "results", f"{result.id}.xml")

    def write_run(self, summary: RunSummary, output_dir: Path) -> Path:
        """Write the combined junit.xml for the run."""
        return self._write(summary, output_dir, "junit.xml")

    def _write(self, summary: RunSummary, output_dir: Path, filename: str) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / filename

        lines = ['<?xml version="1.0" encoding="UTF-8"?>']
        lines.append(
            f'<testsuite name="Relay Reporter" '
            f'tests="{summary.total}" '
            f'failures="{summary.failed}" '
            f'errors="{summary.errors}" '
            f'skipped="{summary.skipped}" '
            f'time="{summary.duration_seconds:.3f}" '
            f'timestamp="{self._format_timestamp(summary.started_at)}">'
        )

        lines.append("  <properties>")
        lines.append('    <property name="reporter" value="relay-junit"/>')
        lines.append(f'    <property name="generated_at" value="{datetime.now(timezone.utc).isoformat()}"/>')
        lines.append("  </properties>")

        for result in summary.results:
            lines.append(self._build_testcase_xml(result))

        lines.append("</testsuite>")

        target.write_text("\n".join(lines), encoding="utf-8")
        return target
