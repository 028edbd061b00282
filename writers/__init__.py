"""Local report file writers."""
from writers.base import BaseWriter, ReportFormat
from writers.json_writer import JSONWriter
from writers.junit import JUnitWriter

__all__ = [
    "BaseWriter",
    "ReportFormat",
    "JSONWriter",
    "JUnitWriter",
    "create_writer",
]


def create_writer(report_format: str) -> BaseWriter:
    """Return the writer for a report format name."""
    fmt = ReportFormat(report_format)
    if fmt == ReportFormat.JUNIT:
        return JUnitWriter()
    return JSONWriter()
