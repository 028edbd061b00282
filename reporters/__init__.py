"""Backend reporters test results are delivered to."""
from reporters.base import BaseReporter
from reporters.factory import ReporterFactory, create_reporter
from reporters.report import ReportReporter
from reporters.testops import TestOpsReporter

__all__ = [
    "BaseReporter",
    "ReporterFactory",
    "ReportReporter",
    "TestOpsReporter",
    "create_reporter",
]
