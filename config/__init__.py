"""Configuration module for the relay reporter."""
from config.models import (
    ApiConfig,
    Mode,
    ReportConfig,
    ReporterConfig,
    RunConfig,
    TestOpsConfig,
    load_config,
)

__all__ = [
    "ApiConfig",
    "Mode",
    "ReportConfig",
    "ReporterConfig",
    "RunConfig",
    "TestOpsConfig",
    "load_config",
]
