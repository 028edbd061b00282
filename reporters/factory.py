"""Factory for creating backend reporters from a mode."""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from config import Mode, ReporterConfig
from exceptions import ConfigurationError, DisabledError
from reporters.base import BaseReporter
from reporters.report import ReportReporter
from reporters.testops import TestOpsReporter
from state import RunStateStore
from testops_client import TestOpsClient
from writers import create_writer

ReporterFactory = Callable[[Mode, ReporterConfig, RunStateStore, logging.Logger], BaseReporter]


def _create_testops(
    config: ReporterConfig,
    store: RunStateStore,
    logger: logging.Logger,
) -> BaseReporter:
    testops = config.testops
    if not testops.api.token:
        raise ConfigurationError(
            'Either "testops.api.token" option or RELAY_TESTOPS_API_TOKEN is required in "testops" mode',
            field="testops.api.token",
            env_var="RELAY_TESTOPS_API_TOKEN",
        )
    if not testops.project:
        raise ConfigurationError(
            'Either "testops.project" option or RELAY_TESTOPS_PROJECT is required in "testops" mode',
            field="testops.project",
            env_var="RELAY_TESTOPS_PROJECT",
        )

    client = TestOpsClient(
        token=testops.api.token,
        base_url=testops.api.base_url,
        timeout=testops.api.timeout,
        headers=testops.api.headers,
        reporter_name=config.reporter_name,
        logger=logger,
    )
    return TestOpsReporter(
        testops,
        client,
        store,
        environment=config.environment,
        root_suite=config.root_suite,
        reporter_name=config.reporter_name,
        logger=logger,
    )


def _create_report(
    config: ReporterConfig,
    store: RunStateStore,
    logger: logging.Logger,
) -> BaseReporter:
    return ReportReporter(create_writer(config.report.format), config.report.path, logger=logger)


REPORTER_MAP: Dict[Mode, Callable[[ReporterConfig, RunStateStore, logging.Logger], BaseReporter]] = {
    Mode.TESTOPS: _create_testops,
    Mode.REPORT: _create_report,
}


def create_reporter(
    mode: Optional[Mode],
    config: ReporterConfig,
    store: RunStateStore,
    logger: logging.Logger,
) -> BaseReporter:
    """
    Build the backend for ``mode``.

    Raises:
        DisabledError: mode is ``off`` or unset
        ConfigurationError: mode is unknown or its settings are incomplete
    """
    if mode is None or mode == Mode.OFF:
        raise DisabledError()

    builder = REPORTER_MAP.get(mode)
    if builder is None:
        raise ConfigurationError(f"Unknown mode: '{mode}'. Available modes: {[m.value for m in REPORTER_MAP]}")

    logger.debug(f"Creating {mode.value} reporter")
    return builder(config, store, logger)
