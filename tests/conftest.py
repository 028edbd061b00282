"""Pytest fixtures for relay reporter tests."""
from __future__ import annotations

import functools
import io
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

import httpx
import pytest
from rich.console import Console

from config import Mode, ReporterConfig
from console import ResultConsole
from exceptions import BackendError, ConfigurationError, DisabledError
from reporter import RelayReporter
from reporters.base import BaseReporter
from state import RunStateStore
from test_types import Attachment, TestExecution, TestResult, TestStatus
from testops_client import TestOpsClient


class FakeReporter(BaseReporter):
    """In-memory backend whose operations can be told to fail."""

    def __init__(self, name: str, fail_on: Optional[Set[str]] = None):
        super().__init__()
        self.name = name
        self.fail_on: Set[str] = set(fail_on or ())
        self.calls: List[str] = []
        self.observer: Optional[Callable[[str], None]] = None

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if self.observer:
            self.observer(operation)
        if operation in self.fail_on:
            raise BackendError(f"{self.name} {operation} failed")

    async def start_test_run(self) -> None:
        self._call("start_test_run")

    async def add_test_result(self, result: TestResult) -> None:
        self._call("add_test_result")
        await super().add_test_result(result)

    async def send_results(self) -> None:
        self._call("send_results")

    async def publish(self) -> None:
        self._call("publish")

    async def complete(self) -> None:
        self._call("complete")


class FakeFactory:
    """Reporter factory that hands out FakeReporters and records every request."""

    def __init__(self):
        self.backends: Dict[Mode, FakeReporter] = {}
        self.fail_construct: Set[Mode] = set()
        self.fail_ops: Dict[Mode, Set[str]] = {}
        self.created: List[Mode] = []

    def __call__(
        self,
        mode: Optional[Mode],
        config: ReporterConfig,
        store: RunStateStore,
        logger: logging.Logger,
    ) -> BaseReporter:
        if mode is None or mode == Mode.OFF:
            raise DisabledError()
        self.created.append(mode)
        if mode in self.fail_construct:
            raise ConfigurationError(f"cannot build {mode.value}")
        backend = FakeReporter(mode.value, self.fail_ops.get(mode))
        self.backends[mode] = backend
        return backend


class FakeService:
    """Records requests and answers like the test-management API."""

    def __init__(self, fail_paths: Optional[Dict[str, int]] = None):
        self.requests: List[httpx.Request] = []
        self.fail_paths: Dict[str, int] = dict(fail_paths or {})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for fragment, status in self.fail_paths.items():
            if fragment in path:
                return httpx.Response(status, json={"status": False, "errorMessage": "nope"})

        if request.method == "POST" and path == "/v1/run/DEMO":
            return httpx.Response(200, json={"status": True, "result": {"id": 101}})
        if request.method == "POST" and path.startswith("/v1/attachment/"):
            return httpx.Response(200, json={"status": True, "result": [{"hash": "abc123"}]})
        if request.method == "GET" and path.startswith("/v1/run/DEMO/"):
            return httpx.Response(200, json={"status": True, "result": {"id": int(path.rsplit("/", 1)[1])}})
        return httpx.Response(200, json={"status": True})

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def bodies(self, fragment: str) -> List[Any]:
        return [json.loads(r.content) for r in self.requests if fragment in r.url.path]


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, temp_dir: Path):
    """Keep environment variables, config files and the singleton out of tests."""
    for name in list(os.environ):
        if name.startswith("RELAY_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(temp_dir)
    monkeypatch.setattr(RelayReporter, "_instance", None)


@pytest.fixture
def store(temp_dir: Path) -> RunStateStore:
    return RunStateStore(temp_dir / "reporter_state.json")


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def console_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def result_console(console_output: io.StringIO) -> ResultConsole:
    return ResultConsole(Console(file=console_output, no_color=True, width=200))


@pytest.fixture
def make_reporter(store: RunStateStore, factory: FakeFactory, result_console: ResultConsole):
    """Build a RelayReporter wired to the fake factory and temp store."""

    def _make(options: Optional[dict] = None) -> RelayReporter:
        return RelayReporter(
            options,
            store=store,
            factory=factory,
            console=result_console,
        )

    return _make


@pytest.fixture
def make_result() -> Callable[..., TestResult]:
    """Build TestResults with sensible defaults."""

    def _make(title: str = "T1", status: TestStatus = TestStatus.PASSED, **kwargs) -> TestResult:
        execution = TestExecution(
            status=status,
            start_time=datetime(2024, 1, 1, 10, 0, 0),
            end_time=datetime(2024, 1, 1, 10, 0, 2),
            stacktrace="AssertionError: boom" if status == TestStatus.FAILED else None,
        )
        return TestResult(title=title, execution=execution, **kwargs)

    return _make


@pytest.fixture
def sample_results(make_result) -> List[TestResult]:
    """A small mixed run."""
    return [
        make_result("login works", TestStatus.PASSED, suite=("auth",), params={"browser": "firefox"}),
        make_result("logout works", TestStatus.FAILED, suite=("auth",), message="still logged in"),
        make_result("export csv", TestStatus.SKIPPED),
        make_result(
            "upload avatar",
            TestStatus.INVALID,
            attachments=(Attachment(file_name="log.txt", content_type="text/plain", content=b"trace"),),
        ),
    ]


@pytest.fixture
def service(monkeypatch) -> FakeService:
    """Fake remote service every client built by the backend factory talks to."""
    fake = FakeService()
    monkeypatch.setattr(
        "reporters.factory.TestOpsClient",
        functools.partial(TestOpsClient, transport=httpx.MockTransport(fake)),
    )
    return fake
