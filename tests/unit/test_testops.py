"""Unit tests for the remote backend and its HTTP client."""
from __future__ import annotations

from typing import Any

import httpx
import pytest

from config.models import TestOpsConfig as RemoteConfig
from exceptions import ApiError, RunNotStartedError
from reporters.testops import TestOpsReporter as RemoteReporter
from state import RunStateStore
from test_types import Attachment
from testops_client import TestOpsClient as Client


def make_remote(service, store: RunStateStore, **config: Any) -> RemoteReporter:
    client = Client(
        token="secret",
        base_url="https://api.test/v1",
        transport=httpx.MockTransport(service),
    )
    settings = {"project": "DEMO", "api": {"token": "secret"}, **config}
    return RemoteReporter(RemoteConfig.model_validate(settings), client, store, environment="staging")


class TestTestOpsClient:
    """Tests for the HTTP client."""

    @pytest.mark.asyncio
    async def test_sends_token_header(self, service):
        client = Client(token="secret", base_url="https://api.test/v1", transport=httpx.MockTransport(service))

        await client.complete_run("DEMO", 5)

        request = service.requests[0]
        assert request.headers["Token"] == "secret"
        assert "X-Platform" in request.headers

    @pytest.mark.asyncio
    async def test_http_error_raises_api_error(self, service):
        service.fail_paths.update({"/complete": 500})
        client = Client(token="secret", base_url="https://api.test/v1", transport=httpx.MockTransport(service))

        with pytest.raises(ApiError) as exc_info:
            await client.complete_run("DEMO", 5)

        assert exc_info.value.status_code == 500
        assert len(service.requests) == 1

    @pytest.mark.asyncio
    async def test_unsuccessful_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": False, "errorMessage": "Project not found"})

        client = Client(token="secret", base_url="https://api.test/v1", transport=httpx.MockTransport(handler))

        with pytest.raises(ApiError, match="Project not found"):
            await client.get_run("DEMO", 1)

    @pytest.mark.asyncio
    async def test_create_run_returns_id(self, service):
        client = Client(token="secret", base_url="https://api.test/v1", transport=httpx.MockTransport(service))

        run_id = await client.create_run("DEMO", "Nightly", environment="staging")

        assert run_id == 101
        body = service.bodies("/run/DEMO")[0]
        assert body["title"] == "Nightly"
        assert body["environment_slug"] == "staging"


class TestTestOpsReporter:
    """Tests for the remote backend."""

    @pytest.mark.asyncio
    async def test_start_creates_run_and_shares_id(self, service, store: RunStateStore):
        remote = make_remote(service, store)

        await remote.start_test_run()

        assert remote.run_id == 101
        assert store.read().run_id == 101

    @pytest.mark.asyncio
    async def test_start_with_configured_run_checks_it(self, service, store: RunStateStore):
        remote = make_remote(service, store, run={"id": 55})

        await remote.start_test_run()

        assert service.paths() == ["GET /v1/run/DEMO/55"]
        assert not store.exists()

    @pytest.mark.asyncio
    async def test_start_failure_raises(self, service, store: RunStateStore):
        service.fail_paths.update({"/run/DEMO": 401})
        remote = make_remote(service, store)

        with pytest.raises(ApiError):
            await remote.start_test_run()

    @pytest.mark.asyncio
    async def test_batches_sent_when_full(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store, batch_size=2)
        await remote.start_test_run()

        for title in ("T1", "T2", "T3"):
            await remote.add_test_result(make_result(title))

        bulk = service.bodies("/bulk")
        assert len(bulk) == 1
        assert [r["case"]["title"] for r in bulk[0]["results"]] == ["T1", "T2"]

        await remote.send_results()

        bulk = service.bodies("/bulk")
        assert [r["case"]["title"] for r in bulk[1]["results"]] == ["T3"]
        assert len(remote.get_test_results()) == 3

    @pytest.mark.asyncio
    async def test_send_without_run_raises(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store)
        await remote.add_test_result(make_result("T1"))

        with pytest.raises(RunNotStartedError):
            await remote.send_results()

    @pytest.mark.asyncio
    async def test_explicit_send_failure_keeps_buffer(self, service, store: RunStateStore, make_result):
        service.fail_paths.update({"/bulk": 503})
        remote = make_remote(service, store)
        await remote.start_test_run()
        await remote.add_test_result(make_result("T1"))

        with pytest.raises(ApiError):
            await remote.send_results()

        assert len(remote.get_test_results()) == 1

    @pytest.mark.asyncio
    async def test_failed_batch_drops_only_the_current_result(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store, batch_size=2)
        await remote.start_test_run()
        t1, t2 = make_result("T1"), make_result("T2")
        await remote.add_test_result(t1)
        service.fail_paths.update({"/bulk": 500})

        with pytest.raises(ApiError):
            await remote.add_test_result(t2)

        assert remote.get_test_results() == [t1]

    @pytest.mark.asyncio
    async def test_batch_retried_after_failed_add(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store, batch_size=1)
        await remote.start_test_run()
        service.fail_paths.update({"/bulk": 500})
        with pytest.raises(ApiError):
            await remote.add_test_result(make_result("T1"))

        service.fail_paths.clear()
        await remote.add_test_result(make_result("T2"))

        assert [r["case"]["title"] for r in service.bodies("/bulk")[-1]["results"]] == ["T2"]

    @pytest.mark.asyncio
    async def test_payload_shape(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store)
        remote.root_suite = "Web"
        await remote.start_test_run()
        attachment = Attachment(file_name="log.txt", content_type="text/plain", content=b"hello")

        await remote.add_test_result(make_result("linked", testops_ids=(12,), attachments=(attachment,)))
        await remote.add_test_result(make_result("unlinked", suite=("auth", "login"), fields={"severity": "high"}))
        await remote.send_results()

        linked, unlinked = service.bodies("/bulk")[0]["results"]
        assert linked["case_id"] == 12
        assert linked["attachments"] == ["abc123"]
        assert linked["status"] == "passed"
        assert linked["time_ms"] == 2000
        assert unlinked["case"] == {"title": "unlinked", "suite_title": "Web\tauth\tlogin", "severity": "high"}

    @pytest.mark.asyncio
    async def test_publish_sends_and_completes(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store)
        await remote.start_test_run()
        await remote.add_test_result(make_result("T1"))

        await remote.publish()

        assert service.paths()[-2:] == [
            "POST /v1/result/DEMO/101/bulk",
            "POST /v1/run/DEMO/101/complete",
        ]

    @pytest.mark.asyncio
    async def test_publish_without_completion(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store, run={"complete": False})
        await remote.start_test_run()

        await remote.publish()

        assert not any("complete" in p for p in service.paths())

    @pytest.mark.asyncio
    async def test_replacing_results_resends_everything(self, service, store: RunStateStore, make_result):
        remote = make_remote(service, store)
        await remote.start_test_run()
        await remote.add_test_result(make_result("T1"))
        await remote.send_results()

        remote.set_test_results([make_result("T1"), make_result("T2")])
        await remote.send_results()

        assert len(service.bodies("/bulk")[-1]["results"]) == 2
