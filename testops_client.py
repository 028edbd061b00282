"""Async HTTP client for the test-management service."""
from __future__ import annotations

import logging
import platform
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from exceptions import ApiError
from test_types import Attachment


class TestOpsClient:
    """Thin wrapper over the service's REST endpoints.

    Every endpoint answers ``{"status": true, "result": ...}``; anything else
    is raised as ``ApiError``. Transport errors (connection refused, timeouts)
    are retried a few times before they propagate.
    """

    def __init__(
        self,
        token: str,
        base_url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        reporter_name: str = "relay-reporter",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url
        self.logger = logger or logging.getLogger("relay_reporter")
        client_headers = {
            "Token": token,
            "X-Client": reporter_name,
            "X-Platform": f"python={platform.python_version()}; os={platform.system()}; arch={platform.machine()}",
        }
        client_headers.update(headers or {})
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=client_headers,
            timeout=timeout,
            transport=transport,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and unwrap the ``result`` payload."""
        self.logger.debug(f"{method} {path}")
        response = await self._client.request(method, path, **kwargs)

        if response.is_error:
            raise ApiError(
                f"Request failed with HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                endpoint=path,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(f"Invalid JSON response: {exc}", response.status_code, path) from exc

        if not payload.get("status", False):
            raise ApiError(
                payload.get("errorMessage") or "Request was not successful",
                status_code=response.status_code,
                endpoint=path,
            )
        return payload.get("result")

    async def get_run(self, project: str, run_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/run/{project}/{run_id}")

    async def create_run(
        self,
        project: str,
        title: str,
        description: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> int:
        """Create a run and return its id."""
        body: Dict[str, Any] = {"title": title, "is_autotest": True}
        if description:
            body["description"] = description
        if environment:
            body["environment_slug"] = environment
        result = await self._request("POST", f"/run/{project}", json=body)
        return int(result["id"])

    async def create_results(self, project: str, run_id: int, results: List[Dict[str, Any]]) -> None:
        await self._request("POST", f"/result/{project}/{run_id}/bulk", json={"results": results})

    async def complete_run(self, project: str, run_id: int) -> None:
        await self._request("POST", f"/run/{project}/{run_id}/complete")

    async def upload_attachment(self, project: str, attachment: Attachment) -> str:
        """Upload one attachment and return its hash."""
        files = {"file": (attachment.file_name, attachment.read(), attachment.content_type)}
        result = await self._request("POST", f"/attachment/{project}", files=files)
        return str(result[0]["hash"])

    async def aclose(self) -> None:
        await self._client.aclose()
