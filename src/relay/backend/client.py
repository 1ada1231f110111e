"""HTTP client for the agent backend.

Uses ``httpx.AsyncClient`` with a per-call timeout and a single static
credential sent as HTTP Basic auth. Every transport or HTTP failure is
raised as ``BackendError`` carrying an HTTP-like status code, so callers
have one exception type to handle.
"""

from __future__ import annotations

import base64
import time
from typing import Any

import httpx

from relay.backend.base import CreatedJob, JobInfo, JobPage, LaunchOptions
from relay.core.config import BackendConfig
from relay.core.errors import BackendError
from relay.core.logging import get_logger

_logger = get_logger("backend.client")

# Status codes reported for failures that never produced an HTTP response.
TIMEOUT_STATUS = 408
UNREACHABLE_STATUS = 503


class AgentBackendClient:
    """Execute agent-backend calls over HTTP.

    The underlying ``httpx.AsyncClient`` is created lazily on first use so
    the client can be built outside a running event loop, and can be
    replaced in tests through the ``transport`` argument.

    Attributes:
        base_url: API root, without trailing slash.
        repository: Repository URL every created job works on.
        timeout: Per-call timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.cursor.com/v0",
        repository: str = "https://github.com/your-org/your-repo",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key must not be empty")
        self.base_url = base_url.rstrip("/")
        self.repository = repository
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls,
        config: BackendConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AgentBackendClient:
        """Build a client from config, resolving the credential from the environment.

        Raises:
            ConfigurationError: If the credential variable is unset.
        """
        return cls(
            api_key=config.resolve_api_key(),
            base_url=config.base_url,
            repository=config.repository,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def auth_headers(self) -> dict[str, str]:
        """Headers attached to every request."""
        token = base64.b64encode(f"{self._api_key}:".encode()).decode("ascii")
        return {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=self.auth_headers(),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP connection pool."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> AgentBackendClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Issue one request and decode its JSON body.

        Raises:
            BackendError: On timeout (408), connection failure (503), a
                non-2xx response (its status), or an undecodable body.
        """
        start = time.monotonic()
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            _logger.warning(
                "backend.request_timeout",
                operation=operation,
                timeout_seconds=self.timeout,
            )
            raise BackendError(
                TIMEOUT_STATUS, f"timed out after {self.timeout}s", operation=operation,
            ) from e
        except httpx.TransportError as e:
            _logger.warning(
                "backend.connection_error",
                operation=operation,
                endpoint=self.base_url,
                error_message=str(e),
            )
            raise BackendError(UNREACHABLE_STATUS, str(e) or type(e).__name__, operation=operation) from e

        duration = time.monotonic() - start
        if not response.is_success:
            body = response.text[:500] if response.text else response.reason_phrase
            log = _logger.warning if response.status_code == 429 else _logger.error
            log(
                "backend.error_response",
                operation=operation,
                status_code=response.status_code,
                duration_seconds=round(duration, 3),
                response_text=body,
            )
            raise BackendError(response.status_code, body, operation=operation)

        _logger.debug(
            "backend.response",
            operation=operation,
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(502, f"invalid JSON body: {e}", operation=operation) from e
        if not isinstance(data, dict):
            raise BackendError(502, "expected a JSON object", operation=operation)
        return data

    # ─── Job operations ────────────────────────────────────────────

    async def create_job(
        self,
        prompt_text: str,
        source_ref: str,
        options: LaunchOptions,
    ) -> CreatedJob:
        """Launch a remote job working on ``source_ref`` of the configured repository."""
        target: dict[str, Any] = {"autoCreatePr": options.auto_create_pr}
        if options.branch_name:
            target["branchName"] = options.branch_name
        payload: dict[str, Any] = {
            "prompt": {"text": prompt_text, "images": options.images},
            "model": options.model,
            "source": {"repository": self.repository, "ref": source_ref},
            "target": target,
        }
        if options.webhook_url:
            payload["webhook"] = {"url": options.webhook_url, "secret": options.webhook_secret}

        data = await self._request("create_job", "POST", "/agents", json=payload)
        job_id = data.get("id")
        if not job_id:
            raise BackendError(502, "create response has no job id", operation="create_job")
        _logger.info("backend.job_created", job_id=job_id, branch=options.branch_name)
        return CreatedJob(id=str(job_id), status=str(data.get("status") or "CREATING"))

    async def get_job(self, job_id: str) -> JobInfo:
        data = await self._request("get_job", "GET", f"/agents/{job_id}")
        info = JobInfo(id=str(data.get("id") or job_id), status=str(data.get("status") or ""))
        if data.get("summary"):
            info["summary"] = str(data["summary"])
        return info

    async def list_jobs(self, limit: int = 20, cursor: str | None = None) -> JobPage:
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        data = await self._request("list_jobs", "GET", "/agents", params=params)
        jobs = data.get("agents", data.get("jobs")) or []
        return JobPage(jobs=list(jobs), next_cursor=data.get("nextCursor") or None)

    async def delete_job(self, job_id: str) -> dict[str, Any]:
        data = await self._request("delete_job", "DELETE", f"/agents/{job_id}")
        _logger.info("backend.job_deleted", job_id=job_id)
        return data or {"id": job_id}

    async def add_followup(self, job_id: str, prompt_text: str) -> dict[str, Any]:
        payload = {"prompt": {"text": prompt_text, "images": []}}
        data = await self._request(
            "add_followup", "POST", f"/agents/{job_id}/followup", json=payload,
        )
        return data or {"id": job_id}

    # ─── Informational endpoints ───────────────────────────────────

    async def get_conversation(self, job_id: str) -> dict[str, Any]:
        return await self._request("get_conversation", "GET", f"/agents/{job_id}/conversation")

    async def get_key_info(self) -> dict[str, Any]:
        return await self._request("get_key_info", "GET", "/me")

    async def list_models(self) -> list[str]:
        data = await self._request("list_models", "GET", "/models")
        return [str(m) for m in data.get("models") or []]

    async def list_repositories(self) -> list[dict[str, Any]]:
        data = await self._request("list_repositories", "GET", "/repositories")
        return list(data.get("repositories") or [])


__all__ = ["AgentBackendClient", "TIMEOUT_STATUS", "UNREACHABLE_STATUS"]
