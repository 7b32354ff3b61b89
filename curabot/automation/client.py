"""HTTP client for the external automation service."""

import logging
from typing import Any, Optional

import httpx

from curabot.config import AutomationSettings, get_settings
from curabot.errors import UpstreamError

logger = logging.getLogger(__name__)


class AutomationRejected(UpstreamError):
    """The service answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Automation service returned {status_code}", detail=body)
        self.upstream_status = status_code


class AutomationUnreachable(UpstreamError):
    """The request never got an answer (DNS, refused, timeout)."""


class AutomationClient:
    """Thin async wrapper over the automation service REST API."""

    def __init__(self, settings: Optional[AutomationSettings] = None, transport=None):
        self.settings = settings or get_settings().automation
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["x-api-key"] = self.settings.api_key
        return headers

    def events_url(self, project_id: str) -> str:
        return f"{self.settings.api_url.rstrip('/')}/api/events/{project_id}"

    async def trigger_run(self, project_id: str, name: str, url: str, objective: str) -> dict[str, Any]:
        """POST /api/run and return the decoded JSON body."""
        endpoint = f"{self.settings.api_url.rstrip('/')}/api/run"
        payload = {"projectId": project_id, "projectName": name, "url": url, "objective": objective}
        logger.info("Calling automation service for project %s", project_id)

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.request_timeout, transport=self.transport
            ) as client:
                resp = await client.post(endpoint, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("Automation service unreachable: %s", e)
            raise AutomationUnreachable(str(e) or e.__class__.__name__) from e

        logger.debug("Automation service responded %d", resp.status_code)
        if resp.status_code >= 300:
            logger.error("Automation service error %d: %s", resp.status_code, resp.text[:500])
            raise AutomationRejected(resp.status_code, resp.text)

        try:
            return resp.json()
        except ValueError:
            return {}
