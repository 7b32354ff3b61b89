"""Server-sent event receiver for the automation service's project stream."""

import logging
from typing import AsyncIterator, Optional

import httpx

from curabot.automation.client import AutomationClient
from curabot.automation.events import EventParseError, ProjectEvent, parse_event

logger = logging.getLogger(__name__)


class ChannelLost(Exception):
    """The event stream dropped or could not be opened."""


def _frame_data(lines: list[str]) -> Optional[str]:
    """Join the data: lines of one frame, or None if it carried no data."""
    data = [line[5:].lstrip(" ") for line in lines if line.startswith("data:")]
    return "\n".join(data) if data else None


class EventReceiver:
    """One long-lived event channel for one project.

    Iterating yields parsed events in arrival order. The receiver never
    reconnects on its own: a dropped stream raises ChannelLost and the caller
    decides what to do.
    """

    def __init__(
        self,
        project_id: str,
        automation: Optional[AutomationClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.project_id = project_id
        self.automation = automation or AutomationClient()
        # Reuse the automation client's transport unless one is given
        self._transport = transport if transport is not None else self.automation.transport
        self._client: Optional[httpx.AsyncClient] = None
        self._response: Optional[httpx.Response] = None
        self.connected = False
        self.closed = False

    async def events(self) -> AsyncIterator[ProjectEvent]:
        if self.closed:
            return
        url = self.automation.events_url(self.project_id)
        headers = {"Accept": "text/event-stream"}
        if self.automation.settings.api_key:
            headers["x-api-key"] = self.automation.settings.api_key

        # No read timeout: the stream may be idle between steps
        timeout = httpx.Timeout(self.automation.settings.request_timeout, read=None)
        self._client = httpx.AsyncClient(timeout=timeout, transport=self._transport)
        try:
            async with self._client.stream("GET", url, headers=headers) as resp:
                self._response = resp
                if resp.status_code != 200:
                    raise ChannelLost(f"Event stream returned {resp.status_code}")
                self.connected = True
                logger.info("Connected to project events for %s", self.project_id)

                pending: list[str] = []
                async for line in resp.aiter_lines():
                    if self.closed:
                        return
                    if line:
                        if not line.startswith(":"):
                            pending.append(line)
                        continue
                    payload = _frame_data(pending)
                    pending = []
                    if payload is None:
                        continue
                    try:
                        event = parse_event(payload)
                    except EventParseError as e:
                        logger.warning("Skipping malformed event for %s: %s", self.project_id, e)
                        continue
                    logger.debug("Event %s for project %s", event.type, self.project_id)
                    yield event
                    if self.closed:
                        return

                # An event only counts once its terminating blank line arrives
                if pending and not self.closed:
                    logger.warning(
                        "Discarding unterminated event for %s: %s", self.project_id, "\n".join(pending)[:200]
                    )

            if not self.closed:
                raise ChannelLost("Event stream ended unexpectedly")
        except (httpx.HTTPError, httpx.StreamError) as e:
            if self.closed:
                return
            logger.error("Event stream error for %s: %s", self.project_id, e)
            raise ChannelLost(str(e) or e.__class__.__name__) from e
        finally:
            self.connected = False
            await self._client.aclose()
            self._client = None
            self._response = None

    async def close(self) -> None:
        """Stop the stream. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self.connected = False
        if self._response is not None:
            await self._response.aclose()
        logger.debug("Closed event channel for %s", self.project_id)
