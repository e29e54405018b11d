"""GoHighLevel task API client.

Only task creation is needed by the compliance gate. Access tokens come from
an injected async provider keyed by location; token exchange and refresh live
with the OAuth integration.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

import httpx

from auma.services.notifications.errors import NotificationTransportError, TransportNotConfigured

logger = logging.getLogger(__name__)

TokenProvider = Callable[[str], Awaitable[str]]


class GhlTaskClient:
    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = "https://services.leadconnectorhq.com",
        api_version: str = "2021-07-28",
        timeout: float = 15.0,
    ):
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout

    async def create_task(
        self,
        location_id: str,
        *,
        contact_id: str,
        assigned_to: str,
        title: str,
        description: str,
        due_date: datetime,
    ) -> dict[str, Any]:
        """Create a task on a CRM contact, assigned to the MLO's CRM user."""
        token = await self.token_provider(location_id)
        if not token:
            raise TransportNotConfigured(f"No CRM access token for location {location_id}")

        url = f"{self.base_url}/contacts/{contact_id}/tasks"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    json={
                        "title": title,
                        "body": description,
                        "dueDate": due_date.isoformat(),
                        "assignedTo": assigned_to,
                        "completed": False,
                    },
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Version": self.api_version,
                    },
                    timeout=self.timeout,
                )
        except httpx.HTTPError as exc:
            raise NotificationTransportError(f"GHL task request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error("GHL API request failed %s: %s", response.status_code, response.text)
            raise NotificationTransportError(
                f"GHL API request failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        task = body.get("task", {})
        logger.info("GHL task %s created on contact %s", task.get("id"), contact_id)
        return task
