"""Alert inbox client: persisted notifications listed in the notification panel."""

from __future__ import annotations

import httpx
import structlog

from aaa_client.config import Settings, get_settings
from aaa_client.notifications.models import AlertItem

logger = structlog.get_logger()


class InboxClient:
    """Async client for the alert inbox endpoints.

    Every call returns the user's alert list as the server sees it after the
    operation.
    """

    def __init__(self, settings: Settings | None = None, http: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._http = http

    async def _post(self, path: str, body: dict) -> list[AlertItem]:
        url = self.settings.url(path)
        try:
            if self._http is not None:
                resp = await self._http.post(url, json=body)
            else:
                async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                    resp = await client.post(url, json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("inbox_http_error", path=path, status=e.response.status_code)
            raise RuntimeError(f"Inbox request failed: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("inbox_request_error", path=path, error=str(e))
            raise RuntimeError(f"Failed to reach inbox service: {e}") from e

        data = resp.json()
        if data.get("error"):
            logger.error("inbox_error_response", path=path, error=data["error"])
            raise RuntimeError(str(data["error"]))

        return [AlertItem.model_validate(item) for item in data.get("alerts") or []]

    async def get_alerts(self, user_id: str) -> list[AlertItem]:
        return await self._post(self.settings.inbox_check_path, {"user_id": user_id})

    async def mark_as_read(self, user_id: str, alert_id: int) -> list[AlertItem]:
        return await self._post(
            self.settings.inbox_update_path, {"id": alert_id, "user_id": user_id}
        )

    async def delete_alert(self, user_id: str, alert_id: int) -> list[AlertItem]:
        return await self._post(
            self.settings.inbox_delete_path, {"id": alert_id, "user_id": user_id}
        )
