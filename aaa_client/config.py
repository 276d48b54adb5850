"""Backend endpoints, timeouts and push-channel tuning, read from the environment or .env."""

from __future__ import annotations

import json
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_list(v: object) -> list[str]:
    """Split a setting such as ``allowed_approval_types`` into names.

    Accepts a list, a JSON array (``'["a", "b"]'``) or a comma-separated string
    (``"a, b"``). Blank entries are dropped.
    """
    if v is None:
        return []
    if isinstance(v, str):
        text = v.strip()
        items = json.loads(text) if text.startswith("[") else text.split(",")
    else:
        items = list(v)  # type: ignore[call-overload]
    return [str(item).strip() for item in items if str(item).strip()]


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    # Backend
    api_base_url: str = "http://localhost:8080"
    http_timeout_seconds: float = 30.0
    # Optional session id forwarded on the push connection and ack requests.
    # Cookie handling itself belongs to the caller's HTTP client.
    session_id: str = ""

    # Chat streaming
    chat_stream_path: str = "/streamChat/timeout"
    chat_model_stream_path: str = "/streamChat/withModel"
    chat_timeout_seconds: float = 180.0
    # Stored as str: comma-separated or JSON array. Use parse_list() at the point of use.
    allowed_approval_types: str = "hr_leave_grant"

    # Push notifications
    sse_notifications_path: str = "/sse/notifications"
    sse_ack_path: str = "/sse/notifications/ack"
    sse_reconnect_base_seconds: float = 1.0
    sse_reconnect_max_seconds: float = 30.0
    # Consecutive failed connects before giving up (0 = retry forever)
    sse_max_reconnect_attempts: int = 10
    notification_store_limit: int = 100

    # Acknowledgment batching
    ack_batch_size: int = 10
    ack_flush_interval_seconds: float = 5.0
    ack_failure_policy: str = "drop"  # "drop" | "retry"
    ack_max_retries: int = 3

    # Alert inbox
    inbox_check_path: str = "/queue/checkAlerts"
    inbox_update_path: str = "/queue/updateAlerts"
    inbox_delete_path: str = "/queue/deleteAlerts"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def url(self, path: str) -> str:
        """Join ``path`` onto the configured API base URL."""
        return f"{self.api_base_url.rstrip('/')}/{path.lstrip('/')}"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
