"""HTTP client for the assistant's streaming chat endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import httpx
import structlog

from aaa_client.chat.segmenter import StreamSegmenter
from aaa_client.chat.triggers import ApprovalTrigger, LeaveTrigger
from aaa_client.config import Settings, get_settings, parse_list

logger = structlog.get_logger()

# Archive names are server-side identifiers, not display strings
CODE_ARCHIVE_NAMES = frozenset({"코딩어시스턴트"})
SAP_ARCHIVE_NAMES = frozenset({"SAP어시스턴트", "SAP 어시스턴트"})
CHATBOT_ARCHIVE_NAMES = frozenset({"AI Chatbot"})

# UI model id -> backend model name
MODEL_NAMES: dict[str, str] = {
    "gpt-5.2": "Gpt-5.2",
    "gemini-pro-3": "Gemini-Pro-3",
    "claude-sonnet-4.5": "Claude-Sonnet-4.5",
}
DEFAULT_MODEL_NAME = "Gemini-Pro-3"


def _category(archive_name: str) -> str:
    if archive_name in CODE_ARCHIVE_NAMES:
        return "code"
    if archive_name in SAP_ARCHIVE_NAMES:
        return "sap"
    return ""


def uses_model_selector(archive_name: str) -> bool:
    """Coding, SAP and chatbot archives go through the model-selector endpoint."""
    return archive_name in CODE_ARCHIVE_NAMES | SAP_ARCHIVE_NAMES | CHATBOT_ARCHIVE_NAMES


def build_chat_form(
    *,
    user_id: str,
    archive_id: str,
    message: str,
    ai_model: str = "",
    archive_name: str = "",
    web_search: bool = False,
    module: str = "",
) -> tuple[bool, dict[str, str]]:
    """Return ``(model_selector, form_fields)`` for a chat request."""
    if uses_model_selector(archive_name):
        return True, {
            "category": _category(archive_name),
            "module": module.strip().lower() if module else "",
            "model": MODEL_NAMES.get(ai_model, DEFAULT_MODEL_NAME),
            "archive_id": archive_id,
            "user_id": user_id,
            "message": message,
            "search_yn": "y" if web_search else "n",
        }

    return False, {
        "category": "",
        "module": "",
        "archive_id": archive_id,
        "user_id": user_id,
        "message": message,
    }


class ChatStreamClient:
    """Send a chat message and segment the streamed reply."""

    def __init__(
        self,
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
        segmenter: StreamSegmenter | None = None,
    ):
        self.settings = settings or get_settings()
        self._http = http
        self.segmenter = segmenter or StreamSegmenter(
            parse_list(self.settings.allowed_approval_types)
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        # An injected client belongs to the caller (cookies, auth); don't close it
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=self.settings.chat_timeout_seconds) as client:
            yield client

    async def send_message(
        self,
        *,
        user_id: str,
        archive_id: str,
        message: str,
        ai_model: str = "",
        archive_name: str = "",
        web_search: bool = False,
        module: str = "",
        on_chunk: Callable[[str], None] | None = None,
        on_leave_trigger: Callable[[LeaveTrigger], None] | None = None,
        on_approval_trigger: Callable[[ApprovalTrigger], None] | None = None,
    ) -> str:
        """POST the message and return the full display text of the reply.

        Raises ``RuntimeError`` on a non-2xx response or a failed connection.
        Errors after streaming has started propagate unchanged.
        """
        model_selector, form = build_chat_form(
            user_id=user_id,
            archive_id=archive_id,
            message=message,
            ai_model=ai_model,
            archive_name=archive_name,
            web_search=web_search,
            module=module,
        )
        path = self.settings.chat_model_stream_path if model_selector else self.settings.chat_stream_path
        url = self.settings.url(path)
        # Multipart form fields without filenames
        files = {name: (None, value) for name, value in form.items()}

        logger.info(
            "chat_stream_request",
            archive_id=archive_id,
            model_selector=model_selector,
            model=form.get("model"),
            category=form.get("category"),
        )

        async with self._client() as client:
            try:
                async with client.stream("POST", url, files=files) as resp:
                    if resp.is_error:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        logger.error("chat_stream_http_error", status=resp.status_code, body=body[:500])
                        raise RuntimeError(f"Chat stream error: HTTP {resp.status_code}")

                    return await self.segmenter.process(
                        resp.aiter_bytes(),
                        on_chunk=on_chunk,
                        on_leave_trigger=on_leave_trigger,
                        on_approval_trigger=on_approval_trigger,
                    )
            except httpx.ConnectError as e:
                logger.error("chat_stream_connect_error", error=str(e))
                raise RuntimeError(f"Failed to connect to chat stream: {e}") from e
