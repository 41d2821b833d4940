# src/chat/feishu_client.py - v1
"""Feishu Open Platform client (tenant token, IM replies, Docx documents).

Feishu answers most calls with HTTP 200 and a JSON body whose ``code`` is 0
on success; anything else carries a ``msg`` describing the failure.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from pdfdigest.chat.base_client import BaseChatClient
from pdfdigest.core.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

TEXT_BLOCK_TYPE = 2
APPEND_INDEX = -1


class FeishuClient(BaseChatClient):
    """Feishu adapter over httpx.AsyncClient."""

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        base_url: str = "https://open.feishu.cn/open-apis",
        doc_url_base: str = "https://feishu.cn/docx",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            app_id: Feishu app id.
            app_secret: Feishu app secret.
            base_url: Open API root.
            doc_url_base: Root of shareable document links.
            timeout: Per-request timeout in seconds.
            http_client: Pre-built client (tests inject a MockTransport one).
        """
        self._app_id = app_id
        self._app_secret = app_secret
        self._doc_url_base = doc_url_base.rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def acquire_token(self) -> str:
        if not self._app_id or not self._app_secret:
            raise ConfigurationError("FEISHU_APP_ID / FEISHU_APP_SECRET are not configured")
        data = await self._post_json(
            "/auth/v3/tenant_access_token/internal",
            None,
            {"app_id": self._app_id, "app_secret": self._app_secret},
            what="get tenant token",
        )
        token = data.get("tenant_access_token")
        if not token:
            raise UpstreamError("chat", "Tenant token response has no tenant_access_token")
        return token

    async def reply_text(self, token: str, message_id: str, text: str) -> bool:
        body = {"content": json.dumps({"text": text}, ensure_ascii=False), "msg_type": "text"}
        try:
            await self._post_json(
                f"/im/v1/messages/{message_id}/reply", token, body, what="reply message",
            )
        except UpstreamError as e:
            logger.error("Failed to reply to message %s: %s", message_id, e)
            return False
        return True

    async def download_attachment(self, token: str, message_id: str, file_key: str) -> bytes:
        try:
            response = await self._client.get(
                f"/im/v1/messages/{message_id}/resources/{file_key}",
                params={"type": "file"},
                headers=_auth(token),
            )
        except httpx.HTTPError as e:
            raise UpstreamError("chat", f"Download of {file_key} failed: {e}") from e
        if response.status_code != 200:
            raise UpstreamError(
                "chat",
                f"Download of {file_key} failed: {response.status_code} {response.reason_phrase}",
            )
        return response.content

    async def create_document(self, token: str, title: str) -> str:
        data = await self._post_json(
            "/docx/v1/documents", token, {"title": title}, what="create Feishu doc",
        )
        document_id = (data.get("data") or {}).get("document", {}).get("document_id")
        if not document_id:
            raise UpstreamError("document", "Failed to get document_id from creation response")
        return document_id

    async def append_text(self, token: str, document_id: str, text: str) -> None:
        body = {
            "children": [
                {
                    "block_type": TEXT_BLOCK_TYPE,
                    "text": {"elements": [{"text_run": {"content": text}}]},
                }
            ],
            "index": APPEND_INDEX,
        }
        # The document's root block shares the document id
        await self._post_json(
            f"/docx/v1/documents/{document_id}/blocks/{document_id}/children",
            token, body, what="write Feishu doc",
        )

    def document_url(self, document_id: str) -> str:
        return f"{self._doc_url_base}/{document_id}"

    async def _post_json(
        self, path: str, token: str | None, body: dict[str, Any], *, what: str,
    ) -> dict[str, Any]:
        """POST a JSON body and return the decoded response when code == 0."""
        try:
            response = await self._client.post(path, json=body, headers=_auth(token))
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError("chat", f"Failed to {what}: {e}") from e
        if not isinstance(data, dict) or data.get("code") != 0:
            msg = data.get("msg") if isinstance(data, dict) else None
            raise UpstreamError("chat", f"Failed to {what}: {msg or json.dumps(data, ensure_ascii=False)}")
        return data


def _auth(token: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}
