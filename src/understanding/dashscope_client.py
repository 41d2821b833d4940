# src/understanding/dashscope_client.py - v1
"""DashScope adapter over its OpenAI-compatible endpoint.

Uses the official openai SDK. Documents are uploaded with the
``file-extract`` purpose and referenced from system turns as
``fileid://<id>``, which is how qwen-long reads whole documents.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pdfdigest.core.errors import ConfigurationError, UpstreamError
from pdfdigest.understanding.base_client import BaseUnderstandingClient

logger = logging.getLogger(__name__)

FILE_PURPOSE = "file-extract"
PDF_MEDIA_TYPE = "application/pdf"


def file_reference(file_id: str) -> str:
    """System-turn content that points the model at an uploaded file."""
    return f"fileid://{file_id}"


def build_messages(
    file_ids: list[str], system_instruction: str, user_instruction: str,
) -> list[dict[str, str]]:
    """Assemble the chat messages for one batched summarization."""
    messages = [{"role": "system", "content": system_instruction}]
    for file_id in file_ids:
        messages.append({"role": "system", "content": file_reference(file_id)})
    messages.append({"role": "user", "content": user_instruction})
    return messages


class DashScopeClient(BaseUnderstandingClient):
    """DashScope (qwen-long) document understanding adapter."""

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://dashscope.aliyuncs.com/compatible-mode/v1",
        model: str = "qwen-long",
        timeout: float = 120.0,
        **kwargs: Any,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._model = model
        self._timeout = timeout
        self._client: Any = None

    def _get_client(self) -> Any:
        if not self._api_key:
            raise ConfigurationError("DASHSCOPE_API_KEY 未配置")
        if self._client is None:
            import openai

            self._client = openai.AsyncOpenAI(
                api_key=self._api_key, base_url=self._base_url, timeout=self._timeout,
            )
        return self._client

    async def upload(self, file_name: str, content: bytes) -> str:
        import openai

        client = self._get_client()
        try:
            uploaded = await client.files.create(
                file=(file_name, content, PDF_MEDIA_TYPE), purpose=FILE_PURPOSE,
            )
        except openai.OpenAIError as e:
            raise UpstreamError("understanding", f"DashScope upload failed: {e}") from e

        file_id = getattr(uploaded, "id", None)
        if not file_id:
            raise UpstreamError("understanding", "DashScope upload returned no file ID")
        logger.debug("Uploaded %s as %s (%d bytes)", file_name, file_id, len(content))
        return file_id

    async def summarize(
        self,
        file_ids: list[str],
        system_instruction: str,
        user_instruction: str,
    ) -> str | None:
        import openai

        client = self._get_client()
        t0 = time.monotonic()
        try:
            resp = await client.chat.completions.create(
                model=self._model,
                messages=build_messages(file_ids, system_instruction, user_instruction),
            )
        except openai.OpenAIError as e:
            raise UpstreamError("understanding", f"LLM generation failed: {e}") from e
        latency = int((time.monotonic() - t0) * 1000)

        choices = getattr(resp, "choices", None) or []
        content = choices[0].message.content if choices and choices[0].message else None
        usage = getattr(resp, "usage", None)
        logger.info(
            "Summarized %d file(s) with %s in %dms",
            len(file_ids), self._model, latency,
            extra={"data": {
                "input_tokens": usage.prompt_tokens if usage else 0,
                "output_tokens": usage.completion_tokens if usage else 0,
            }},
        )
        return content or None

    @property
    def provider_name(self) -> str:
        return "dashscope"
