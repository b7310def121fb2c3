from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any

import aiohttp

from ..memory.text import strip_think_blocks

logger = logging.getLogger("layered_memory_bot")


class OllamaChatClient:
    """Minimal Ollama `/api/chat` client used as the assistant's language model."""

    backend_name = "ollama"

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout_seconds: int = 90,
        temperature: float = 0.4,
        max_output_tokens: int = 0,
    ) -> None:
        self.base_url = (base_url or "http://127.0.0.1:11434").strip().rstrip("/")
        self.model = (model or "").strip()
        if not self.model:
            raise ValueError("Ollama model cannot be empty")
        self.timeout = aiohttp.ClientTimeout(total=max(5, int(timeout_seconds)))
        self.temperature = float(temperature)
        self.max_output_tokens = max(0, int(max_output_tokens or 0))
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    @staticmethod
    def _sanitize_messages(messages: list[dict[str, str]]) -> list[dict[str, str]]:
        mapped_messages: list[dict[str, str]] = []
        for msg in messages:
            role = str(msg.get("role", "")).strip().lower() or "user"
            if role not in {"system", "user", "assistant"}:
                role = "user"
            content = str(msg.get("content", "")).strip()
            if not content:
                continue
            mapped_messages.append({"role": role, "content": content})
        return mapped_messages

    async def _request(self, payload: dict[str, Any], *, retries: int = 3) -> dict[str, Any]:
        session = await self.start()

        last_error: Exception | None = None
        for attempt in range(1, retries + 1):
            try:
                async with session.post(self._endpoint(), json=payload) as response:
                    text = await response.text()
                    if response.status == 200:
                        parsed = json.loads(text)
                        if isinstance(parsed, dict):
                            return parsed
                        raise RuntimeError("Ollama returned non-object JSON response")
                    retriable = response.status in {408, 409, 429, 500, 502, 503, 504}
                    if not retriable:
                        raise RuntimeError(f"Ollama error {response.status}: {text}")
                    last_error = RuntimeError(f"Ollama retriable error {response.status}: {text}")
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                last_error = exc
            if attempt < retries:
                logger.warning("Ollama request attempt %s/%s failed: %s", attempt, retries, last_error)
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.25))

        if last_error is not None:
            raise RuntimeError(f"Ollama chat request failed after retries: {last_error}")
        raise RuntimeError("Ollama chat request failed without explicit error")

    @staticmethod
    def _extract_message_text(data: dict[str, Any]) -> str:
        message = data.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content.strip():
                return content
        response_text = data.get("response")
        if isinstance(response_text, str) and response_text.strip():
            return response_text
        raise RuntimeError("Ollama returned empty message content")

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        mapped_messages = self._sanitize_messages(messages)
        if not mapped_messages:
            return ""

        options: dict[str, Any] = {
            "temperature": float(self.temperature if temperature is None else temperature),
        }
        selected_tokens = self.max_output_tokens if max_output_tokens is None else int(max_output_tokens)
        if selected_tokens > 0:
            options["num_predict"] = selected_tokens

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": mapped_messages,
            "stream": False,
            "think": False,
            "options": options,
        }
        data = await self._request(payload)
        return strip_think_blocks(self._extract_message_text(data))
