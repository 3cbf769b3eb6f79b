"""
AI coach chat.

Wraps the caller's question with the coach persona and forwards it to the
Gemini ``generateContent`` REST endpoint. Every answer ends with the
financial disclaimer, appended here if the model left it out.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from signal_gate.config.settings import ChatConfig
from signal_gate.exceptions import ExternalServiceError, ValidationError
from signal_gate.utils.logging import get_logger
from signal_gate.utils.monitoring import get_metrics_collector

logger = get_logger(__name__)


class ChatClient(ABC):
    """Answers one prompt."""

    @abstractmethod
    async def ask(self, prompt: str) -> str:
        ...

    async def close(self) -> None:
        pass


class GeminiChatClient(ChatClient):
    """Client for the Gemini generateContent endpoint."""

    def __init__(self, config: ChatConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def endpoint(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/{self.config.model}:generateContent"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
        return self._session

    async def ask(self, prompt: str) -> str:
        if not self.config.api_key:
            raise ExternalServiceError("AI assistant", "The AI assistant is not configured.")

        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        headers = {"x-goog-api-key": self.config.api_key}

        try:
            async with self._get_session().post(self.endpoint, json=payload, headers=headers) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error(f"Gemini API error {response.status}: {body[:200]}")
                    raise ExternalServiceError("AI assistant")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Gemini API request failed: {e}")
            raise ExternalServiceError("AI assistant") from e

        answer = extract_text(data)
        if not answer:
            logger.error(f"Gemini API returned no text: {str(data)[:200]}")
            raise ExternalServiceError("AI assistant")
        return answer

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


def extract_text(data: Any) -> str:
    """
    Concatenate the text parts of the first candidate.

    Raises:
        ExternalServiceError: the response body is not shaped like a
            generateContent reply.
    """
    if not isinstance(data, dict):
        logger.error(f"Gemini API returned unexpected body: {str(data)[:200]}")
        raise ExternalServiceError("AI assistant")
    candidates = data.get("candidates") or []
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    texts = (part.get("text") for part in parts if isinstance(part, dict))
    return "".join(text for text in texts if isinstance(text, str)).strip()


class ChatService:
    """Coach persona and disclaimer handling around a ``ChatClient``."""

    def __init__(self, config: ChatConfig, client: ChatClient):
        self.config = config
        self.client = client

    def build_prompt(self, question: str) -> str:
        return (
            f"{self.config.persona} Answer this: {question}. "
            f"MANDATORY: End with '{self.config.disclaimer}'"
        )

    async def ask(self, question: str) -> str:
        question = (question or "").strip()
        if not question:
            raise ValidationError("Prompt is required")
        if len(question) > self.config.max_prompt_length:
            raise ValidationError(
                f"Prompt must be at most {self.config.max_prompt_length} characters"
            )

        answer = await self.client.ask(self.build_prompt(question))
        get_metrics_collector().increment_counter("chat_requests_total")

        if not answer.rstrip().endswith(self.config.disclaimer):
            answer = f"{answer.rstrip()}\n\n{self.config.disclaimer}"
        return answer
